"""
visionproc - Test Suite

Test modules mirror the package layout:
- tests/visionproc/: preprocessing, post-processing, config, logging and CLI
"""
