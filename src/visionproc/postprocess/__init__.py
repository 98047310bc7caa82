"""
Postprocess Module - Interpreting Raw Vision Model Outputs

This module provides:
- detection: box decoding and thresholding for set-prediction detectors
- segmentation: semantic argmax and instance/panoptic mask fusion
- registry: post-processor strategies selected by task tag
"""

from visionproc.postprocess.detection import (
    Detection,
    post_process_object_detection,
)

from visionproc.postprocess.segmentation import (
    UNLABELED,
    PanopticResult,
    Segment,
    SegmentationMap,
    compute_segments,
    post_process_instance_segmentation,
    post_process_panoptic_segmentation,
    post_process_semantic_segmentation,
)

from visionproc.postprocess.registry import (
    POST_PROCESSORS,
    InstanceSegmentationPostProcessor,
    ObjectDetectionPostProcessor,
    PanopticSegmentationPostProcessor,
    SemanticSegmentationPostProcessor,
    create_post_processor,
    get_post_processor,
    list_tasks,
)

__all__ = [
    # Detection
    "Detection",
    "post_process_object_detection",
    # Segmentation
    "UNLABELED",
    "SegmentationMap",
    "Segment",
    "PanopticResult",
    "compute_segments",
    "post_process_semantic_segmentation",
    "post_process_instance_segmentation",
    "post_process_panoptic_segmentation",
    # Strategies
    "POST_PROCESSORS",
    "ObjectDetectionPostProcessor",
    "SemanticSegmentationPostProcessor",
    "InstanceSegmentationPostProcessor",
    "PanopticSegmentationPostProcessor",
    "create_post_processor",
    "get_post_processor",
    "list_tasks",
]
