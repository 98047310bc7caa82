"""
visionproc - Image Preprocessing and Output Post-processing for Vision Models

This package prepares decoded images for a vision model and turns the
model's raw output tensors into structured results:

- processing: resize, crop, pad, rescale, normalize and batch images
- postprocess: detection decoding and segmentation map fusion
- config: typed options, YAML presets and runtime settings
- logger: structured JSON logging

Model inference itself happens elsewhere; this package only sits on
either side of it.
"""

from visionproc.config import (
    PostProcessConfig,
    PreprocessConfig,
    SizeSpec,
    get_postprocess_config,
    get_preprocess_config,
)

from visionproc.errors import (
    ConfigError,
    EmptyInputError,
    GeometryError,
    InvalidPaddingError,
    InvalidSizeError,
    ShapeMismatchError,
    UnsupportedChannelsError,
    VisionProcError,
)

from visionproc.processing import (
    BatchedResult,
    ImageProcessor,
    PreprocessedImage,
    RawImage,
    batch_preprocess,
    load_image,
    preprocess,
)

from visionproc.postprocess import (
    Detection,
    PanopticResult,
    Segment,
    SegmentationMap,
    create_post_processor,
    get_post_processor,
    post_process_instance_segmentation,
    post_process_object_detection,
    post_process_panoptic_segmentation,
    post_process_semantic_segmentation,
)

__all__ = [
    # Preprocessing
    "ImageProcessor",
    "RawImage",
    "PreprocessedImage",
    "BatchedResult",
    "load_image",
    "preprocess",
    "batch_preprocess",
    # Post-processing
    "Detection",
    "SegmentationMap",
    "Segment",
    "PanopticResult",
    "post_process_object_detection",
    "post_process_semantic_segmentation",
    "post_process_instance_segmentation",
    "post_process_panoptic_segmentation",
    "create_post_processor",
    "get_post_processor",
    # Configuration
    "SizeSpec",
    "PreprocessConfig",
    "PostProcessConfig",
    "get_preprocess_config",
    "get_postprocess_config",
    # Errors
    "VisionProcError",
    "ConfigError",
    "GeometryError",
    "InvalidSizeError",
    "InvalidPaddingError",
    "ShapeMismatchError",
    "UnsupportedChannelsError",
    "EmptyInputError",
]

__version__ = "0.1.0"
