"""
Processing Module - Image Preprocessing for Vision Models

This module provides:
- image: RawImage container and OpenCV-backed loaders
- geometry: resize, thumbnail, crop, center crop, margin crop, padding
- normalize: rescale, mean/std normalization, channel conversions
- pipeline: ImageProcessor, which chains the above per PreprocessConfig
"""

from visionproc.processing.image import (
    RawImage,
    load_image,
    load_image_from_bytes,
)

from visionproc.processing.geometry import (
    center_crop,
    compute_resize_size,
    crop,
    crop_margin,
    pad,
    pad_to_multiple_of,
    resize,
    thumbnail,
)

from visionproc.processing.normalize import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    convert_grayscale,
    convert_rgb,
    flip_channel_order,
    normalize,
    rescale,
)

from visionproc.processing.pipeline import (
    BatchedResult,
    batch_preprocess,
    preprocess,
    ImageProcessor,
    PreprocessedImage,
)

__all__ = [
    # Container and loading
    "RawImage",
    "load_image",
    "load_image_from_bytes",
    # Geometry
    "compute_resize_size",
    "resize",
    "thumbnail",
    "crop",
    "center_crop",
    "crop_margin",
    "pad",
    "pad_to_multiple_of",
    # Photometric
    "IMAGENET_MEAN",
    "IMAGENET_STD",
    "rescale",
    "normalize",
    "flip_channel_order",
    "convert_rgb",
    "convert_grayscale",
    # Pipeline
    "ImageProcessor",
    "PreprocessedImage",
    "BatchedResult",
    "preprocess",
    "batch_preprocess",
]
