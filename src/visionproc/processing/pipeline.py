"""Image Preprocessing Pipeline.

This module provides the ImageProcessor class for preparing decoded images
for vision model inference.

Pipeline (each step toggled by PreprocessConfig):
    1. Convert to RGB or grayscale
    2. Crop uniform margins
    3. Resize (size / shortest-longest edge / aspect-preserving multiples)
    4. Thumbnail (shrink-only fit)
    5. Center crop
    6. Rescale (default: divide by 255)
    7. Normalize with per-channel mean/std
    8. Flip channel order (RGB -> BGR)
    9. Pad (explicit size, square, or to a size divisibility)
    10. Transpose HWC -> CHW

Geometry runs before the photometric steps so resampling always sees
original-scale values. Padding runs last so padded pixels hold the raw
``pad_constant_values`` rather than normalized ones.

Each image is processed independently; a single ``preprocess`` call is
the unit of parallelism. Batches are stacked along a new leading axis.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from visionproc.config import PreprocessConfig, SizeSpec, get_preprocess_config
from visionproc.errors import EmptyInputError, InvalidSizeError, ShapeMismatchError
from visionproc.logger import batch_index_var
from visionproc.processing.geometry import (
    center_crop,
    compute_resize_size,
    crop_margin,
    pad,
    pad_to_multiple_of,
    resize,
    thumbnail,
)
from visionproc.processing.image import RawImage
from visionproc.processing.normalize import (
    convert_grayscale,
    convert_rgb,
    flip_channel_order,
    normalize,
    rescale,
)

logger = logging.getLogger(__name__)

ImageInput = Union[RawImage, np.ndarray]
Overrides = Optional[Mapping[str, Any]]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class PreprocessedImage:
    """Result container for a single preprocessed image.

    Attributes:
        pixel_values: Image tensor [C, H, W], float32
        original_size: (height, width) before any geometric step
        reshaped_input_size: (height, width) after all geometric steps
    """

    pixel_values: np.ndarray
    original_size: tuple[int, int]
    reshaped_input_size: tuple[int, int]


@dataclass
class BatchedResult:
    """Result container for batch preprocessing.

    Attributes:
        pixel_values: Batched tensor [N, C, H, W], float32
        original_sizes: (height, width) per input image, in input order
        reshaped_input_sizes: (height, width) per input image, in input order
    """

    pixel_values: np.ndarray
    original_sizes: list[tuple[int, int]]
    reshaped_input_sizes: list[tuple[int, int]]

    def __len__(self) -> int:
        return len(self.original_sizes)


# =============================================================================
# Preprocessor Class
# =============================================================================


class ImageProcessor:
    """Configurable preprocessor for vision models.

    The processor holds a frozen PreprocessConfig. Per-call overrides are
    merged into a fresh config for that call only.

    Attributes:
        config: Base preprocessing configuration

    Example:
        >>> processor = ImageProcessor.from_preset("vit")
        >>> image = np.random.randint(0, 256, (480, 640, 3), dtype=np.uint8)
        >>> result = processor.preprocess(image)
        >>> result.pixel_values.shape
        (3, 224, 224)
        >>> result.original_size
        (480, 640)
        >>> batch = processor([image, image])
        >>> batch.pixel_values.shape
        (2, 3, 224, 224)
    """

    def __init__(self, config: Union[PreprocessConfig, Mapping[str, Any], None] = None) -> None:
        """Initialize ImageProcessor.

        Args:
            config: PreprocessConfig, a plain option mapping, or None for
                field defaults

        Raises:
            ConfigError: If a mapping holds invalid options
        """
        if config is None:
            config = PreprocessConfig()
        elif not isinstance(config, PreprocessConfig):
            config = PreprocessConfig.from_mapping(config)

        self.config = config

    @classmethod
    def from_preset(cls, preset: str, **overrides: Any) -> "ImageProcessor":
        """Create a processor from a named preset in defaults.yaml."""
        return cls(get_preprocess_config(preset, **overrides))

    def __call__(
        self,
        images: Union[ImageInput, Sequence[ImageInput]],
        overrides: Overrides = None,
    ) -> BatchedResult:
        """Preprocess one image or a sequence of images as a batch.

        Args:
            images: RawImage / array, or a sequence of them
            overrides: Options taking precedence over ``self.config``

        Returns:
            BatchedResult with a leading batch dimension
        """
        if isinstance(images, (RawImage, np.ndarray)):
            images = [images]
        return self.batch_preprocess(images, overrides)

    def preprocess(self, image: ImageInput, overrides: Overrides = None) -> PreprocessedImage:
        """Preprocess a single image.

        Args:
            image: RawImage or [H, W] / [H, W, C] array
            overrides: Options taking precedence over ``self.config``; keys
                with a None value are treated as unset

        Returns:
            PreprocessedImage containing:
                - pixel_values: [C, H, W] float32
                - original_size: (height, width) of the input
                - reshaped_input_size: (height, width) after geometry

        Raises:
            UnsupportedChannelsError: If the image does not have 1, 3 or 4 channels
            ConfigError: If the merged options are invalid
        """
        image = self._validate_input(image)
        config = self.config.merged(overrides)
        return self._preprocess(image, config)

    def batch_preprocess(
        self,
        images: Sequence[ImageInput],
        overrides: Overrides = None,
    ) -> BatchedResult:
        """Preprocess images independently and stack them into one tensor.

        Every image is validated before any of them is processed, so a
        malformed image fails the whole call up front.

        Args:
            images: Sequence of RawImage / arrays
            overrides: Options applied to every image in the batch

        Returns:
            BatchedResult with sizes in input order

        Raises:
            EmptyInputError: If ``images`` is empty
            UnsupportedChannelsError: If any image has an unsupported channel count
            ShapeMismatchError: If the preprocessed images differ in shape
        """
        images = list(images)
        if not images:
            raise EmptyInputError("No images to preprocess")

        validated = [self._validate_input(image) for image in images]
        config = self.config.merged(overrides)

        results = []
        for index, image in enumerate(validated):
            token = batch_index_var.set(index)
            try:
                results.append(self._preprocess(image, config))
            finally:
                batch_index_var.reset(token)

        shapes = {result.pixel_values.shape for result in results}
        if len(shapes) > 1:
            raise ShapeMismatchError(
                f"Cannot batch images with different preprocessed shapes {sorted(shapes)}; "
                "resize, crop or pad to a fixed size"
            )

        return BatchedResult(
            pixel_values=np.stack([result.pixel_values for result in results], axis=0),
            original_sizes=[result.original_size for result in results],
            reshaped_input_sizes=[result.reshaped_input_size for result in results],
        )

    def _preprocess(self, image: RawImage, config: PreprocessConfig) -> PreprocessedImage:
        original_size = (image.height, image.width)

        # Step 1: Colour conversion
        if config.do_convert_rgb:
            image = convert_rgb(image)
        elif config.do_convert_grayscale:
            image = convert_grayscale(image)

        # Step 2-5: Geometry
        if config.do_crop_margin:
            image = crop_margin(image, config.gray_threshold)

        if config.do_resize:
            width, height = compute_resize_size(
                image,
                config.size,
                keep_aspect_ratio=config.keep_aspect_ratio,
                ensure_multiple_of=config.ensure_multiple_of,
                max_size=config.max_size,
                size_divisibility=config.size_divisibility,
                do_thumbnail=config.do_thumbnail,
            )
            image = resize(image, width, height, config.resample)

        if config.do_thumbnail:
            image = thumbnail(image, config.size, config.resample)

        if config.do_center_crop:
            crop_width, crop_height = self._crop_dims(config.crop_size)
            image = center_crop(image, crop_width, crop_height)

        # Step 6-8: Photometric
        pixels = image.data

        if config.do_rescale:
            pixels = rescale(pixels, config.rescale_factor)

        if config.do_normalize:
            pixels = normalize(pixels, config.image_mean, config.image_std)

        if config.do_flip_channel_order:
            pixels = flip_channel_order(pixels)

        # Step 9: Padding
        if config.do_pad:
            pad_options = dict(
                mode=config.pad_mode,
                center=config.pad_center,
                constant_values=config.pad_constant_values,
            )
            if config.pad_size is not None:
                pixels = pad(pixels, config.pad_size, **pad_options)
            else:
                pixels = pad_to_multiple_of(pixels, config.size_divisibility, **pad_options)

        reshaped_input_size = (int(pixels.shape[0]), int(pixels.shape[1]))

        # Step 10: HWC -> CHW, always a fresh contiguous buffer
        pixel_values = np.array(pixels.transpose(2, 0, 1), dtype=np.float32, order="C")

        logger.debug(
            "Preprocessed image",
            extra={
                "stage": "preprocess",
                "original_size": original_size,
                "reshaped_size": reshaped_input_size,
            },
        )

        return PreprocessedImage(
            pixel_values=pixel_values,
            original_size=original_size,
            reshaped_input_size=reshaped_input_size,
        )

    @staticmethod
    def _crop_dims(crop_size: Union[int, SizeSpec]) -> tuple[int, int]:
        if isinstance(crop_size, int):
            return crop_size, crop_size
        return crop_size.width, crop_size.height

    @staticmethod
    def _validate_input(image: ImageInput) -> RawImage:
        """Validate input image.

        Args:
            image: Image to validate

        Returns:
            The image as a RawImage

        Raises:
            ValueError: If the input is not an image array
            UnsupportedChannelsError: If the channel count is not 1, 3 or 4
            InvalidSizeError: If the image has no pixels
        """
        if not isinstance(image, RawImage):
            image = RawImage.from_array(image)

        image.check_channels()

        if image.height < 1 or image.width < 1:
            raise InvalidSizeError(f"Invalid image dimensions: {image.shape[:2]}")

        return image


# =============================================================================
# Convenience Functions
# =============================================================================


def preprocess(
    image: ImageInput,
    overrides: Overrides = None,
    config: Union[PreprocessConfig, Mapping[str, Any], None] = None,
) -> PreprocessedImage:
    """Preprocess a single image with a one-off ImageProcessor."""
    return ImageProcessor(config).preprocess(image, overrides)


def batch_preprocess(
    images: Sequence[ImageInput],
    overrides: Overrides = None,
    config: Union[PreprocessConfig, Mapping[str, Any], None] = None,
) -> BatchedResult:
    """Preprocess and stack a batch with a one-off ImageProcessor."""
    return ImageProcessor(config).batch_preprocess(images, overrides)
