"""
Geometric Transforms

This module contains the geometric operations used by the preprocessing
pipeline. All of them return new images; inputs are never modified.

Functions:
    compute_resize_size: Resolve a size specification to (width, height)
    resize: Resample an image to exact dimensions
    thumbnail: Shrink-only proportional resize
    crop: Crop to a (left, top, right, bottom) box
    center_crop: Centered crop, zero-padding axes smaller than the crop
    crop_margin: Crop away uniform dark margins
    pad: Pad channel-last pixel data to a target size
    pad_to_multiple_of: Pad so both sides are multiples of a divisor

Resampling filters are selected by Pillow's numeric ids and executed with
OpenCV:

    0 nearest    -> cv2.INTER_NEAREST
    1 lanczos    -> cv2.INTER_LANCZOS4
    2 bilinear   -> cv2.INTER_LINEAR
    3 bicubic    -> cv2.INTER_CUBIC
    4 box        -> cv2.INTER_AREA
    5 hamming    -> cv2.INTER_LINEAR (OpenCV has no Hamming window)
"""

import math
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from visionproc.config import PIL_RESAMPLE_NAMES, PadSizeLike, SizeLike, SizeSpec
from visionproc.errors import ConfigError, InvalidPaddingError, InvalidSizeError
from visionproc.processing.image import RawImage
from visionproc.processing.normalize import luma, per_channel


# =============================================================================
# Constants
# =============================================================================

RESAMPLE_FILTERS: dict[int, int] = {
    0: cv2.INTER_NEAREST,
    1: cv2.INTER_LANCZOS4,
    2: cv2.INTER_LINEAR,
    3: cv2.INTER_CUBIC,
    4: cv2.INTER_AREA,
    5: cv2.INTER_LINEAR,
}

BILINEAR: int = 2

DEFAULT_GRAY_THRESHOLD: float = 200.0


# =============================================================================
# Size Resolution
# =============================================================================


def _as_size_spec(size: Union[SizeSpec, Mapping[str, Any]]) -> SizeSpec:
    try:
        return SizeSpec.coerce(size)
    except ConfigError as e:
        raise InvalidSizeError(str(e)) from e


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def constrain_to_multiple_of(value: float, multiple: int) -> int:
    """
    Round ``value`` to the nearest multiple of ``multiple``.

    Ties round up; the result is never smaller than one multiple.

    Example:
        >>> constrain_to_multiple_of(48, 32)
        64
        >>> constrain_to_multiple_of(10, 32)
        32
    """
    return max(multiple, round_half_up(value / multiple) * multiple)


def enforce_size_divisibility(width: int, height: int, divisor: int) -> Tuple[int, int]:
    """Floor both sides to a multiple of ``divisor`` (at least one multiple)."""
    return (
        max(width // divisor, 1) * divisor,
        max(height // divisor, 1) * divisor,
    )


def compute_resize_size(
    image: RawImage,
    size: SizeLike,
    *,
    keep_aspect_ratio: bool = False,
    ensure_multiple_of: Optional[int] = None,
    max_size: Optional[int] = None,
    size_divisibility: Optional[int] = None,
    do_thumbnail: bool = False,
) -> Tuple[int, int]:
    """
    Resolve a size specification to the target (width, height).

    Modes:
        int: shortest edge = size; the longest edge is capped at
            ``max_size`` (or at ``size`` itself when no cap is given).
            ``ensure_multiple_of`` then rounds each side to the nearest
            multiple, as it does for the edge mapping below.
        {shortest_edge, longest_edge}: scale the short side up/down to
            ``shortest_edge``, then shrink until the long side fits
            ``longest_edge``. Both keys are optional.
        {height, width}: explicit target. With ``keep_aspect_ratio`` the
            single scale closest to 1 is applied to both axes.
            ``ensure_multiple_of`` rounds each side to the nearest multiple
            (ties round up).
        do_thumbnail: shortest edge = min(size.height, size.width).

    Args:
        image: Image whose current size is the starting point
        size: Size specification (int, SizeSpec or mapping)
        keep_aspect_ratio: Preserve aspect ratio for explicit sizes
        ensure_multiple_of: Round the resolved sides to this multiple
        max_size: Longest-edge cap for int sizes
        size_divisibility: Floor edge-constrained sizes to this multiple
        do_thumbnail: Use the thumbnail shortest-edge rule

    Returns:
        (width, height) of the resized image

    Raises:
        InvalidSizeError: If the specification is missing keys for its mode

    Example:
        >>> image = RawImage.from_array(np.zeros((480, 640, 3)))
        >>> compute_resize_size(image, {"shortest_edge": 240})
        (320, 240)
    """
    src_width, src_height = image.size
    shortest_edge: Optional[int] = None
    longest_edge: Optional[int] = None
    spec: Optional[SizeSpec] = None

    if size is None:
        raise InvalidSizeError("No size given for resize")

    if do_thumbnail:
        spec = _as_size_spec(size) if not isinstance(size, int) else None
        if spec is None or not spec.has_height_width:
            raise InvalidSizeError(f"Thumbnail resize needs 'height' and 'width', got {size!r}")
        shortest_edge = min(spec.height, spec.width)
    elif isinstance(size, int):
        if size <= 0:
            raise InvalidSizeError(f"Size must be positive, got {size}")
        shortest_edge = size
        longest_edge = max_size if max_size is not None else size
    else:
        spec = _as_size_spec(size)
        if spec.has_edges:
            shortest_edge, longest_edge = spec.shortest_edge, spec.longest_edge

    if shortest_edge is not None or longest_edge is not None:
        short_factor = (
            1.0 if shortest_edge is None
            else max(shortest_edge / src_width, shortest_edge / src_height)
        )
        new_width = src_width * short_factor
        new_height = src_height * short_factor

        # Longest edge only ever shrinks
        long_factor = (
            1.0 if longest_edge is None
            else min(1.0, longest_edge / new_width, longest_edge / new_height)
        )

        # Round to 2 decimals first so 223.99999 does not floor to 223
        final_width = max(1, math.floor(round(new_width * long_factor, 2)))
        final_height = max(1, math.floor(round(new_height * long_factor, 2)))

        if ensure_multiple_of is not None:
            final_width = constrain_to_multiple_of(final_width, ensure_multiple_of)
            final_height = constrain_to_multiple_of(final_height, ensure_multiple_of)

        if size_divisibility is not None:
            final_width, final_height = enforce_size_divisibility(
                final_width, final_height, size_divisibility
            )
        return final_width, final_height

    if spec is not None and (spec.height is not None or spec.width is not None):
        if not spec.has_height_width:
            raise InvalidSizeError(f"Size needs both 'height' and 'width', got {size!r}")

        if not keep_aspect_ratio:
            new_width, new_height = spec.width, spec.height
            if ensure_multiple_of is not None:
                new_width = constrain_to_multiple_of(new_width, ensure_multiple_of)
                new_height = constrain_to_multiple_of(new_height, ensure_multiple_of)
            return new_width, new_height

        scale_height = spec.height / src_height
        scale_width = spec.width / src_width

        # Scale as little as possible
        if abs(1 - scale_width) < abs(1 - scale_height):
            scale_height = scale_width
        else:
            scale_width = scale_height

        target_width = scale_width * src_width
        target_height = scale_height * src_height

        if ensure_multiple_of is not None:
            return (
                constrain_to_multiple_of(target_width, ensure_multiple_of),
                constrain_to_multiple_of(target_height, ensure_multiple_of),
            )
        return max(1, round_half_up(target_width)), max(1, round_half_up(target_height))

    if size_divisibility is not None:
        return enforce_size_divisibility(src_width, src_height, size_divisibility)

    raise InvalidSizeError(
        f"Unsupported size specification {size!r}: expected an int, "
        "{'height', 'width'} or {'shortest_edge', 'longest_edge'}"
    )


# =============================================================================
# Resampling
# =============================================================================


def _interpolation(resample: int) -> int:
    if isinstance(resample, bool) or resample not in RESAMPLE_FILTERS:
        raise ConfigError(
            f"Unknown resample filter {resample!r}. Expected one of {PIL_RESAMPLE_NAMES}"
        )
    return RESAMPLE_FILTERS[resample]


def resize(image: RawImage, width: int, height: int, resample: int = BILINEAR) -> RawImage:
    """
    Resample an image to exactly (width, height).

    Args:
        image: Input image
        width: Target width in pixels
        height: Target height in pixels
        resample: Pillow-numbered filter id (default: bilinear)

    Returns:
        Resized image with the same channel count, or ``image`` itself
        when it already has the target size

    Raises:
        InvalidSizeError: If a target dimension is not positive
        ConfigError: If the filter id is unknown
    """
    if width < 1 or height < 1:
        raise InvalidSizeError(f"Resize target must be positive, got {width}x{height}")

    interpolation = _interpolation(resample)

    if (width, height) == image.size:
        return image

    resized = cv2.resize(image.data, (width, height), interpolation=interpolation)

    # OpenCV drops the channel axis for single-channel images
    if resized.ndim == 2:
        resized = resized[:, :, np.newaxis]

    return RawImage(resized)


def thumbnail(
    image: RawImage,
    size: Union[SizeSpec, Mapping[str, Any]],
    resample: int = BILINEAR,
) -> RawImage:
    """
    Shrink an image so it fits within ``size``, preserving aspect ratio.

    The scale factor is min(1, size.height / height, size.width / width);
    images that already fit are returned unchanged. Each side is at least
    one pixel.

    Raises:
        InvalidSizeError: If ``size`` lacks 'height' or 'width'
    """
    spec = _as_size_spec(size)
    if not spec.has_height_width:
        raise InvalidSizeError(f"Thumbnail needs 'height' and 'width', got {size!r}")

    width, height = image.size

    if spec.height >= height and spec.width >= width:
        return image

    # Integer arithmetic on the limiting axis avoids float drift
    if spec.height * width <= spec.width * height:
        new_height = spec.height
        new_width = width * new_height // height
    else:
        new_width = spec.width
        new_height = height * new_width // width

    return resize(image, max(1, new_width), max(1, new_height), resample)


# =============================================================================
# Cropping
# =============================================================================


def crop(image: RawImage, box: Sequence[int]) -> RawImage:
    """
    Crop to ``box`` = (left, top, right, bottom), right/bottom exclusive.

    The box is clipped to the image bounds.

    Raises:
        InvalidSizeError: If the clipped box is empty
    """
    left, top, right, bottom = (int(v) for v in box)

    left = max(0, left)
    top = max(0, top)
    right = min(image.width, right)
    bottom = min(image.height, bottom)

    if right <= left or bottom <= top:
        raise InvalidSizeError(f"Crop box {tuple(box)} is empty for image size {image.size}")

    return RawImage(image.data[top:bottom, left:right].copy())


def center_crop(image: RawImage, width: int, height: int) -> RawImage:
    """
    Crop the center (width, height) region.

    Axes where the image is smaller than the crop are zero-padded
    symmetrically first, so the output always has the requested size.
    """
    if width < 1 or height < 1:
        raise InvalidSizeError(f"Crop size must be positive, got {width}x{height}")

    if (width, height) == image.size:
        return image

    data = image.data
    if width > image.width or height > image.height:
        data = pad(
            data,
            SizeSpec(height=max(height, image.height), width=max(width, image.width)),
            center=True,
        )

    top = (data.shape[0] - height) // 2
    left = (data.shape[1] - width) // 2

    return RawImage(data[top : top + height, left : left + width].copy())


def crop_margin(image: RawImage, gray_threshold: float = DEFAULT_GRAY_THRESHOLD) -> RawImage:
    """
    Crop away margins whose gray value stays below ``gray_threshold``.

    The image is converted to grayscale; every row and column whose
    maximum gray value is below the threshold counts as margin, and the
    image is cropped to the tightest box around the remaining content.

    If the whole image is margin, it is returned unmodified.
    """
    gray = luma(image.data)
    content = gray >= gray_threshold

    if not content.any():
        return image

    rows = np.flatnonzero(content.any(axis=1))
    cols = np.flatnonzero(content.any(axis=0))

    return crop(image, (cols[0], rows[0], cols[-1] + 1, rows[-1] + 1))


# =============================================================================
# Padding
# =============================================================================


def _resolve_pad_size(pad_size: PadSizeLike, height: int, width: int) -> Tuple[int, int]:
    if isinstance(pad_size, str):
        if pad_size != "square":
            raise ConfigError(f"Unknown pad size {pad_size!r} (expected 'square')")
        side = max(height, width)
        return side, side

    if isinstance(pad_size, int) and not isinstance(pad_size, bool):
        return pad_size, pad_size

    spec = SizeSpec.coerce(pad_size)
    if not spec.has_height_width:
        raise ConfigError(f"Pad size needs 'height' and 'width', got {pad_size!r}")
    return spec.height, spec.width


def pad(
    pixels: np.ndarray,
    pad_size: PadSizeLike,
    *,
    mode: str = "constant",
    center: bool = False,
    constant_values: Union[float, Sequence[float]] = 0.0,
) -> np.ndarray:
    """
    Pad channel-last pixel data to ``pad_size``.

    Args:
        pixels: Array with shape [H, W, C]
        pad_size: {height, width}, an int for a square target, or
            ``"square"`` for max(H, W) on both axes
        mode: ``"constant"`` fills with ``constant_values``;
            ``"symmetric"`` mirrors the edge content
        center: Split padding evenly (odd pixel at the end); otherwise all
            padding is appended after the existing content
        constant_values: Scalar or one value per channel

    Returns:
        New array with shape [target_H, target_W, C] and the input dtype

    Raises:
        InvalidPaddingError: If the target is smaller than the input
        ConfigError: On an unknown mode or a constant_values length mismatch

    Example:
        >>> pad(np.ones((2, 3, 1), dtype=np.float32), "square").shape
        (3, 3, 1)
    """
    if pixels.ndim != 3:
        raise ValueError(f"Expected 3D array [H, W, C], got {pixels.ndim}D")

    height, width, channels = pixels.shape
    target_height, target_width = _resolve_pad_size(pad_size, height, width)

    if target_height < height or target_width < width:
        raise InvalidPaddingError(
            f"Pad target {target_width}x{target_height} is smaller than image {width}x{height}"
        )

    if mode not in ("constant", "symmetric"):
        raise ConfigError(f"Unknown padding mode {mode!r} (expected 'constant' or 'symmetric')")

    if (target_height, target_width) == (height, width):
        return pixels.copy()

    top = (target_height - height) // 2 if center else 0
    left = (target_width - width) // 2 if center else 0
    bottom = target_height - height - top
    right = target_width - width - left

    if mode == "symmetric":
        return np.pad(pixels, ((top, bottom), (left, right), (0, 0)), mode="symmetric")

    fill = per_channel(constant_values, channels, "constant_values").astype(pixels.dtype)
    padded = np.empty((target_height, target_width, channels), dtype=pixels.dtype)
    padded[...] = fill
    padded[top : top + height, left : left + width] = pixels

    return padded


def pad_to_multiple_of(
    pixels: np.ndarray,
    divisor: int,
    *,
    mode: str = "constant",
    center: bool = False,
    constant_values: Union[float, Sequence[float]] = 0.0,
) -> np.ndarray:
    """Pad so both spatial sides become the next multiple of ``divisor``."""
    height, width = pixels.shape[:2]
    target = SizeSpec(
        height=math.ceil(height / divisor) * divisor,
        width=math.ceil(width / divisor) * divisor,
    )
    return pad(pixels, target, mode=mode, center=center, constant_values=constant_values)
