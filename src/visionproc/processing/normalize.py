"""
Photometric and Channel Transforms

This module contains the elementwise transforms applied after geometry:

Functions:
    rescale: Multiply samples by a factor (0-255 -> 0-1 by default)
    normalize: Per-channel (x - mean) / std
    flip_channel_order: RGB <-> BGR permutation
    luma: Grayscale intensity from colour samples
    convert_rgb: Expand/strip channels to three-channel RGB
    convert_grayscale: Collapse to a single luma channel

Constants:
    IMAGENET_MEAN / IMAGENET_STD: ImageNet dataset channel statistics
    LUMA_WEIGHTS: ITU-R 601-2 luma transform weights

All functions take channel-last [H, W, C] arrays and return new arrays.
"""

from typing import Sequence, Union

import numpy as np

from visionproc.errors import ConfigError, UnsupportedChannelsError
from visionproc.processing.image import RawImage


# =============================================================================
# Constants
# =============================================================================

# ImageNet normalization constants
# Reference: https://pytorch.org/vision/stable/models.html
IMAGENET_MEAN: np.ndarray = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD: np.ndarray = np.array([0.229, 0.224, 0.225], dtype=np.float32)

DEFAULT_RESCALE_FACTOR: float = 1 / 255

LUMA_WEIGHTS: np.ndarray = np.array([0.2989, 0.5870, 0.1140], dtype=np.float32)

ChannelValues = Union[float, Sequence[float], np.ndarray]


# =============================================================================
# Intensity Transforms
# =============================================================================


def rescale(pixels: np.ndarray, factor: float = DEFAULT_RESCALE_FACTOR) -> np.ndarray:
    """
    Multiply every sample by ``factor``.

    Args:
        pixels: Array of any shape
        factor: Scale factor (default: 1/255)

    Returns:
        New float32 array

    Example:
        >>> rescale(np.full((2, 2, 3), 255, dtype=np.uint8)).max()
        1.0
    """
    return pixels.astype(np.float32) * np.float32(factor)


def per_channel(values: ChannelValues, channels: int, name: str) -> np.ndarray:
    """
    Broadcast a scalar or validate a per-channel sequence.

    Raises:
        ConfigError: If a sequence length does not match ``channels``
    """
    array = np.asarray(values, dtype=np.float32)

    if array.ndim == 0:
        return np.full(channels, array, dtype=np.float32)

    if array.ndim != 1 or array.shape[0] != channels:
        raise ConfigError(
            f"When set to arrays, the length of `{name}` ({array.size}) must match "
            f"the number of channels in the image ({channels})"
        )

    return array


def normalize(pixels: np.ndarray, mean: ChannelValues, std: ChannelValues) -> np.ndarray:
    """
    Apply per-channel mean/std normalization.

    Formula: normalized = (pixel - mean[c]) / std[c]

    Args:
        pixels: Channel-last array [H, W, C]
        mean: Scalar or one value per channel
        std: Scalar or one value per channel

    Returns:
        New float32 array with the same shape

    Raises:
        ConfigError: If mean/std lengths mismatch the channel count,
            or if any std is zero
    """
    channels = pixels.shape[-1]
    mean_arr = per_channel(mean, channels, "image_mean")
    std_arr = per_channel(std, channels, "image_std")

    if np.any(std_arr == 0):
        raise ConfigError(f"`image_std` must be non-zero, got {std_arr.tolist()}")

    return (pixels.astype(np.float32) - mean_arr) / std_arr


# =============================================================================
# Channel Transforms
# =============================================================================


def flip_channel_order(pixels: np.ndarray) -> np.ndarray:
    """
    Reverse the colour channel order (RGB <-> BGR).

    Samples are permuted, never recomputed. An alpha channel stays last;
    single-channel input is returned as a copy.

    Args:
        pixels: Channel-last array [H, W, C]

    Returns:
        New array with permuted channels
    """
    channels = pixels.shape[-1]

    if channels == 4:
        return pixels[..., [2, 1, 0, 3]].copy()

    return pixels[..., ::-1].copy()


def luma(pixels: np.ndarray) -> np.ndarray:
    """
    Compute grayscale intensity [H, W] from [H, W, C] samples.

    Raises:
        UnsupportedChannelsError: For channel counts other than 1, 3 or 4
    """
    channels = pixels.shape[-1]

    if channels == 1:
        return pixels[..., 0].astype(np.float32)

    if channels in (3, 4):
        return pixels[..., :3].astype(np.float32) @ LUMA_WEIGHTS

    raise UnsupportedChannelsError(f"Cannot compute luma for {channels} channels")


def convert_rgb(image: RawImage) -> RawImage:
    """
    Convert an image to three-channel RGB.

    Grayscale is repeated across channels; an alpha channel is dropped.
    """
    if image.channels == 3:
        return image

    if image.channels == 1:
        return RawImage(np.repeat(image.data, 3, axis=2))

    if image.channels == 4:
        return RawImage(image.data[:, :, :3].copy())

    raise UnsupportedChannelsError(f"Cannot convert {image.channels} channels to RGB")


def convert_grayscale(image: RawImage) -> RawImage:
    """Convert an image to a single luma channel."""
    if image.channels == 1:
        return image

    return RawImage(luma(image.data)[:, :, np.newaxis])
