"""
Decoded Image Container

This module defines RawImage, the in-memory representation of a decoded
image consumed by the geometry functions and the preprocessing pipeline,
and thin OpenCV-backed loaders that produce it.

Layout:
    data: float32 array with shape [H, W, C], channel-interleaved,
    values in [0, 255] for freshly decoded images.

RawImage is immutable: every geometric operation returns a new instance
backed by a new array.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from visionproc.errors import UnsupportedChannelsError

SUPPORTED_CHANNELS: tuple[int, ...] = (1, 3, 4)
"""Channel counts accepted by the preprocessing pipeline."""


@dataclass(frozen=True)
class RawImage:
    """Decoded image with channel-last float32 samples.

    Attributes:
        data: float32 array with shape [H, W, C]

    Example:
        >>> image = RawImage.from_array(np.zeros((480, 640, 3), dtype=np.uint8))
        >>> image.size
        (640, 480)
        >>> image.channels
        3
    """

    data: np.ndarray

    def __post_init__(self) -> None:
        if self.data.ndim != 3:
            raise ValueError(f"Expected 3D array [H, W, C], got {self.data.ndim}D")

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RawImage":
        """Wrap a [H, W] or [H, W, C] array, copying it into float32.

        Args:
            array: Grayscale [H, W] or channel-last [H, W, C] array

        Returns:
            New RawImage that does not share memory with ``array``

        Raises:
            ValueError: If the array is not 2D or 3D
        """
        if not isinstance(array, np.ndarray):
            raise ValueError(f"Expected numpy array, got {type(array)}")

        if array.ndim == 2:
            array = array[:, :, np.newaxis]

        if array.ndim != 3:
            raise ValueError(f"Expected 2D or 3D array, got {array.ndim}D")

        return cls(np.array(array, dtype=np.float32, copy=True))

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])

    @property
    def size(self) -> tuple[int, int]:
        """(width, height), the order image libraries report sizes in."""
        return self.width, self.height

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.height, self.width, self.channels

    def check_channels(self) -> None:
        """Raise UnsupportedChannelsError unless the image has 1, 3 or 4 channels."""
        if self.channels not in SUPPORTED_CHANNELS:
            raise UnsupportedChannelsError(
                f"Expected 1, 3 or 4 channels, got {self.channels}"
            )


# =============================================================================
# Image Loading
# =============================================================================


def load_image(image_path: Union[str, Path]) -> RawImage:
    """
    Load an image file as an RGB RawImage.

    Uses OpenCV for decoding with explicit BGR to RGB conversion.
    Grayscale files are expanded to three channels.

    Args:
        image_path: Path to image file (JPEG, PNG, etc.)

    Returns:
        RawImage with shape [H, W, 3]

    Raises:
        ValueError: If image cannot be loaded (file not found or corrupted)
    """
    bgr = cv2.imread(str(image_path), cv2.IMREAD_COLOR)

    if bgr is None:
        raise ValueError(f"Failed to load image: {image_path}")

    return RawImage.from_array(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))


def load_image_from_bytes(image_bytes: bytes) -> RawImage:
    """
    Decode image bytes as an RGB RawImage.

    Args:
        image_bytes: Raw image bytes (JPEG, PNG, etc.)

    Returns:
        RawImage with shape [H, W, 3]

    Raises:
        ValueError: If image cannot be decoded
    """
    if not image_bytes:
        raise ValueError("Failed to decode image from bytes: empty input")

    nparr = np.frombuffer(image_bytes, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ValueError("Failed to decode image from bytes")

    return RawImage.from_array(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
