"""Shared helpers for post-processing raw model outputs.

Outputs may be plain mappings (``{"logits": array}``) or objects exposing
the tensors as attributes; anything ``np.asarray`` understands works as a
tensor.
"""

from typing import Any, Mapping, Optional, Sequence

import cv2
import numpy as np

from visionproc.errors import ShapeMismatchError

TargetSizes = Optional[Sequence[Sequence[int]]]


def get_output(outputs: Any, *names: str) -> np.ndarray:
    """Fetch the first output tensor present under any of ``names`` as float32.

    Raises:
        ShapeMismatchError: If none of the names is present
    """
    for name in names:
        if isinstance(outputs, Mapping):
            value = outputs.get(name)
        else:
            value = getattr(outputs, name, None)
        if value is not None:
            return np.asarray(value, dtype=np.float32)

    raise ShapeMismatchError(f"Model outputs are missing {' / '.join(repr(n) for n in names)}")


def check_target_sizes(target_sizes: TargetSizes, batch_size: int) -> Optional[list[tuple[int, int]]]:
    """Validate ``target_sizes`` against the batch size.

    Returns:
        List of (height, width) tuples, or None when no sizes were given

    Raises:
        ShapeMismatchError: If the count differs from the batch size or an
            entry is not a positive (height, width) pair
    """
    if target_sizes is None:
        return None

    sizes = [tuple(int(v) for v in size) for size in target_sizes]

    if len(sizes) != batch_size:
        raise ShapeMismatchError(
            "Make sure that you pass in as many target sizes as the batch dimension "
            f"of the logits (got {len(sizes)} target sizes for batch size {batch_size})"
        )

    for size in sizes:
        if len(size) != 2 or size[0] < 1 or size[1] < 1:
            raise ShapeMismatchError(f"Target sizes must be positive (height, width) pairs, got {size}")

    return sizes


def softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    shifted = x - x.max(axis=axis, keepdims=True)
    exp = np.exp(shifted)
    return exp / exp.sum(axis=axis, keepdims=True)


def sigmoid(x: np.ndarray) -> np.ndarray:
    # tanh form does not overflow for large negative logits
    return 0.5 * (1.0 + np.tanh(0.5 * x))


def center_to_corners_format(boxes: np.ndarray) -> np.ndarray:
    """Convert [..., (cx, cy, w, h)] boxes to [..., (x1, y1, x2, y2)]."""
    cx, cy, w, h = np.moveaxis(boxes, -1, 0)
    return np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=-1)


def resize_label_map(label_map: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Nearest-neighbour resize of an integer map to (height, width).

    Class and segment ids must never be interpolated, so only nearest
    sampling is used. Ids are carried through float32, which is exact for
    values below 2**24.
    """
    height, width = size
    if label_map.shape == (height, width):
        return label_map.copy()

    resized = cv2.resize(
        label_map.astype(np.float32),
        (width, height),
        interpolation=cv2.INTER_NEAREST,
    )
    return resized.astype(np.int32)
