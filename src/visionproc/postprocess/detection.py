"""Object detection output post-processing.

This module converts raw detection-transformer outputs into thresholded
detections in pixel coordinates.

Handles set-prediction output format:
- logits: [batch, num_queries, num_classes] class logits
- pred_boxes: [batch, num_queries, 4] normalized (cx, cy, w, h)

Standard mode scores classes with a softmax and treats the last class as
"no object". Zero-shot mode scores every text query independently with a
sigmoid and has no "no object" class.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from visionproc.errors import ShapeMismatchError
from visionproc.postprocess.common import (
    TargetSizes,
    center_to_corners_format,
    check_target_sizes,
    get_output,
    sigmoid,
    softmax,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """A single detected object.

    Attributes:
        score: Class probability in [0, 1]
        label: Class id (zero-shot: index of the matching text query)
        box: (x1, y1, x2, y2) in pixels, or normalized to [0, 1] when no
            target size was given
    """

    score: float
    label: int
    box: tuple[float, float, float, float]

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "label": self.label, "box": list(self.box)}


def post_process_object_detection(
    outputs: Any,
    threshold: float = 0.5,
    target_sizes: TargetSizes = None,
    is_zero_shot: bool = False,
    has_no_object_class: Optional[bool] = None,
) -> list[list[Detection]]:
    """Decode, threshold and rescale detections for every image in a batch.

    Per query the highest class score and its index become (score, label).
    Queries scoring below ``threshold`` or predicting the "no object" class
    are dropped. Kept detections stay in query order; they are not sorted
    by score.

    Args:
        outputs: Mapping or object with ``logits`` and ``pred_boxes``
        threshold: Minimum score to keep a detection (inclusive)
        target_sizes: (height, width) per image; boxes are scaled to pixels
            and clipped to it. Without it boxes stay normalized in [0, 1].
        is_zero_shot: Use independent sigmoid scores instead of a softmax
        has_no_object_class: Whether the last class is "no object";
            defaults to True in standard mode and False in zero-shot mode

    Returns:
        One list of Detection per image, in batch order

    Raises:
        ShapeMismatchError: If outputs are missing, have inconsistent
            shapes, or ``target_sizes`` does not match the batch size
    """
    logits = get_output(outputs, "logits")
    boxes = get_output(outputs, "pred_boxes")

    if logits.ndim != 3:
        raise ShapeMismatchError(f"Expected logits [batch, queries, classes], got shape {logits.shape}")

    if boxes.ndim != 3 or boxes.shape[-1] != 4:
        raise ShapeMismatchError(f"Expected pred_boxes [batch, queries, 4], got shape {boxes.shape}")

    if logits.shape[:2] != boxes.shape[:2]:
        raise ShapeMismatchError(
            f"logits {logits.shape} and pred_boxes {boxes.shape} disagree on batch/query dimensions"
        )

    batch_size, _, num_classes = logits.shape
    sizes = check_target_sizes(target_sizes, batch_size)

    if has_no_object_class is None:
        has_no_object_class = not is_zero_shot

    probs = sigmoid(logits) if is_zero_shot else softmax(logits, axis=-1)
    scores = probs.max(axis=-1)
    labels = probs.argmax(axis=-1)
    corners = center_to_corners_format(boxes)

    results = []
    for i in range(batch_size):
        keep = scores[i] >= threshold
        if has_no_object_class:
            keep &= labels[i] != num_classes - 1

        kept_boxes = corners[i][keep]
        if sizes is not None:
            height, width = sizes[i]
            kept_boxes = kept_boxes * np.array([width, height, width, height], dtype=np.float32)
            upper = np.array([width, height, width, height], dtype=np.float32)
        else:
            upper = np.ones(4, dtype=np.float32)
        kept_boxes = np.clip(kept_boxes, 0.0, upper)

        detections = [
            Detection(
                score=float(score),
                label=int(label),
                box=tuple(float(v) for v in box),
            )
            for score, label, box in zip(scores[i][keep], labels[i][keep], kept_boxes)
        ]
        results.append(detections)

        logger.debug(
            "Decoded detections",
            extra={"task": "object_detection", "num_detections": len(detections)},
        )

    return results
