"""Segmentation output post-processing.

Semantic segmentation takes a per-pixel argmax over class logits.

Instance and panoptic segmentation share one fusion core over
mask-classification outputs:
- class_queries_logits: [batch, num_queries, num_classes + 1], last class
  is "no object" (alias: logits)
- masks_queries_logits: [batch, num_queries, height, width] mask logits
  (alias: pred_masks)

Fusion is greedy and sequential: queries are visited from the highest
score down and each accepted query claims only pixels nobody claimed
before it. The visiting order decides which segment wins contested pixels,
so queries must not be processed in parallel.
"""

import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from visionproc.errors import EmptyInputError, ShapeMismatchError
from visionproc.postprocess.common import (
    TargetSizes,
    check_target_sizes,
    get_output,
    resize_label_map,
    sigmoid,
    softmax,
)

logger = logging.getLogger(__name__)

UNLABELED = -1


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class SegmentationMap:
    """Semantic segmentation result for one image.

    Attributes:
        segmentation: Class id per pixel, int32 [H, W]
        labels: Sorted unique class ids present in the map
    """

    segmentation: np.ndarray
    labels: list[int]


@dataclass
class Segment:
    """One accepted instance or panoptic segment.

    Attributes:
        id: Segment id in the map, unique per map, starting at 1
        label_id: Predicted class id
        score: Class score of the (highest scoring) contributing query
        was_fused: Whether the label was eligible for fusion
        mask: Boolean [H, W] pixels of this segment in the final map
    """

    id: int
    label_id: int
    score: float
    was_fused: bool = False
    mask: Optional[np.ndarray] = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label_id": self.label_id,
            "score": self.score,
            "was_fused": self.was_fused,
        }


@dataclass
class PanopticResult:
    """Instance or panoptic segmentation result for one image.

    Attributes:
        segmentation: Segment id per pixel, int32 [H, W]; unclaimed pixels
            hold UNLABELED
        segments_info: Accepted segments ordered by id
    """

    segmentation: np.ndarray
    segments_info: list[Segment]


# =============================================================================
# Semantic Segmentation
# =============================================================================


def post_process_semantic_segmentation(
    outputs: Any,
    target_sizes: TargetSizes = None,
) -> list[SegmentationMap]:
    """Convert per-pixel class logits into class-id maps.

    Args:
        outputs: Mapping or object with ``logits`` [batch, classes, H, W]
        target_sizes: Optional (height, width) per image; maps are resized
            with nearest-neighbour sampling so ids are never blended

    Returns:
        One SegmentationMap per image

    Raises:
        ShapeMismatchError: If logits are missing or not 4-D, or
            ``target_sizes`` does not match the batch size
        EmptyInputError: If there are no classes

    Example:
        >>> logits = np.array([[[[5.0]], [[1.0]]]])
        >>> post_process_semantic_segmentation({"logits": logits})[0].labels
        [0]
    """
    logits = get_output(outputs, "logits")

    if logits.ndim != 4:
        raise ShapeMismatchError(f"Expected logits [batch, classes, height, width], got shape {logits.shape}")

    batch_size, num_classes = logits.shape[:2]
    if num_classes == 0:
        raise EmptyInputError("Segmentation logits have no classes")

    sizes = check_target_sizes(target_sizes, batch_size)

    # argmax breaks ties towards the lowest class id
    label_maps = logits.argmax(axis=1).astype(np.int32)

    results = []
    for i in range(batch_size):
        segmentation = label_maps[i]
        if sizes is not None:
            segmentation = resize_label_map(segmentation, sizes[i])

        labels = [int(label) for label in np.unique(segmentation)]
        results.append(SegmentationMap(segmentation=segmentation, labels=labels))

    logger.debug(
        "Decoded semantic segmentation",
        extra={"task": "semantic_segmentation", "num_segments": sum(len(r.labels) for r in results)},
    )

    return results


# =============================================================================
# Mask Fusion
# =============================================================================


def compute_segments(
    mask_probs: np.ndarray,
    scores: np.ndarray,
    labels: np.ndarray,
    mask_threshold: float = 0.5,
    overlap_mask_area_threshold: float = 0.8,
    label_ids_to_fuse: Optional[Collection[int]] = None,
    target_size: Optional[tuple[int, int]] = None,
) -> PanopticResult:
    """Greedily fuse per-query masks of one image into a segment map.

    Queries are visited in descending score order; equal scores keep query
    order. A query is discarded when its binarized mask is empty, when
    every pixel of it is already claimed, or when the claimed share of its
    area exceeds ``overlap_mask_area_threshold``. Otherwise it claims its
    unclaimed pixels under a new id. Queries whose label is in
    ``label_ids_to_fuse`` reuse the id of the first accepted query with
    that label.

    Args:
        mask_probs: Mask probabilities [queries, H, W] of surviving queries
        scores: Class score per query
        labels: Class id per query
        mask_threshold: Probability at or above which a pixel is in the mask
        overlap_mask_area_threshold: Maximum tolerated claimed/area ratio
        label_ids_to_fuse: Labels whose segments are merged into one
        target_size: Optional (height, width) to resize the final map to

    Returns:
        PanopticResult whose segment masks are taken from the final map
    """
    fuse = frozenset(label_ids_to_fuse or ())
    height, width = mask_probs.shape[-2:]
    segmentation = np.full((height, width), UNLABELED, dtype=np.int32)

    segments: list[Segment] = []
    fused_ids: dict[int, int] = {}
    next_id = 1

    order = np.argsort(-scores, kind="stable")
    for k in order:
        mask = mask_probs[k] >= mask_threshold
        area = int(mask.sum())
        if area == 0:
            continue

        free = mask & (segmentation == UNLABELED)
        overlap = area - int(free.sum())
        if overlap / area > overlap_mask_area_threshold or not free.any():
            continue

        label = int(labels[k])
        should_fuse = label in fuse

        if should_fuse and label in fused_ids:
            segmentation[free] = fused_ids[label]
            continue

        segmentation[free] = next_id
        segments.append(Segment(id=next_id, label_id=label, score=float(scores[k]), was_fused=should_fuse))
        if should_fuse:
            fused_ids[label] = next_id
        next_id += 1

    if target_size is not None:
        segmentation = resize_label_map(segmentation, target_size)

    kept = []
    for segment in segments:
        segment.mask = segmentation == segment.id
        if segment.mask.any():
            kept.append(segment)

    return PanopticResult(segmentation=segmentation, segments_info=kept)


def _decode_mask_outputs(outputs: Any) -> tuple[np.ndarray, np.ndarray]:
    class_logits = get_output(outputs, "class_queries_logits", "logits")
    mask_logits = get_output(outputs, "masks_queries_logits", "pred_masks")

    if class_logits.ndim != 3:
        raise ShapeMismatchError(
            f"Expected class logits [batch, queries, classes + 1], got shape {class_logits.shape}"
        )

    if mask_logits.ndim != 4:
        raise ShapeMismatchError(
            f"Expected mask logits [batch, queries, height, width], got shape {mask_logits.shape}"
        )

    if class_logits.shape[:2] != mask_logits.shape[:2]:
        raise ShapeMismatchError(
            f"Class logits {class_logits.shape} and mask logits {mask_logits.shape} "
            "disagree on batch/query dimensions"
        )

    if class_logits.shape[1] == 0:
        raise EmptyInputError("Model outputs contain no queries")

    return class_logits, mask_logits


def _fuse_batch(
    outputs: Any,
    task: str,
    threshold: float,
    mask_threshold: float,
    overlap_mask_area_threshold: float,
    label_ids_to_fuse: Optional[Collection[int]],
    target_sizes: TargetSizes,
) -> list[PanopticResult]:
    class_logits, mask_logits = _decode_mask_outputs(outputs)
    batch_size, _, num_labels = class_logits.shape
    sizes = check_target_sizes(target_sizes, batch_size)

    probs = softmax(class_logits, axis=-1)
    scores = probs.max(axis=-1)
    labels = probs.argmax(axis=-1)
    mask_probs = sigmoid(mask_logits)

    results = []
    for i in range(batch_size):
        keep = (labels[i] != num_labels - 1) & (scores[i] >= threshold)

        result = compute_segments(
            mask_probs[i][keep],
            scores[i][keep],
            labels[i][keep],
            mask_threshold=mask_threshold,
            overlap_mask_area_threshold=overlap_mask_area_threshold,
            label_ids_to_fuse=label_ids_to_fuse,
            target_size=sizes[i] if sizes is not None else None,
        )
        results.append(result)

        logger.debug(
            "Fused segments",
            extra={"task": task, "num_segments": len(result.segments_info)},
        )

    return results


# =============================================================================
# Instance / Panoptic Segmentation
# =============================================================================


def post_process_instance_segmentation(
    outputs: Any,
    threshold: float = 0.5,
    mask_threshold: float = 0.5,
    overlap_mask_area_threshold: float = 0.8,
    target_sizes: TargetSizes = None,
) -> list[PanopticResult]:
    """Fuse mask-classification outputs into instance segment maps.

    Args:
        outputs: Mapping or object with class and mask query logits
        threshold: Minimum class score to keep a query
        mask_threshold: Mask probability at or above which a pixel counts
        overlap_mask_area_threshold: Discard a query when more than this
            share of its mask is already claimed
        target_sizes: Optional (height, width) per image

    Returns:
        One PanopticResult per image

    Raises:
        EmptyInputError: If there are no queries
        ShapeMismatchError: If outputs are missing or inconsistent, or
            ``target_sizes`` does not match the batch size
    """
    return _fuse_batch(
        outputs,
        task="instance_segmentation",
        threshold=threshold,
        mask_threshold=mask_threshold,
        overlap_mask_area_threshold=overlap_mask_area_threshold,
        label_ids_to_fuse=None,
        target_sizes=target_sizes,
    )


def post_process_panoptic_segmentation(
    outputs: Any,
    threshold: float = 0.5,
    mask_threshold: float = 0.5,
    overlap_mask_area_threshold: float = 0.8,
    label_ids_to_fuse: Optional[Collection[int]] = None,
    target_sizes: TargetSizes = None,
) -> list[PanopticResult]:
    """Fuse mask-classification outputs into panoptic segment maps.

    Same as instance segmentation, except that all accepted segments whose
    label is in ``label_ids_to_fuse`` ("stuff" classes such as sky or road)
    are merged into a single segment per label.

    Args:
        outputs: Mapping or object with class and mask query logits
        threshold: Minimum class score to keep a query
        mask_threshold: Mask probability at or above which a pixel counts
        overlap_mask_area_threshold: Discard a query when more than this
            share of its mask is already claimed
        label_ids_to_fuse: Labels merged into one segment each
        target_sizes: Optional (height, width) per image

    Returns:
        One PanopticResult per image
    """
    if label_ids_to_fuse is None:
        logger.warning("`label_ids_to_fuse` unset. No instance will be fused.")

    return _fuse_batch(
        outputs,
        task="panoptic_segmentation",
        threshold=threshold,
        mask_threshold=mask_threshold,
        overlap_mask_area_threshold=overlap_mask_area_threshold,
        label_ids_to_fuse=label_ids_to_fuse,
        target_sizes=target_sizes,
    )
