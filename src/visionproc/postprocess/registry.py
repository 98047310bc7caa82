"""Post-processor strategies selected by task tag.

Each supported task has a small strategy object holding its thresholds.
Strategies share no base class; they only agree on the call signature
``strategy(outputs, target_sizes=None)``.

Example:
    >>> processor = get_post_processor("object_detection", threshold=0.7)
    >>> detections = processor(outputs, target_sizes=[(480, 640)])
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from visionproc.config import PostProcessConfig, get_postprocess_config
from visionproc.errors import ConfigError
from visionproc.postprocess.common import TargetSizes
from visionproc.postprocess.detection import Detection, post_process_object_detection
from visionproc.postprocess.segmentation import (
    PanopticResult,
    SegmentationMap,
    post_process_instance_segmentation,
    post_process_panoptic_segmentation,
    post_process_semantic_segmentation,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Strategies
# =============================================================================


@dataclass(frozen=True)
class ObjectDetectionPostProcessor:
    """Thresholded box decoding, softmax or zero-shot sigmoid scoring."""

    threshold: float = 0.5
    is_zero_shot: bool = False

    def __call__(self, outputs: Any, target_sizes: TargetSizes = None) -> list[list[Detection]]:
        return post_process_object_detection(
            outputs,
            threshold=self.threshold,
            target_sizes=target_sizes,
            is_zero_shot=self.is_zero_shot,
        )


@dataclass(frozen=True)
class SemanticSegmentationPostProcessor:
    """Per-pixel argmax over class logits."""

    def __call__(self, outputs: Any, target_sizes: TargetSizes = None) -> list[SegmentationMap]:
        return post_process_semantic_segmentation(outputs, target_sizes=target_sizes)


@dataclass(frozen=True)
class InstanceSegmentationPostProcessor:
    threshold: float = 0.5
    mask_threshold: float = 0.5
    overlap_mask_area_threshold: float = 0.8

    def __call__(self, outputs: Any, target_sizes: TargetSizes = None) -> list[PanopticResult]:
        return post_process_instance_segmentation(
            outputs,
            threshold=self.threshold,
            mask_threshold=self.mask_threshold,
            overlap_mask_area_threshold=self.overlap_mask_area_threshold,
            target_sizes=target_sizes,
        )


@dataclass(frozen=True)
class PanopticSegmentationPostProcessor:
    """Instance fusion plus merging of segments with fuse-eligible labels."""

    threshold: float = 0.5
    mask_threshold: float = 0.5
    overlap_mask_area_threshold: float = 0.8
    label_ids_to_fuse: Optional[frozenset[int]] = None

    def __call__(self, outputs: Any, target_sizes: TargetSizes = None) -> list[PanopticResult]:
        return post_process_panoptic_segmentation(
            outputs,
            threshold=self.threshold,
            mask_threshold=self.mask_threshold,
            overlap_mask_area_threshold=self.overlap_mask_area_threshold,
            label_ids_to_fuse=self.label_ids_to_fuse,
            target_sizes=target_sizes,
        )


PostProcessor = Union[
    ObjectDetectionPostProcessor,
    SemanticSegmentationPostProcessor,
    InstanceSegmentationPostProcessor,
    PanopticSegmentationPostProcessor,
]


# =============================================================================
# Factory
# =============================================================================

# Map of task tags to strategy builders
POST_PROCESSORS: dict[str, Callable[[PostProcessConfig], PostProcessor]] = {
    "object_detection": lambda c: ObjectDetectionPostProcessor(threshold=c.threshold),
    "zero_shot_object_detection": lambda c: ObjectDetectionPostProcessor(
        threshold=c.threshold, is_zero_shot=True
    ),
    "semantic_segmentation": lambda c: SemanticSegmentationPostProcessor(),
    "instance_segmentation": lambda c: InstanceSegmentationPostProcessor(
        threshold=c.threshold,
        mask_threshold=c.mask_threshold,
        overlap_mask_area_threshold=c.overlap_mask_area_threshold,
    ),
    "panoptic_segmentation": lambda c: PanopticSegmentationPostProcessor(
        threshold=c.threshold,
        mask_threshold=c.mask_threshold,
        overlap_mask_area_threshold=c.overlap_mask_area_threshold,
        label_ids_to_fuse=c.label_ids_to_fuse,
    ),
}


def list_tasks() -> list[str]:
    return list(POST_PROCESSORS)


def create_post_processor(config: Union[PostProcessConfig, Mapping[str, Any]]) -> PostProcessor:
    """Build the strategy for a post-processing config.

    Args:
        config: PostProcessConfig, or a mapping with at least ``task``

    Returns:
        Strategy object callable as ``strategy(outputs, target_sizes=None)``

    Raises:
        ConfigError: If the task tag is unknown or options are invalid
    """
    if not isinstance(config, PostProcessConfig):
        task = config.get("task")
        if task not in POST_PROCESSORS:
            raise ConfigError(f"Unknown post-processing task '{task}'. Available: {list_tasks()}")
        config = PostProcessConfig.from_mapping(config)

    processor = POST_PROCESSORS[config.task](config)
    logger.debug(f"Created {type(processor).__name__} for task '{config.task}'")
    return processor


def get_post_processor(task: str, **overrides: Any) -> PostProcessor:
    """Build the strategy for ``task`` from defaults.yaml plus overrides.

    Raises:
        ConfigError: If the task tag is unknown or options are invalid
    """
    return create_post_processor(get_postprocess_config(task, **overrides))
