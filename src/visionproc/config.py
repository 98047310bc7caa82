"""
Configuration Module

This module provides the typed configuration objects used by the
preprocessing pipeline and the post-processors, plus a Python interface
to ``defaults.yaml``, the single source of truth for named presets and
post-processing thresholds.

Usage:
    from visionproc.config import get_preprocess_config, get_postprocess_config

    # Field defaults only
    config = get_preprocess_config()

    # Named preset with a per-call tweak
    config = get_preprocess_config("vit", do_normalize=False)

    # Post-processing thresholds for a task
    post = get_postprocess_config("panoptic_segmentation", threshold=0.7)

    # Runtime settings from the environment (VISIONPROC_LOG_LEVEL, ...)
    settings = get_settings()

Configuration objects are frozen pydantic models. Unknown option names are
rejected with ConfigError; per-call overrides always build a new object and
never mutate the one they are layered on.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from visionproc.errors import ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ALIASES: Dict[str, str] = {
    "mean": "image_mean",
    "std": "image_std",
    "image_size": "size",
    "size_divisor": "size_divisibility",
}
"""Alternative option names accepted in configuration mappings."""

PIL_RESAMPLE_NAMES: Dict[int, str] = {
    0: "nearest",
    1: "lanczos",
    2: "bilinear",
    3: "bicubic",
    4: "box",
    5: "hamming",
}
"""Resampling filter ids, numbered the way Pillow numbers them."""

TaskName = Literal[
    "object_detection",
    "zero_shot_object_detection",
    "semantic_segmentation",
    "instance_segmentation",
    "panoptic_segmentation",
]


# =============================================================================
# Size Specifications
# =============================================================================


class SizeSpec(BaseModel):
    """Target size specification.

    Either an explicit ``{height, width}`` pair or a
    ``{shortest_edge, longest_edge}`` constraint (any subset of the keys may
    be present; the geometry functions decide which combination they need).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    height: Optional[PositiveInt] = None
    width: Optional[PositiveInt] = None
    shortest_edge: Optional[PositiveInt] = None
    longest_edge: Optional[PositiveInt] = None

    @property
    def has_height_width(self) -> bool:
        return self.height is not None and self.width is not None

    @property
    def has_edges(self) -> bool:
        return self.shortest_edge is not None or self.longest_edge is not None

    @classmethod
    def coerce(cls, value: Union["SizeSpec", Mapping[str, Any]]) -> "SizeSpec":
        """Build a SizeSpec from a mapping, passing SizeSpec instances through.

        Raises:
            ConfigError: If the mapping has unknown keys or invalid values
        """
        if isinstance(value, SizeSpec):
            return value
        try:
            return cls.model_validate(dict(value))
        except (ValidationError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid size specification {value!r}: {e}") from e


SizeLike = Union[int, SizeSpec, Mapping[str, Any]]
PadSizeLike = Union[int, Literal["square"], SizeSpec, Mapping[str, Any]]


def _resolve_aliases(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename alias keys to their canonical option names."""
    resolved: Dict[str, Any] = {}
    for key, value in options.items():
        canonical = CONFIG_ALIASES.get(key, key)
        if canonical in resolved:
            raise ConfigError(f"Option '{canonical}' given twice (directly and through an alias)")
        resolved[canonical] = value
    return resolved


# =============================================================================
# Preprocessing Configuration
# =============================================================================


class PreprocessConfig(BaseModel):
    """Resolved preprocessing options.

    Attributes mirror the steps of the preprocessing pipeline, in order:
    colour conversion, margin cropping, resize, thumbnail, center crop,
    rescale, normalize, channel flip and padding.

    Example:
        >>> config = PreprocessConfig.from_mapping({"size": {"height": 224, "width": 224}})
        >>> config.do_resize
        True
        >>> config.merged({"do_normalize": True}).do_normalize
        True
        >>> config.do_normalize
        False
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Colour conversion
    do_convert_rgb: bool = False
    do_convert_grayscale: bool = False

    # Margin cropping
    do_crop_margin: bool = False
    gray_threshold: float = Field(200.0, ge=0.0, le=255.0)

    # Resize
    do_resize: bool = False
    size: Optional[Union[PositiveInt, SizeSpec]] = None
    resample: int = Field(2, ge=0, le=5)
    max_size: Optional[PositiveInt] = None
    keep_aspect_ratio: bool = False
    ensure_multiple_of: Optional[PositiveInt] = None
    size_divisibility: Optional[PositiveInt] = None
    do_thumbnail: bool = False

    # Center crop
    do_center_crop: bool = False
    crop_size: Optional[Union[PositiveInt, SizeSpec]] = None

    # Photometric
    do_rescale: bool = True
    rescale_factor: float = Field(1 / 255, gt=0.0)
    do_normalize: bool = False
    image_mean: Union[float, tuple[float, ...]] = (0.5, 0.5, 0.5)
    image_std: Union[float, tuple[float, ...]] = (0.5, 0.5, 0.5)
    do_flip_channel_order: bool = False

    # Padding
    do_pad: bool = False
    pad_size: Optional[Union[PositiveInt, Literal["square"], SizeSpec]] = None
    pad_mode: Literal["constant", "symmetric"] = "constant"
    pad_center: bool = False
    pad_constant_values: Union[float, tuple[float, ...]] = 0.0

    @model_validator(mode="before")
    @classmethod
    def _default_do_resize(cls, data: Any) -> Any:
        # Resizing is on whenever a size is configured, unless stated otherwise
        if isinstance(data, dict) and data.get("do_resize") is None:
            data = {**data, "do_resize": data.get("size") is not None}
        return data

    @model_validator(mode="after")
    def _check_consistency(self) -> "PreprocessConfig":
        if self.do_convert_rgb and self.do_convert_grayscale:
            raise ValueError("do_convert_rgb and do_convert_grayscale are mutually exclusive")
        if self.do_resize and self.size is None:
            raise ValueError("do_resize requires 'size'")
        if self.do_thumbnail and not (isinstance(self.size, SizeSpec) and self.size.has_height_width):
            raise ValueError("do_thumbnail requires 'size' with 'height' and 'width'")
        if self.do_center_crop:
            if self.crop_size is None:
                raise ValueError("do_center_crop requires 'crop_size'")
            if isinstance(self.crop_size, SizeSpec) and not self.crop_size.has_height_width:
                raise ValueError("'crop_size' must have 'height' and 'width'")
        if self.do_pad and self.pad_size is None and self.size_divisibility is None:
            raise ValueError("do_pad requires 'pad_size' or 'size_divisibility'")
        if isinstance(self.pad_size, SizeSpec) and not self.pad_size.has_height_width:
            raise ValueError("'pad_size' must have 'height' and 'width'")
        return self

    @classmethod
    def field_names(cls) -> List[str]:
        return list(cls.model_fields)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "PreprocessConfig":
        """Validate a plain option mapping into a PreprocessConfig.

        Args:
            options: Option names (or their aliases) to values

        Returns:
            Validated, frozen configuration

        Raises:
            ConfigError: On unknown option names, invalid values or
                contradictory options
        """
        data = _resolve_aliases(options)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid preprocessing options: {e}") from e

    def merged(self, overrides: Optional[Mapping[str, Any]] = None) -> "PreprocessConfig":
        """Return a new config with ``overrides`` layered on top of this one.

        Only keys explicitly present with a non-None value take precedence;
        this config is left untouched.

        Raises:
            ConfigError: If the merged options are invalid
        """
        if not overrides:
            return self

        explicit = {k: v for k, v in _resolve_aliases(overrides).items() if v is not None}
        if not explicit:
            return self

        data = self.model_dump()
        data.update(explicit)

        # A size introduced by the overrides turns resizing on, like it does at construction
        if self.size is None and "size" in explicit and "do_resize" not in explicit:
            data["do_resize"] = None

        return self.from_mapping(data)


# =============================================================================
# Post-processing Configuration
# =============================================================================


class PostProcessConfig(BaseModel):
    """Options for one post-processing task.

    Attributes:
        task: Task tag selecting the post-processing strategy
        threshold: Minimum class score for a detection/segment to be kept
        mask_threshold: Probability at or above which a mask pixel is foreground
        overlap_mask_area_threshold: Fraction of a candidate mask already
            claimed by higher-scoring segments above which it is discarded
        label_ids_to_fuse: Labels whose segments are fused (panoptic only)
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    task: TaskName
    threshold: float = Field(0.5, ge=0.0, le=1.0)
    mask_threshold: float = Field(0.5, ge=0.0, le=1.0)
    overlap_mask_area_threshold: float = Field(0.8, ge=0.0, le=1.0)
    label_ids_to_fuse: Optional[frozenset[int]] = None

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "PostProcessConfig":
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            raise ConfigError(f"Invalid post-processing options: {e}") from e


# =============================================================================
# Runtime Settings
# =============================================================================


class Settings(BaseSettings):
    """Runtime settings read from the environment.

    Attributes:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        LOG_FORMAT: ``json`` for structured logs, ``text`` for plain lines
    """

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    model_config = SettingsConfigDict(
        env_prefix="VISIONPROC_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern).

    Returns:
        Validated Settings instance
    """
    return Settings()


# =============================================================================
# Defaults File Loading
# =============================================================================


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    """
    Load and cache ``defaults.yaml``.

    Returns:
        Complete defaults dictionary

    Raises:
        FileNotFoundError: If defaults.yaml is missing
        yaml.YAMLError: If YAML parsing fails

    Example:
        >>> get_config()["metadata"]["name"]
        'visionproc'
    """
    if not _CONFIG_PATH.exists():
        raise FileNotFoundError(f"Defaults file not found: {_CONFIG_PATH.absolute()}")

    with open(_CONFIG_PATH, "r") as f:
        return yaml.safe_load(f)


def reload_config() -> Dict[str, Any]:
    """
    Force reload of ``defaults.yaml`` (clears cache).

    Returns:
        Freshly loaded defaults dictionary
    """
    get_config.cache_clear()
    return get_config()


def get_section(section: str) -> Dict[str, Any]:
    """
    Get a top-level section of the defaults file.

    Raises:
        ConfigError: If the section does not exist
    """
    config = get_config()
    if section not in config:
        available = list(config.keys())
        raise ConfigError(f"Section '{section}' not found. Available: {available}")
    return config[section] or {}


def get_metadata() -> Dict[str, Any]:
    return get_config().get("metadata", {})


def get_preset_names() -> List[str]:
    """
    Get the names of all preprocessing presets.

    Example:
        >>> "vit" in get_preset_names()
        True
    """
    return list(get_section("presets").keys())


def get_preset(name: str) -> Dict[str, Any]:
    """
    Get the raw option mapping of a preprocessing preset.

    Returns a copy, so callers may modify it freely.

    Raises:
        ConfigError: If the preset does not exist
    """
    presets = get_section("presets")
    if name not in presets:
        raise ConfigError(f"Preset '{name}' not found. Available: {list(presets.keys())}")
    return dict(presets[name] or {})


def get_preprocess_config(preset: Optional[str] = None, **overrides: Any) -> PreprocessConfig:
    """
    Build a PreprocessConfig from a preset (or field defaults) plus overrides.

    Args:
        preset: Preset name from defaults.yaml, or None for field defaults
        **overrides: Options layered over the preset

    Returns:
        Validated PreprocessConfig

    Example:
        >>> config = get_preprocess_config("vit")
        >>> config.size.height
        224
    """
    options = get_preset(preset) if preset is not None else {}
    return PreprocessConfig.from_mapping(options).merged(overrides)


def get_postprocess_config(task: str, **overrides: Any) -> PostProcessConfig:
    """
    Build a PostProcessConfig for ``task`` from defaults.yaml plus overrides.

    Raises:
        ConfigError: If the task is unknown or the options are invalid
    """
    defaults = get_section("postprocess")
    if task not in defaults:
        raise ConfigError(f"Unknown post-processing task '{task}'. Available: {list(defaults.keys())}")

    options = {**(defaults[task] or {}), **overrides, "task": task}
    return PostProcessConfig.from_mapping(options)


def load_preprocess_config(path: Union[str, Path]) -> PreprocessConfig:
    """
    Load preprocessing options from a YAML or JSON file.

    Files shipped next to model weights often carry keys that have nothing
    to do with preprocessing (processor class names, model ids). Those keys
    are dropped with a warning instead of being rejected.

    Args:
        path: Path to a .yaml/.yml/.json file holding a flat option mapping

    Returns:
        Validated PreprocessConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is not a mapping or the options are invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Preprocessing config not found: {path}")

    with open(path, "r") as f:
        # JSON is a subset of YAML, so one parser covers both formats
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")

    known = set(PreprocessConfig.field_names()) | set(CONFIG_ALIASES)
    ignored = sorted(k for k in data if k not in known)
    if ignored:
        logger.warning(f"Ignoring unrecognized preprocessing keys in {path.name}: {ignored}")

    return PreprocessConfig.from_mapping({k: v for k, v in data.items() if k in known})


# =============================================================================
# Validation
# =============================================================================


def validate_config() -> List[str]:
    """
    Validate the defaults file.

    Returns:
        List of validation error messages (empty if valid)

    Example:
        >>> validate_config()
        []
    """
    errors = []

    try:
        config = get_config()
    except Exception as e:
        return [f"Failed to load config: {e}"]

    for section in ["metadata", "presets", "postprocess"]:
        if section not in config:
            errors.append(f"Missing required section: {section}")

    for name, options in (config.get("presets") or {}).items():
        try:
            PreprocessConfig.from_mapping(options or {})
        except ConfigError as e:
            errors.append(f"Preset '{name}' is invalid: {e}")

    for task, options in (config.get("postprocess") or {}).items():
        try:
            PostProcessConfig.from_mapping({**(options or {}), "task": task})
        except ConfigError as e:
            errors.append(f"Post-processing defaults for '{task}' are invalid: {e}")

    return errors
