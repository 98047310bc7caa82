"""Error hierarchy for preprocessing and post-processing.

Every error raised by this package derives from :class:`VisionProcError`.
The concrete kinds also derive from ``ValueError`` so callers that only
guard against bad input values keep working.

Hierarchy:
    VisionProcError
    ├── ConfigError                 malformed or contradictory options
    ├── GeometryError
    │   ├── InvalidSizeError        resize/crop request impossible
    │   └── InvalidPaddingError     pad target smaller than the image
    ├── ShapeMismatchError          tensor shape vs batch/target sizes
    ├── UnsupportedChannelsError    channel count not in (1, 3, 4)
    └── EmptyInputError             zero images / zero queries
"""


class VisionProcError(Exception):
    """Base class for all visionproc errors."""


class ConfigError(VisionProcError, ValueError):
    """Raised for malformed, unknown or contradictory configuration options."""


class GeometryError(VisionProcError, ValueError):
    """Raised when a geometric operation is impossible for the given image."""


class InvalidSizeError(GeometryError):
    """Raised when a size specification is incomplete or yields an empty image."""


class InvalidPaddingError(GeometryError):
    """Raised when the padding target is smaller than the image."""


class ShapeMismatchError(VisionProcError, ValueError):
    """Raised when tensor shapes disagree with each other or with target sizes."""


class UnsupportedChannelsError(VisionProcError, ValueError):
    """Raised when an image does not have 1, 3 or 4 channels."""


class EmptyInputError(VisionProcError, ValueError):
    """Raised when a batch or a query tensor is empty."""
