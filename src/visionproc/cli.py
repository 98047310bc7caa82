"""Command line interface for visionproc.

Usage:
    visionproc preprocess cat.jpg dog.jpg --preset vit
    visionproc preprocess page.png --preset nougat --set do_normalize=false
    visionproc preprocess photo.jpg --config model/preprocessor_config.json
    visionproc presets
    visionproc validate-config
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from visionproc import __version__
from visionproc.config import (
    get_preprocess_config,
    get_preset,
    get_preset_names,
    get_settings,
    load_preprocess_config,
    validate_config,
)
from visionproc.errors import VisionProcError
from visionproc.logger import setup_logging
from visionproc.processing import ImageProcessor, load_image

logger = logging.getLogger(__name__)


def parse_overrides(pairs: Sequence[str]) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values are read as YAML scalars or mappings.

    Example:
        >>> parse_overrides(["do_resize=true", "size={height: 32, width: 48}"])
        {'do_resize': True, 'size': {'height': 32, 'width': 48}}

    Raises:
        argparse.ArgumentTypeError: If a pair has no '='
    """
    overrides: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        overrides[key.strip()] = yaml.safe_load(value)
    return overrides


def cmd_preprocess(args: argparse.Namespace) -> int:
    if args.config is not None:
        config = load_preprocess_config(args.config)
    else:
        config = get_preprocess_config(args.preset)

    processor = ImageProcessor(config)
    overrides = parse_overrides(args.set)
    images = [load_image(path) for path in args.images]

    result = processor(images, overrides)

    print(json.dumps({
        "pixel_values_shape": list(result.pixel_values.shape),
        "original_sizes": [list(size) for size in result.original_sizes],
        "reshaped_input_sizes": [list(size) for size in result.reshaped_input_sizes],
    }, indent=2))
    return 0


def cmd_presets(args: argparse.Namespace) -> int:
    for name in get_preset_names():
        if args.verbose:
            print(f"{name}: {json.dumps(get_preset(name), sort_keys=True)}")
        else:
            print(name)
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    errors = validate_config()
    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        return 1

    print("Configuration is valid")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visionproc",
        description="Image preprocessing and output post-processing for vision models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  visionproc preprocess cat.jpg --preset vit              # ViT-style 224x224 input
  visionproc preprocess cat.jpg --set do_resize=true --set size=384
  visionproc presets -v                                    # Show preset options
  visionproc validate-config                               # Check defaults.yaml
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: VISIONPROC_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    preprocess_parser = subparsers.add_parser("preprocess", help="Preprocess images and report tensor shapes")
    preprocess_parser.add_argument("images", nargs="+", type=Path, help="Image files")
    source = preprocess_parser.add_mutually_exclusive_group()
    source.add_argument("--preset", default=None, help="Named preset from defaults.yaml")
    source.add_argument("--config", type=Path, default=None, help="Preprocessor config file (YAML or JSON)")
    preprocess_parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a preprocessing option (repeatable)",
    )
    preprocess_parser.set_defaults(func=cmd_preprocess)

    presets_parser = subparsers.add_parser("presets", help="List named presets")
    presets_parser.add_argument("-v", "--verbose", action="store_true", help="Show preset options")
    presets_parser.set_defaults(func=cmd_presets)

    validate_parser = subparsers.add_parser("validate-config", help="Validate defaults.yaml")
    validate_parser.set_defaults(func=cmd_validate_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, settings.LOG_FORMAT)

    try:
        return args.func(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except (VisionProcError, ValueError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
