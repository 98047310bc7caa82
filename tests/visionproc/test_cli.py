"""
Unit Tests for the visionproc Command Line Interface
"""

import argparse
import json
from pathlib import Path
from unittest.mock import patch

import cv2
import numpy as np
import pytest

from visionproc import cli


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep the root logger untouched while running commands."""
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def image_files(tmp_path: Path) -> list:
    rng = np.random.default_rng(7)
    paths = []
    for i, shape in enumerate([(20, 30, 3), (40, 20, 3)]):
        path = tmp_path / f"image_{i}.png"
        cv2.imwrite(str(path), rng.integers(0, 256, shape, dtype=np.uint8))
        paths.append(str(path))
    return paths


class TestParseOverrides:
    """Tests for key=value parsing."""

    def test_yaml_values(self) -> None:
        overrides = cli.parse_overrides(["do_resize=true", "size={height: 32, width: 48}", "image_mean=0.5"])

        assert overrides == {"do_resize": True, "size": {"height": 32, "width": 48}, "image_mean": 0.5}

    def test_missing_equals_raises(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_overrides(["do_resize"])


class TestPreprocessCommand:
    """Tests for `visionproc preprocess`."""

    def test_preset_batch(self, image_files: list, capsys) -> None:
        exit_code = cli.main(["preprocess", *image_files, "--preset", "vit"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["pixel_values_shape"] == [2, 3, 224, 224]
        assert output["original_sizes"] == [[20, 30], [40, 20]]
        assert output["reshaped_input_sizes"] == [[224, 224], [224, 224]]

    def test_set_overrides(self, image_files: list, capsys) -> None:
        exit_code = cli.main(["preprocess", image_files[0], "--set", "size={height: 8, width: 8}"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["pixel_values_shape"] == [1, 3, 8, 8]

    def test_config_file(self, image_files: list, tmp_path: Path, capsys) -> None:
        config_path = tmp_path / "preprocessor_config.json"
        config_path.write_text(json.dumps({"size": {"height": 12, "width": 10}}))

        exit_code = cli.main(["preprocess", image_files[1], "--config", str(config_path)])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["reshaped_input_sizes"] == [[12, 10]]

    def test_unbatchable_images_fail(self, image_files: list, capsys) -> None:
        """Differently sized images cannot be stacked without resizing."""
        exit_code = cli.main(["preprocess", *image_files])

        assert exit_code == 1
        assert "Error" in capsys.readouterr().err

    def test_missing_image_fails(self, tmp_path: Path, capsys) -> None:
        exit_code = cli.main(["preprocess", str(tmp_path / "missing.png")])

        assert exit_code == 1
        assert "Failed to load image" in capsys.readouterr().err

    def test_unknown_preset_fails(self, image_files: list, capsys) -> None:
        exit_code = cli.main(["preprocess", image_files[0], "--preset", "nope"])

        assert exit_code == 1
        assert "not found" in capsys.readouterr().err

    def test_malformed_set_exits(self, image_files: list) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["preprocess", image_files[0], "--set", "size"])

        assert exc_info.value.code == 2


class TestOtherCommands:
    """Tests for `visionproc presets` and `visionproc validate-config`."""

    def test_presets(self, capsys) -> None:
        assert cli.main(["presets"]) == 0

        names = capsys.readouterr().out.split()
        assert "vit" in names
        assert "detr" in names

    def test_presets_verbose(self, capsys) -> None:
        assert cli.main(["presets", "-v"]) == 0

        lines = capsys.readouterr().out.splitlines()
        vit_line = next(line for line in lines if line.startswith("vit:"))
        assert json.loads(vit_line.split(":", 1)[1])["do_normalize"] is True

    def test_validate_config_ok(self, capsys) -> None:
        assert cli.main(["validate-config"]) == 0
        assert "valid" in capsys.readouterr().out

    def test_validate_config_errors(self, capsys) -> None:
        with patch.object(cli, "validate_config", return_value=["Missing required section: presets"]):
            exit_code = cli.main(["validate-config"])

        assert exit_code == 1
        assert "Missing required section" in capsys.readouterr().out

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])
