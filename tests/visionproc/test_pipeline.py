"""
Unit Tests for the Preprocessing Pipeline

This module tests:
- ImageProcessor.preprocess: step order, output layout, recorded sizes
- ImageProcessor.batch_preprocess / __call__: stacking and validation
- Per-call overrides: precedence and immutability of the base config
- Presets from defaults.yaml end to end

Test Categories:
- Shape validation: Output tensor dimensions match the configuration
- Dtype validation: Output tensors are float32, C-contiguous
- Edge cases: Empty batches, unsupported channels, mismatched shapes
"""

import logging

import numpy as np
import pytest

from visionproc.config import PreprocessConfig
from visionproc.errors import (
    ConfigError,
    EmptyInputError,
    ShapeMismatchError,
    UnsupportedChannelsError,
)
from visionproc.processing.image import RawImage
from visionproc.processing.pipeline import (
    BatchedResult,
    ImageProcessor,
    PreprocessedImage,
    batch_preprocess,
    preprocess,
)


class TestPreprocess:
    """Tests for single-image preprocessing."""

    def test_default_config_rescales_only(self, sample_image: np.ndarray) -> None:
        """Field defaults rescale to [0, 1] and transpose to CHW."""
        result = ImageProcessor().preprocess(sample_image)

        assert isinstance(result, PreprocessedImage)
        assert result.pixel_values.shape == (3, 480, 640)
        np.testing.assert_allclose(result.pixel_values[1], sample_image[:, :, 1] / 255, rtol=1e-6)

    def test_output_dtype_and_layout(self, sample_image: np.ndarray) -> None:
        result = ImageProcessor.from_preset("vit").preprocess(sample_image)

        assert result.pixel_values.dtype == np.float32
        assert result.pixel_values.flags["C_CONTIGUOUS"]

    def test_recorded_sizes(self, sample_image: np.ndarray) -> None:
        """original_size is taken before geometry, reshaped after it."""
        result = ImageProcessor.from_preset("vit").preprocess(sample_image)

        assert result.original_size == (480, 640)
        assert result.reshaped_input_size == (224, 224)

    def test_accepts_raw_image(self, sample_image: np.ndarray) -> None:
        result = ImageProcessor().preprocess(RawImage.from_array(sample_image))

        assert result.pixel_values.shape == (3, 480, 640)

    def test_mapping_config_enables_resize(self, sample_image: np.ndarray) -> None:
        """A configured size switches resizing on."""
        processor = ImageProcessor({"size": 32})

        result = processor.preprocess(sample_image)

        assert processor.config.do_resize is True
        assert result.pixel_values.shape == (3, 24, 32)

    def test_pad_runs_after_normalize(self, sample_image_small: np.ndarray) -> None:
        """Padded pixels hold the raw constant, not a normalized value."""
        processor = ImageProcessor({
            "do_normalize": True,
            "image_mean": 0.5,
            "image_std": 0.5,
            "do_pad": True,
            "pad_size": {"height": 8, "width": 8},
            "pad_constant_values": 0.0,
        })

        result = processor.preprocess(sample_image_small)

        assert result.pixel_values.shape == (3, 8, 8)
        assert result.reshaped_input_size == (8, 8)
        assert np.all(result.pixel_values[:, 7, :] == 0.0)
        assert np.all(result.pixel_values[:, :, 5:] == 0.0)
        expected = (sample_image_small[:, :, 0] / 255 - 0.5) / 0.5
        np.testing.assert_allclose(result.pixel_values[0, :7, :5], expected, rtol=1e-5, atol=1e-6)

    def test_flip_channel_order(self) -> None:
        image = np.array([[[1, 2, 3]]], dtype=np.uint8)

        result = ImageProcessor({"do_rescale": False, "do_flip_channel_order": True}).preprocess(image)

        np.testing.assert_array_equal(result.pixel_values[:, 0, 0], [3.0, 2.0, 1.0])

    def test_convert_rgb_expands_grayscale(self, sample_gray: np.ndarray) -> None:
        result = ImageProcessor({"do_convert_rgb": True}).preprocess(sample_gray)

        assert result.pixel_values.shape == (3, 60, 80)

    def test_convert_grayscale(self, sample_rgba: np.ndarray) -> None:
        result = ImageProcessor({"do_convert_grayscale": True}).preprocess(sample_rgba)

        assert result.pixel_values.shape == (1, 60, 80)

    def test_unsupported_channels_raises(self) -> None:
        with pytest.raises(UnsupportedChannelsError):
            ImageProcessor().preprocess(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_logs_sizes(self, sample_image: np.ndarray, caplog) -> None:
        with caplog.at_level(logging.DEBUG, logger="visionproc.processing.pipeline"):
            ImageProcessor.from_preset("vit").preprocess(sample_image)

        record = caplog.records[-1]
        assert record.stage == "preprocess"
        assert record.original_size == (480, 640)
        assert record.reshaped_size == (224, 224)


class TestOverrides:
    """Tests for per-call overrides."""

    def test_overrides_are_independent_and_non_mutating(self, sample_image: np.ndarray) -> None:
        """Each call reflects its own overrides; the base config never changes."""
        processor = ImageProcessor({"size": {"height": 32, "width": 32}})
        snapshot = processor.config.model_dump()

        small = processor.preprocess(sample_image, {"size": {"height": 16, "width": 16}})
        unscaled = processor.preprocess(sample_image, {"do_rescale": False})
        plain = processor.preprocess(sample_image)

        assert small.pixel_values.shape == (3, 16, 16)
        assert unscaled.pixel_values.shape == (3, 32, 32)
        assert unscaled.pixel_values.max() > 1.0
        assert plain.pixel_values.shape == (3, 32, 32)
        assert plain.pixel_values.max() <= 1.0 + 1e-6
        assert processor.config.model_dump() == snapshot

    def test_override_mapping_not_mutated(self, sample_image: np.ndarray) -> None:
        overrides = {"mean": 0.5, "do_normalize": True}

        ImageProcessor().preprocess(sample_image, overrides)

        assert overrides == {"mean": 0.5, "do_normalize": True}

    def test_none_override_is_unset(self, sample_image: np.ndarray) -> None:
        processor = ImageProcessor({"size": {"height": 32, "width": 32}})

        result = processor.preprocess(sample_image, {"size": None})

        assert result.pixel_values.shape == (3, 32, 32)

    def test_size_override_enables_resize(self, sample_image: np.ndarray) -> None:
        result = ImageProcessor().preprocess(sample_image, {"size": {"height": 10, "width": 12}})

        assert result.reshaped_input_size == (10, 12)

    def test_int_size_with_multiple(self) -> None:
        """An int size honours ensure_multiple_of end to end."""
        image = np.zeros((300, 500, 3), dtype=np.uint8)
        processor = ImageProcessor({"size": 100, "ensure_multiple_of": 32, "keep_aspect_ratio": True})

        result = processor.preprocess(image)

        assert result.reshaped_input_size == (64, 96)
        assert result.pixel_values.shape == (3, 64, 96)

    def test_unknown_override_raises(self, sample_image: np.ndarray) -> None:
        with pytest.raises(ConfigError, match="do_blur"):
            ImageProcessor().preprocess(sample_image, {"do_blur": True})

    def test_contradictory_override_raises(self, sample_image: np.ndarray) -> None:
        with pytest.raises(ConfigError):
            ImageProcessor().preprocess(sample_image, {"do_center_crop": True})


class TestBatchPreprocess:
    """Tests for batching."""

    def test_batch_shape_and_order(self, sample_image: np.ndarray, sample_image_portrait: np.ndarray) -> None:
        """Images are stacked along a new leading axis in input order."""
        processor = ImageProcessor.from_preset("vit")

        result = processor.batch_preprocess([sample_image, sample_image_portrait])

        assert isinstance(result, BatchedResult)
        assert len(result) == 2
        assert result.pixel_values.shape == (2, 3, 224, 224)
        assert result.original_sizes == [(480, 640), (640, 480)]
        assert result.reshaped_input_sizes == [(224, 224), (224, 224)]

    def test_batch_matches_single(self, sample_image: np.ndarray, sample_image_portrait: np.ndarray) -> None:
        processor = ImageProcessor.from_preset("vit")

        batch = processor([sample_image, sample_image_portrait])
        single = processor.preprocess(sample_image_portrait)

        np.testing.assert_array_equal(batch.pixel_values[1], single.pixel_values)

    def test_call_wraps_single_image(self, sample_image: np.ndarray) -> None:
        result = ImageProcessor.from_preset("vit")(sample_image)

        assert result.pixel_values.shape == (1, 3, 224, 224)

    def test_empty_batch_raises(self) -> None:
        with pytest.raises(EmptyInputError):
            ImageProcessor().batch_preprocess([])

    def test_bad_image_fails_whole_batch(self, sample_image: np.ndarray) -> None:
        bad = np.zeros((4, 4, 2), dtype=np.uint8)

        with pytest.raises(UnsupportedChannelsError):
            ImageProcessor.from_preset("vit").batch_preprocess([sample_image, bad])

    def test_mismatched_shapes_raise(self, sample_image: np.ndarray, sample_image_portrait: np.ndarray) -> None:
        """Images of different sizes cannot be stacked without resizing."""
        with pytest.raises(ShapeMismatchError, match="different"):
            ImageProcessor().batch_preprocess([sample_image, sample_image_portrait])

    def test_module_level_helpers(self, sample_image: np.ndarray) -> None:
        config = PreprocessConfig.from_mapping({"size": {"height": 8, "width": 8}})

        assert preprocess(sample_image, config=config).pixel_values.shape == (3, 8, 8)
        assert batch_preprocess([sample_image], config=config).pixel_values.shape == (1, 3, 8, 8)


class TestPresets:
    """End-to-end runs of the shipped presets."""

    @pytest.mark.parametrize(
        "preset,expected_shape",
        [
            ("vit", (3, 224, 224)),
            ("clip", (3, 224, 224)),
            ("dpt", (3, 384, 512)),
            ("segformer", (3, 512, 512)),
            ("detr", (3, 800, 1066)),
            ("maskformer", (3, 800, 1056)),
            ("nougat", (3, 896, 672)),
            ("bgr_model", (3, 256, 256)),
        ],
    )
    def test_preset_output_shape(self, sample_image: np.ndarray, preset: str, expected_shape: tuple) -> None:
        result = ImageProcessor.from_preset(preset).preprocess(sample_image)

        assert result.pixel_values.shape == expected_shape
        assert result.reshaped_input_size == expected_shape[1:]
