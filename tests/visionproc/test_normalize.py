"""
Unit Tests for Photometric and Channel Transforms

This module tests:
- rescale: elementwise scaling and its round-trip law
- normalize: per-channel mean/std with scalar broadcasting
- flip_channel_order: RGB <-> BGR permutation
- convert_rgb / convert_grayscale / luma
"""

import numpy as np
import pytest

from visionproc.errors import ConfigError
from visionproc.processing.image import RawImage
from visionproc.processing.normalize import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    convert_grayscale,
    convert_rgb,
    flip_channel_order,
    luma,
    normalize,
    rescale,
)


class TestRescale:
    """Tests for rescale."""

    def test_default_factor_maps_to_unit_range(self, sample_image: np.ndarray) -> None:
        result = rescale(sample_image)

        assert result.dtype == np.float32
        assert result.min() >= 0.0
        assert result.max() <= 1.0 + 1e-6

    @pytest.mark.parametrize("factor", [1 / 255, 0.5, 2.0, 1 / 127.5])
    def test_round_trip(self, sample_image: np.ndarray, factor: float) -> None:
        """Rescaling then multiplying by the inverse factor restores the input."""
        pixels = sample_image.astype(np.float32)

        restored = rescale(pixels, factor) * (1 / factor)

        np.testing.assert_allclose(restored, pixels, rtol=1e-5, atol=1e-3)

    def test_returns_new_array(self) -> None:
        pixels = np.ones((2, 2, 3), dtype=np.float32)

        result = rescale(pixels, 3.0)

        assert result is not pixels
        assert np.all(pixels == 1.0)


class TestNormalize:
    """Tests for normalize."""

    def test_per_channel_formula(self) -> None:
        """Each channel is shifted and scaled by its own mean and std."""
        pixels = np.ones((2, 2, 3), dtype=np.float32)

        result = normalize(pixels, mean=(0.0, 0.5, 1.0), std=(1.0, 0.5, 2.0))

        np.testing.assert_allclose(result[0, 0], [1.0, 1.0, 0.0])

    def test_scalar_broadcast(self) -> None:
        pixels = np.full((2, 2, 1), 0.75, dtype=np.float32)

        result = normalize(pixels, mean=0.5, std=0.5)

        np.testing.assert_allclose(result, 0.5)

    def test_imagenet_constants(self, sample_image: np.ndarray) -> None:
        """Normalizing 0-1 data with ImageNet stats centres it near zero."""
        result = normalize(rescale(sample_image), IMAGENET_MEAN, IMAGENET_STD)

        expected_min = (0 - IMAGENET_MEAN) / IMAGENET_STD
        expected_max = (1 - IMAGENET_MEAN) / IMAGENET_STD
        for c in range(3):
            assert result[:, :, c].min() >= expected_min[c] - 1e-5
            assert result[:, :, c].max() <= expected_max[c] + 1e-5

    def test_length_mismatch_raises(self) -> None:
        """Per-channel values must match the channel count."""
        pixels = np.ones((2, 2, 3), dtype=np.float32)

        with pytest.raises(ConfigError, match="image_mean"):
            normalize(pixels, mean=(0.5, 0.5), std=0.5)

    def test_zero_std_raises(self) -> None:
        with pytest.raises(ConfigError, match="non-zero"):
            normalize(np.ones((2, 2, 3), dtype=np.float32), mean=0.0, std=(1.0, 0.0, 1.0))


class TestChannelTransforms:
    """Tests for channel order and colour conversion."""

    def test_flip_channel_order_rgb(self) -> None:
        pixels = np.array([[[1.0, 2.0, 3.0]]], dtype=np.float32)

        np.testing.assert_array_equal(flip_channel_order(pixels), [[[3.0, 2.0, 1.0]]])

    def test_flip_channel_order_keeps_alpha_last(self) -> None:
        pixels = np.array([[[1.0, 2.0, 3.0, 4.0]]], dtype=np.float32)

        np.testing.assert_array_equal(flip_channel_order(pixels), [[[3.0, 2.0, 1.0, 4.0]]])

    def test_flip_is_involution(self, sample_image: np.ndarray) -> None:
        """Flipping twice restores the original samples."""
        np.testing.assert_array_equal(flip_channel_order(flip_channel_order(sample_image)), sample_image)

    def test_luma_weights(self) -> None:
        pixels = np.array([[[255.0, 255.0, 255.0]]], dtype=np.float32)

        assert luma(pixels)[0, 0] == pytest.approx(255.0 * 0.9999, rel=1e-4)

    def test_convert_rgb_from_gray(self, sample_gray: np.ndarray) -> None:
        result = convert_rgb(RawImage.from_array(sample_gray))

        assert result.channels == 3
        np.testing.assert_array_equal(result.data[:, :, 0], result.data[:, :, 2])

    def test_convert_rgb_drops_alpha(self, sample_rgba: np.ndarray) -> None:
        result = convert_rgb(RawImage.from_array(sample_rgba))

        assert result.channels == 3
        np.testing.assert_array_equal(result.data, sample_rgba[:, :, :3].astype(np.float32))

    def test_convert_rgb_noop_for_rgb(self, sample_image: np.ndarray) -> None:
        image = RawImage.from_array(sample_image)

        assert convert_rgb(image) is image

    def test_convert_grayscale(self, sample_image: np.ndarray) -> None:
        result = convert_grayscale(RawImage.from_array(sample_image))

        assert result.shape == (480, 640, 1)
