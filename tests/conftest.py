"""
Pytest Fixtures - Shared Test Fixtures for visionproc

This module provides reusable fixtures for all test modules.

Fixtures:
    sample_image: Sample RGB image (480x640) for testing
    sample_image_portrait: Sample RGB image (640x480) for testing
    sample_image_small: Small RGB image (7x5) for edge case testing
    sample_gray: Sample single-channel image (60x80)
    sample_rgba: Sample RGBA image (60x80)
    detection_outputs: Raw detector outputs for a batch of two images
    mask_outputs: Raw mask-classification outputs for one image
"""

import numpy as np
import pytest


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture
def sample_image() -> np.ndarray:
    """
    Sample landscape RGB image for testing.

    Returns:
        RGB uint8 array with shape [480, 640, 3]
    """
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def sample_image_portrait() -> np.ndarray:
    """
    Sample portrait RGB image for testing.

    Returns:
        RGB uint8 array with shape [640, 480, 3]
    """
    rng = np.random.default_rng(43)
    return rng.integers(0, 256, (640, 480, 3), dtype=np.uint8)


@pytest.fixture
def sample_image_small() -> np.ndarray:
    """
    Small odd-sized RGB image for edge case testing.

    Returns:
        RGB uint8 array with shape [7, 5, 3]
    """
    rng = np.random.default_rng(44)
    return rng.integers(0, 256, (7, 5, 3), dtype=np.uint8)


@pytest.fixture
def sample_gray() -> np.ndarray:
    """
    Sample grayscale image.

    Returns:
        uint8 array with shape [60, 80]
    """
    rng = np.random.default_rng(45)
    return rng.integers(0, 256, (60, 80), dtype=np.uint8)


@pytest.fixture
def sample_rgba() -> np.ndarray:
    """
    Sample RGBA image.

    Returns:
        uint8 array with shape [60, 80, 4]
    """
    rng = np.random.default_rng(46)
    return rng.integers(0, 256, (60, 80, 4), dtype=np.uint8)


# =============================================================================
# Model Output Fixtures
# =============================================================================

@pytest.fixture
def detection_outputs() -> dict:
    """
    Detector outputs for two images, three queries and three classes
    (the last class is "no object").

    Image 0: query 0 confident class 0, query 1 no-object, query 2 weak.
    Image 1: query 1 confident class 1.
    """
    logits = np.array(
        [
            [[4.0, 0.0, 0.0], [0.0, 0.0, 4.0], [0.1, 0.0, 0.0]],
            [[0.0, 0.0, 0.0], [0.0, 5.0, 0.0], [0.0, 0.0, 3.0]],
        ],
        dtype=np.float32,
    )
    pred_boxes = np.array(
        [
            [[0.5, 0.5, 0.2, 0.4], [0.3, 0.3, 0.1, 0.1], [0.1, 0.1, 0.1, 0.1]],
            [[0.5, 0.5, 0.5, 0.5], [0.95, 0.5, 0.2, 0.2], [0.5, 0.5, 0.1, 0.1]],
        ],
        dtype=np.float32,
    )
    return {"logits": logits, "pred_boxes": pred_boxes}


@pytest.fixture
def mask_outputs() -> dict:
    """
    Mask-classification outputs for one 4x4 image with three queries and
    two real classes (plus no-object).

    Query 0: class 0, covers the left half
    Query 1: class 1, covers the right half
    Query 2: no-object
    """
    class_logits = np.array(
        [[[6.0, 0.0, 0.0], [0.0, 5.0, 0.0], [0.0, 0.0, 6.0]]],
        dtype=np.float32,
    )
    masks = np.full((1, 3, 4, 4), -10.0, dtype=np.float32)
    masks[0, 0, :, :2] = 10.0
    masks[0, 1, :, 2:] = 10.0
    masks[0, 2] = 10.0
    return {"class_queries_logits": class_logits, "masks_queries_logits": masks}
