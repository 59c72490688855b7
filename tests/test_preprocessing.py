"""Tests for Otsu binarization and the preprocessing pipeline."""

import numpy as np

from budget_digitizer.preprocessing.binarize import (
    DEFAULT_THRESHOLD,
    binarize,
    otsu_binarize,
    to_luminance,
)
from budget_digitizer.preprocessing.pipeline import PreprocessingPipeline, calculate_contrast
from budget_digitizer.utils.config import PreprocessingConfig


def _two_level_rgb() -> np.ndarray:
    image = np.full((4, 4, 3), 10, dtype=np.uint8)
    image[:, 2:] = 200
    return image


class TestLuminance:
    """Tests for luminance conversion."""

    def test_rgb_weights(self) -> None:
        image = np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]], dtype=np.uint8)
        gray, alpha = to_luminance(image)
        assert gray.tolist() == [[76, 150, 29]]
        assert alpha is None

    def test_transparent_is_white(self) -> None:
        image = np.array([[[0, 0, 0, 0], [0, 0, 0, 255]]], dtype=np.uint8)
        gray, alpha = to_luminance(image)
        assert gray.tolist() == [[255, 0]]
        assert alpha.tolist() == [[0, 255]]

    def test_grayscale_passthrough(self, sample_image: np.ndarray) -> None:
        gray, alpha = to_luminance(sample_image)
        assert np.array_equal(gray, sample_image)
        assert alpha is None


class TestOtsuBinarize:
    """Tests for the Otsu threshold step."""

    def test_bimodal_splits_levels(self) -> None:
        gray = np.full((10, 10), 10, dtype=np.uint8)
        gray[:, 5:] = 200
        threshold, binary = otsu_binarize(gray)
        assert 10 <= threshold < 200
        assert np.all(binary[:, :5] == 0)
        assert np.all(binary[:, 5:] == 255)

    def test_single_level_uses_default(self) -> None:
        gray = np.full((8, 8), 50, dtype=np.uint8)
        threshold, binary = otsu_binarize(gray)
        assert threshold == DEFAULT_THRESHOLD
        assert np.all(binary == 0)

    def test_single_white_level_stays_white(self) -> None:
        threshold, binary = otsu_binarize(np.full((4, 4), 255, dtype=np.uint8))
        assert threshold == DEFAULT_THRESHOLD
        assert np.all(binary == 255)

    def test_binary_values_only(self, sample_image: np.ndarray) -> None:
        _, binary = otsu_binarize(sample_image)
        assert set(np.unique(binary).tolist()) <= {0, 255}


class TestBinarize:
    """Tests for the binarize operation."""

    def test_same_shape_rgb(self, sample_color_image: np.ndarray) -> None:
        result = binarize(sample_color_image)
        assert result.shape == sample_color_image.shape
        assert result.dtype == np.uint8

    def test_same_shape_grayscale(self, sample_image: np.ndarray) -> None:
        assert binarize(sample_image).shape == sample_image.shape

    def test_blend_values(self) -> None:
        result = binarize(_two_level_rgb())
        # dark: 0.6 * 10 + 0.4 * 0; light: 0.6 * 200 + 0.4 * 255
        assert set(np.unique(result).tolist()) == {6, 222}
        assert np.all(result[:, :2] == 6)
        assert np.all(result[:, 2:] == 222)

    def test_channels_replicated(self) -> None:
        result = binarize(_two_level_rgb())
        assert np.array_equal(result[..., 0], result[..., 1])
        assert np.array_equal(result[..., 1], result[..., 2])

    def test_alpha_preserved_and_transparent_white(self) -> None:
        image = np.array(
            [[[0, 0, 0, 255], [0, 0, 0, 0]], [[255, 255, 255, 255], [0, 0, 0, 255]]],
            dtype=np.uint8,
        )
        result = binarize(image)
        assert result.shape == image.shape
        assert np.array_equal(result[..., 3], image[..., 3])
        assert result[0, 1, :3].tolist() == [255, 255, 255]

    def test_empty_returned_unchanged(self) -> None:
        empty = np.zeros((0, 0, 3), dtype=np.uint8)
        assert binarize(empty) is empty

    def test_input_not_modified(self) -> None:
        image = _two_level_rgb()
        original = image.copy()
        binarize(image)
        assert np.array_equal(image, original)


class TestPreprocessingPipeline:
    """Tests for the configurable pipeline."""

    def test_binarizes_by_default(self) -> None:
        result = PreprocessingPipeline().process(_two_level_rgb())
        assert result.shape == (4, 4, 3)
        assert result[0, 0, 0] == 6

    def test_disabled_returns_input(self) -> None:
        image = _two_level_rgb()
        pipeline = PreprocessingPipeline(PreprocessingConfig(binarize_enabled=False))
        assert pipeline.process(image) is image

    def test_gray_weight_from_config(self) -> None:
        pipeline = PreprocessingPipeline(PreprocessingConfig(gray_weight=0.0))
        result = pipeline.process(_two_level_rgb())
        assert set(np.unique(result).tolist()) == {0, 255}

    def test_contrast(self, sample_image: np.ndarray) -> None:
        assert calculate_contrast(sample_image) > 0
        assert calculate_contrast(np.zeros((0, 0), dtype=np.uint8)) == 0.0
