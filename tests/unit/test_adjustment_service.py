import numpy as np

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.services.adjustment_service import AdjustmentService as AS


def test_brightness_clip():
    img = np.array([[0.0, 0.5], [0.9, 1.0]], dtype=np.float32)
    out = AS.adjust_brightness(img, 0.3)
    assert out.dtype == np.float32
    assert np.isclose(out[0, 0], 0.3)
    assert np.isclose(out[1, 1], 1.0)


def test_contrast_around_mid_gray():
    img = np.array([[0.25, 0.5, 0.75]], dtype=np.float32)
    out = AS.adjust_contrast(img, 2.0)
    assert np.allclose(out, [[0.0, 0.5, 1.0]])


def test_zero_saturation_is_gray():
    rgb = np.random.default_rng(0).random((4, 4, 3), dtype=np.float32)
    out = AS.adjust_saturation(rgb, 0.0)
    assert np.allclose(out[..., 0], out[..., 1], atol=1e-6)
    assert np.allclose(out[..., 1], out[..., 2], atol=1e-6)


def test_full_hue_turn_is_identity():
    rgb = np.random.default_rng(1).random((4, 4, 3), dtype=np.float32) * 0.5 + 0.25
    assert np.allclose(AS.rotate_hue(rgb, 360.0), rgb, atol=1e-4)


def test_sharpen_and_noise_keep_flat_regions():
    flat = np.full((5, 5, 3), 0.4, dtype=np.float32)
    assert np.allclose(AS.sharpen(flat, 2.0), flat)
    assert np.allclose(AS.reduce_noise(flat, 1.0), flat)


def test_box_blur_keeps_shape():
    img = np.zeros((3, 7), dtype=np.float32)
    img[1, 3] = 9.0
    out = AS.box_blur(img)
    assert out.shape == img.shape
    assert np.isclose(out[1, 3], 1.0)


def test_apply_zero_vector_is_identity():
    rgb = np.random.default_rng(2).random((6, 6, 3), dtype=np.float32)
    assert np.allclose(AS().apply(rgb, AdjustmentVector()), rgb)


def test_apply_scaled_vector_beyond_input_range_stays_clipped():
    rgb = np.full((2, 2, 3), 0.5, dtype=np.float32)
    out = AS().apply(rgb, AdjustmentVector(brightness=100, contrast=100))
    assert out.max() <= 1.0 and out.min() >= 0.0
    assert np.allclose(out, 1.0)
