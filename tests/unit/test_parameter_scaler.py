import pytest

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.errors import ValidationError
from retouch.domain.services.parameter_scaler import ParameterScaler as PS


BASE = AdjustmentVector(brightness=20, contrast=-15, saturation=7, hue=-33, sharpen=2.5, noise_reduction=12)


def test_baseline_is_identity():
    assert PS.scale(BASE, 50) == BASE
    assert PS.scale(AdjustmentVector(), 50) == AdjustmentVector()


def test_factor():
    assert PS.factor(0) == 0.0
    assert PS.factor(50) == 1.0
    assert PS.factor(100) == 2.0


def test_double_and_zero():
    doubled = PS.scale(BASE, 100)
    assert doubled == AdjustmentVector(
        brightness=40, contrast=-30, saturation=14, hue=-66, sharpen=5.0, noise_reduction=24
    )
    assert PS.scale(BASE, 0).is_zero


def test_rounding_half_up():
    # 7 * 0.3 = 2.1 -> 2, 2.5 * 0.3 = 0.75 -> 0.8, 5 * 1.1 = 5.5 -> 6
    out = PS.scale(AdjustmentVector(saturation=7, sharpen=2.5, brightness=5), 15)
    assert out.saturation == 2
    assert out.sharpen == 0.8
    out = PS.scale(AdjustmentVector(brightness=5), 55)
    assert out.brightness == 6


def test_not_clamped():
    # scaled vectors may leave the input ranges; pixel maths clips instead
    out = PS.scale(AdjustmentVector(brightness=50, hue=180), 100)
    assert out.brightness == 100
    assert out.hue == 360


def test_distinct_strengths_give_distinct_vectors():
    # holds for this base only; see the collision case below
    seen = {PS.scale(BASE, s) for s in range(0, 101, 5)}
    assert len(seen) == len(range(0, 101, 5))


def test_small_vectors_collide_across_nearby_strengths():
    # integer fields round after scaling, so a base of 1 cannot tell 50 from 51.
    # Ledger keys carry the strength, so such requests still get separate entries.
    small = AdjustmentVector(brightness=1)
    assert PS.scale(small, 50) == PS.scale(small, 51) == AdjustmentVector(brightness=1)
    assert PS.scale(small, 74) == AdjustmentVector(brightness=1)
    assert PS.scale(small, 75) == AdjustmentVector(brightness=2)


def test_deterministic():
    assert PS.scale(BASE, 73) == PS.scale(BASE, 73)


@pytest.mark.parametrize("strength", [-1, 101, 50.0, True, "50"])
def test_invalid_strength(strength):
    with pytest.raises(ValidationError):
        PS.scale(BASE, strength)
