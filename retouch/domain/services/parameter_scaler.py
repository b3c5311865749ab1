from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.errors import ValidationError

BASELINE_STRENGTH = 50
MIN_STRENGTH = 0
MAX_STRENGTH = 100


def validate_strength(strength: int) -> int:
    if isinstance(strength, bool) or not isinstance(strength, int):
        raise ValidationError(f"strength must be an integer, got {strength!r}")
    if not MIN_STRENGTH <= strength <= MAX_STRENGTH:
        raise ValidationError(f"strength must be within [0, 100], got {strength}")
    return strength


def _round(value: float, places: str) -> Decimal:
    # Half-up on the decimal text so identical inputs always land on the same value
    return Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP)


class ParameterScaler:
    """Scale a base (strength 50) adjustment vector to a requested strength.

    factor = strength / 50, so 50 returns the base vector unchanged, 100 doubles
    it and 0 zeroes it. Integer fields round to the nearest integer and
    ``sharpen`` rounds to one decimal place. The result is not clamped to the
    input ranges; the adjustment service clamps pixel values instead.
    """

    @staticmethod
    def factor(strength: int) -> float:
        return validate_strength(strength) / BASELINE_STRENGTH

    @staticmethod
    def scale(base: AdjustmentVector, strength: int) -> AdjustmentVector:
        factor = ParameterScaler.factor(strength)
        if strength == BASELINE_STRENGTH:
            return base
        return AdjustmentVector(
            brightness=int(_round(base.brightness * factor, "1")),
            contrast=int(_round(base.contrast * factor, "1")),
            saturation=int(_round(base.saturation * factor, "1")),
            hue=int(_round(base.hue * factor, "1")),
            sharpen=float(_round(base.sharpen * factor, "0.1")),
            noise_reduction=int(_round(base.noise_reduction * factor, "1")),
        )
