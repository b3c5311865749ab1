from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any

from retouch.domain.errors import ValidationError

# Inclusive (min, max) per field
ADJUSTMENT_RANGES: dict[str, tuple[float, float]] = {
    "brightness": (-50, 50),
    "contrast": (-50, 50),
    "saturation": (-50, 50),
    "hue": (-180, 180),
    "sharpen": (0, 10),
    "noise_reduction": (0, 100),
}

INTEGER_FIELDS = ("brightness", "contrast", "saturation", "hue", "noise_reduction")


@dataclass(frozen=True)
class AdjustmentVector:
    """One parametric photo adjustment.

    ``sharpen`` is the only sub-unit field; every other field is an integer.
    """

    brightness: int = 0
    contrast: int = 0
    saturation: int = 0
    hue: int = 0
    sharpen: float = 0.0
    noise_reduction: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, validate: bool = True) -> AdjustmentVector:
        unknown = set(data) - set(ADJUSTMENT_RANGES) - {"noiseReduction", "noise"}
        if unknown:
            raise ValidationError(f"Unknown adjustment fields: {', '.join(sorted(unknown))}")
        values = dict(data)
        # camelCase and the legacy "noise" key both map to noise_reduction
        for alias in ("noiseReduction", "noise"):
            if alias in values:
                values.setdefault("noise_reduction", values.pop(alias))
        try:
            numbers = {field: float(values.get(field, 0)) for field in ADJUSTMENT_RANGES}
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed adjustment vector: {exc}") from exc
        for field, number in numbers.items():
            if not math.isfinite(number):
                raise ValidationError(f"{field} must be a finite number, got {number}")
        integers = {field: int(round(numbers[field])) for field in INTEGER_FIELDS}
        vector = cls(sharpen=round(numbers["sharpen"], 1), **integers)
        if validate:
            vector.validate()
        return vector

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def validate(self) -> AdjustmentVector:
        for field, (low, high) in ADJUSTMENT_RANGES.items():
            value = getattr(self, field)
            if not low <= value <= high:
                raise ValidationError(f"{field} must be within [{low}, {high}], got {value}")
        return self

    def clamped(self) -> AdjustmentVector:
        values = {}
        for field, (low, high) in ADJUSTMENT_RANGES.items():
            values[field] = min(max(getattr(self, field), low), high)
        return AdjustmentVector(**values)

    def __add__(self, other: AdjustmentVector) -> AdjustmentVector:
        if not isinstance(other, AdjustmentVector):
            return NotImplemented
        return AdjustmentVector(
            brightness=self.brightness + other.brightness,
            contrast=self.contrast + other.contrast,
            saturation=self.saturation + other.saturation,
            hue=self.hue + other.hue,
            sharpen=round(self.sharpen + other.sharpen, 1),
            noise_reduction=self.noise_reduction + other.noise_reduction,
        )

    @property
    def is_zero(self) -> bool:
        return all(getattr(self, field) == 0 for field in ADJUSTMENT_RANGES)
