from __future__ import annotations

from retouch.domain.entities.adjustment import ADJUSTMENT_RANGES, AdjustmentVector

CacheKey = tuple[str, str, int]


class RequestFingerprinter:
    """Deterministic cache keys for parameter edit requests.

    Vectors are fingerprinted from their numeric field values only, so a vector
    typed in directly and one inferred from a prompt or suggestion chips map to
    the same key. Lookups always use ``(edit_id, fingerprint, strength)``.
    """

    VECTOR_PREFIX = "v1:"

    @staticmethod
    def _canonical_number(value: float) -> str:
        # 20, 20.0 and -0.0 must not produce different keys
        as_float = float(value) + 0.0
        if as_float.is_integer():
            return str(int(as_float))
        return repr(round(as_float, 1))

    @classmethod
    def for_vector(cls, vector: AdjustmentVector, *, source_image_id: str | None = None) -> str:
        body = ",".join(
            f"{field}={cls._canonical_number(getattr(vector, field))}" for field in ADJUSTMENT_RANGES
        )
        if source_image_id:
            body = f"{body}@{source_image_id}"
        return cls.VECTOR_PREFIX + body

    @staticmethod
    def cache_key(edit_id: str, fingerprint: str, strength: int) -> CacheKey:
        return (str(edit_id), fingerprint, int(strength))
