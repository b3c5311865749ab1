from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from retouch.domain.entities.adjustment import AdjustmentVector


@dataclass(frozen=True)
class StrengthCacheEntry:
    edit_id: str
    strength: int
    image_id: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class EditHistoryEntry:
    id: str
    edit_id: str
    fingerprint: str
    strength: int
    image_id: str
    sequence: int  # 1, 2, 3, ... per edit, no gaps
    created_at: datetime
    params: dict | None = None  # Scaled vector actually applied


@dataclass(frozen=True)
class NaturalSuggestion:
    label: str
    vector: AdjustmentVector


@dataclass(frozen=True)
class SuggestionsCacheEntry:
    image_id: str
    natural_suggestions: list[NaturalSuggestion] = field(default_factory=list)
    ai_suggestions: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    def find(self, label: str) -> NaturalSuggestion | None:
        for suggestion in self.natural_suggestions:
            if suggestion.label == label:
                return suggestion
        return None


@dataclass(frozen=True)
class ImageAnalysis:
    """Result of one vision pass over an image."""

    title: str
    natural_suggestions: list[NaturalSuggestion] = field(default_factory=list)
    ai_suggestions: list[str] = field(default_factory=list)

    def to_cache_entry(self, image_id: str) -> SuggestionsCacheEntry:
        return SuggestionsCacheEntry(
            image_id=image_id,
            natural_suggestions=list(self.natural_suggestions),
            ai_suggestions=list(self.ai_suggestions),
        )
