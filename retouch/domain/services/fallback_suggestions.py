from __future__ import annotations

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.entities.cache_entries import NaturalSuggestion, SuggestionsCacheEntry

FALLBACK_TITLE = "Untitled Image"

FALLBACK_NATURAL_SUGGESTIONS: tuple[NaturalSuggestion, ...] = (
    NaturalSuggestion("Brighten", AdjustmentVector(brightness=15, contrast=5)),
    NaturalSuggestion("Boost contrast", AdjustmentVector(contrast=20)),
    NaturalSuggestion("Vivid colors", AdjustmentVector(saturation=25)),
    NaturalSuggestion("Warm tone", AdjustmentVector(hue=-10, saturation=10)),
    NaturalSuggestion("Crisp details", AdjustmentVector(sharpen=3.0, noise_reduction=10)),
)

FALLBACK_AI_SUGGESTIONS: tuple[str, ...] = (
    "Enhance lighting and contrast",
    "Add subtle background blur",
    "Apply vintage film effect",
    "Increase color saturation",
    "Add dramatic vignette",
)


def fallback_entry(image_id: str) -> SuggestionsCacheEntry:
    return SuggestionsCacheEntry(
        image_id=image_id,
        natural_suggestions=list(FALLBACK_NATURAL_SUGGESTIONS),
        ai_suggestions=list(FALLBACK_AI_SUGGESTIONS),
    )
