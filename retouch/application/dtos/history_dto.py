from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from retouch.application.dtos.edit_dto import image_url
from retouch.domain.entities.cache_entries import EditHistoryEntry


class HistoryItem(BaseModel):
    """Represents a single applied parameter edit in the ledger."""
    sequence: int = Field(..., description="Position in the edit's history, starting at 1", example=1, ge=1)
    image_id: str = Field(..., description="ID of the resulting image")
    image_url: str = Field(..., description="URL serving the resulting image bytes")
    strength: int = Field(..., description="Strength the edit was applied at", example=100)
    fingerprint: str = Field(..., description="Cache key of the base vector")
    params: dict[str, Any] | None = Field(
        None, description="Scaled vector that was applied", example={"brightness": 40}
    )
    created_at: datetime = Field(..., description="ISO timestamp when the edit was applied")

    @classmethod
    def from_entity(cls, entry: EditHistoryEntry) -> HistoryItem:
        return cls(
            sequence=entry.sequence,
            image_id=entry.image_id,
            image_url=image_url(entry.image_id),
            strength=entry.strength,
            fingerprint=entry.fingerprint,
            params=entry.params,
            created_at=entry.created_at,
        )


class ListHistoryResponse(BaseModel):
    """Response model for an edit's history, ordered by sequence."""
    edit_id: str = Field(..., description="ID of the edit")
    current_image_id: str = Field(..., description="ID of the image the edit currently points at")
    history: list[HistoryItem] = Field(..., description="List of history items")
