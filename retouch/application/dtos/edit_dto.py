from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from retouch.domain.entities.cache_entries import SuggestionsCacheEntry
from retouch.domain.entities.edit import EditEntity


def image_url(image_id: str) -> str:
    return f"/images/{image_id}"


class EditResponse(BaseModel):
    """Current state of an edit. Poll this until ``status`` leaves ``processing``."""
    id: str = Field(..., description="Unique identifier of the edit", example="42")
    title: str = Field(..., description="Display title of the edit", example="Harbor at dusk")
    status: str = Field(..., description="pending, processing, completed or failed", example="completed")
    original_image_id: str = Field(..., description="ID of the uploaded image")
    current_image_id: str = Field(..., description="ID of the latest successful result (original if none)")
    current_image_url: str = Field(..., description="URL serving the current image bytes")
    width: int = Field(..., description="Original image width in pixels", example=1200, gt=0)
    height: int = Field(..., description="Original image height in pixels", example=800, gt=0)
    prompt: str = Field("", description="Last generative prompt applied to the edit")
    refined_prompt: str | None = Field(None, description="Prompt actually sent to the generator")
    effect_strength: int = Field(50, description="Strength of the current result (0-100)", ge=0, le=100)
    created_at: datetime = Field(..., description="ISO timestamp when the edit was created")

    @classmethod
    def from_entity(cls, edit: EditEntity) -> EditResponse:
        return cls(
            id=edit.id,
            title=edit.title,
            status=edit.status.value,
            original_image_id=edit.original_image_id,
            current_image_id=edit.current_image_id,
            current_image_url=image_url(edit.current_image_id),
            width=edit.width,
            height=edit.height,
            prompt=edit.prompt,
            refined_prompt=edit.refined_prompt,
            effect_strength=edit.effect_strength,
            created_at=edit.created_at,
        )


class ListEditsResponse(BaseModel):
    """Response model for listing the user's edits, newest first."""
    edits: list[EditResponse] = Field(..., description="List of edits")


class NaturalSuggestionItem(BaseModel):
    label: str = Field(..., description="Button label", example="Warm tone")
    params: dict[str, Any] = Field(
        ...,
        description="Base (strength 50) adjustment vector",
        example={"brightness": 0, "contrast": 0, "saturation": 10, "hue": -10, "sharpen": 0.0, "noise_reduction": 0},
    )


class SuggestionsResponse(BaseModel):
    """Analysis results for an image."""
    image_id: str = Field(..., description="ID of the analyzed image")
    natural: list[NaturalSuggestionItem] = Field(..., description="Parametric adjustment suggestions")
    ai: list[str] = Field(..., description="Generative prompt suggestions")

    @classmethod
    def from_entry(cls, entry: SuggestionsCacheEntry) -> SuggestionsResponse:
        return cls(
            image_id=entry.image_id,
            natural=[
                NaturalSuggestionItem(label=s.label, params=s.vector.to_dict())
                for s in entry.natural_suggestions
            ],
            ai=list(entry.ai_suggestions),
        )


class UploadEditResponse(BaseModel):
    """Response model for a successful upload."""
    edit: EditResponse = Field(..., description="The newly created edit")
    suggestions: SuggestionsResponse = Field(..., description="Analysis of the uploaded image")


class RenameEditRequest(BaseModel):
    title: str = Field(..., description="New display title", example="Harbor at dusk")


class DeleteEditResponse(BaseModel):
    """Response model for edit deletion."""
    ok: bool = Field(True, description="Indicates whether the deletion was successful")


class GenerationRequest(BaseModel):
    """Request model for a generative (prompt-driven) edit."""
    prompt: str = Field(..., description="Edit request in plain language", example="make the sky dramatic")
    strength: int = Field(50, description="Edit intensity (0-100, 50 is the baseline)", example=50)
    refine_from_current: bool = Field(
        False, description="Edit the current result instead of the original upload"
    )
    clear_cache: bool = Field(False, description="Discard cached results for this edit first")
    keep_size_of: str | None = Field(
        None, description="Image ID whose dimensions the result must match (defaults to the edit's)"
    )


class AdjustmentRequest(BaseModel):
    """Request model for a parametric edit.

    Either ``params`` (a base vector) or any of ``prompt`` / ``selected_labels``.
    """
    params: dict[str, float] | None = Field(
        None,
        description="Base (strength 50) adjustment vector",
        example={"brightness": 20, "contrast": 0, "saturation": 0, "hue": 0, "sharpen": 0, "noise_reduction": 0},
    )
    prompt: str | None = Field(None, description="Adjustment described in plain language", example="a bit warmer")
    selected_labels: list[str] = Field(
        default_factory=list, description="Labels of natural suggestions to combine", example=["Warm tone"]
    )
    strength: int = Field(50, description="Edit intensity (0-100, 50 is the baseline)", example=100)
    refine_from_current: bool = Field(
        False, description="Adjust the current result instead of the original upload"
    )


class EditJobResponse(BaseModel):
    """Response for a started edit attempt; the edit is ``processing`` until it resolves."""
    edit: EditResponse = Field(..., description="Edit state when the attempt was accepted")
    base_params: dict[str, Any] | None = Field(
        None,
        description="Resolved base vector when known up front, for re-scaling with the strength slider",
    )
