from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EditStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class EditEntity:
    id: str
    original_image_id: str  # First uploaded image
    current_image_id: str  # Latest successful result (or original if no edits)
    width: int  # Original image width
    height: int  # Original image height
    prompt: str
    created_at: datetime
    refined_prompt: str | None = None
    effect_strength: int = 50  # 0-100, 50 is the unscaled baseline
    status: EditStatus = EditStatus.PENDING
    title: str = "Untitled Draft"
    user_id: str | None = None
