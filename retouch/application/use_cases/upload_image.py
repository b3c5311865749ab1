from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from retouch import config
from retouch.domain.entities.cache_entries import ImageAnalysis, SuggestionsCacheEntry
from retouch.domain.entities.edit import EditEntity
from retouch.domain.services.fallback_suggestions import (
    FALLBACK_AI_SUGGESTIONS,
    FALLBACK_NATURAL_SUGGESTIONS,
    FALLBACK_TITLE,
)
from retouch.infrastructure.codec.pillow_codec import PillowCodec
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.suggestions_repository import SuggestionsRepository
from retouch.infrastructure.services.vision_service import OpenAIVisionService
from retouch.infrastructure.storage.blob_storage import BlobStorage

logger = logging.getLogger(__name__)


@dataclass
class UploadEditUseCase:
    storage: BlobStorage
    edits: EditRepository
    suggestions: SuggestionsRepository
    vision: OpenAIVisionService
    codec: PillowCodec
    analysis_timeout: float = config.ANALYSIS_TIMEOUT

    async def analyze(self, data: bytes) -> ImageAnalysis:
        """Vision pass that never fails: any error yields the static fallback set."""
        try:
            return await asyncio.wait_for(self.vision.analyze(data), self.analysis_timeout)
        except Exception as exc:
            logger.warning("Image analysis failed, using fallback suggestions: %s", exc)
            return ImageAnalysis(
                title=FALLBACK_TITLE,
                natural_suggestions=list(FALLBACK_NATURAL_SUGGESTIONS),
                ai_suggestions=list(FALLBACK_AI_SUGGESTIONS),
            )

    async def execute(
        self, data: bytes, user_id: str | None = None
    ) -> tuple[EditEntity, SuggestionsCacheEntry]:
        """
        Store an uploaded image and create a pending edit for it.

        Raises:
            DecodeError: If the bytes are not a readable, non-empty image
        """
        width, height = self.codec.dimensions(data)
        mime_type = self.codec.mime_type(data)

        image_id = await run_in_threadpool(self.storage.save, data, mime_type)
        analysis = await self.analyze(data)
        entry = await run_in_threadpool(self.suggestions.upsert, analysis.to_cache_entry(image_id))
        edit = await run_in_threadpool(
            self.edits.create,
            original_image_id=image_id,
            width=width,
            height=height,
            title=analysis.title,
            user_id=user_id,
        )
        logger.info("Created edit %s for image %s (%dx%d)", edit.id, image_id, width, height)
        return edit, entry
