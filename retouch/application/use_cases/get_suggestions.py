from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from retouch import config
from retouch.application.use_cases.manage_edit import require_edit
from retouch.domain.entities.cache_entries import SuggestionsCacheEntry
from retouch.domain.services.fallback_suggestions import fallback_entry
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.suggestions_repository import SuggestionsRepository
from retouch.infrastructure.services.vision_service import OpenAIVisionService
from retouch.infrastructure.storage.blob_storage import BlobStorage

logger = logging.getLogger(__name__)


@dataclass
class GetSuggestionsUseCase:
    """Suggestions for an edit's current image, analyzing it on a cache miss."""

    edits: EditRepository
    suggestions: SuggestionsRepository
    storage: BlobStorage
    vision: OpenAIVisionService
    analysis_timeout: float = config.ANALYSIS_TIMEOUT

    async def execute(self, edit_id: str, user_id: str | None = None) -> SuggestionsCacheEntry:
        edit = await run_in_threadpool(require_edit, self.edits, edit_id, user_id)
        image_id = edit.current_image_id

        cached = await run_in_threadpool(self.suggestions.get, image_id)
        if cached is not None:
            return cached

        data = await run_in_threadpool(self.storage.load, image_id)
        try:
            analysis = await asyncio.wait_for(self.vision.analyze(data), self.analysis_timeout)
        except Exception as exc:
            # fallback is served but not cached so a later call can retry the analysis
            logger.warning("Analysis of image %s failed, serving fallback: %s", image_id, exc)
            return fallback_entry(image_id)
        return await run_in_threadpool(self.suggestions.upsert, analysis.to_cache_entry(image_id))
