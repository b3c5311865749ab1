from __future__ import annotations

import logging
from dataclasses import dataclass

from retouch.domain.entities.edit import EditEntity
from retouch.domain.errors import NotFoundError, ValidationError
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.history_repository import HistoryRepository
from retouch.infrastructure.database.repositories.strength_cache_repository import (
    StrengthCacheRepository,
)
from retouch.infrastructure.database.repositories.suggestions_repository import SuggestionsRepository
from retouch.infrastructure.storage.blob_storage import BlobStorage

logger = logging.getLogger(__name__)


def require_edit(edits: EditRepository, edit_id: str, user_id: str | None = None) -> EditEntity:
    """Fetch an edit, treating another user's edit as absent."""
    edit = edits.get(edit_id)
    if edit is None or (user_id is not None and edit.user_id != user_id):
        raise NotFoundError(f"Edit {edit_id} not found")
    return edit


@dataclass
class RenameEditUseCase:
    edits: EditRepository

    def execute(self, edit_id: str, title: str, user_id: str | None = None) -> EditEntity:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title must not be empty")
        require_edit(self.edits, edit_id, user_id)
        updated = self.edits.update_title(edit_id, title)
        if updated is None:
            raise NotFoundError(f"Edit {edit_id} not found")
        return updated


@dataclass
class DeleteEditUseCase:
    """
    Delete an edit together with everything derived from it.

    Removes the strength cache, the history ledger, the suggestions of every
    image the edit produced, the image blobs and finally the edit row.
    """

    edits: EditRepository
    strength_cache: StrengthCacheRepository
    history: HistoryRepository
    suggestions: SuggestionsRepository
    storage: BlobStorage

    def execute(self, edit_id: str, user_id: str | None = None) -> bool:
        edit = require_edit(self.edits, edit_id, user_id)

        image_ids = {edit.original_image_id, edit.current_image_id}
        image_ids.update(entry.image_id for entry in self.strength_cache.list_by_edit(edit_id))
        image_ids.update(entry.image_id for entry in self.history.list_by_edit(edit_id))

        purged = self.strength_cache.purge(edit_id)
        ledger = self.history.delete_by_edit(edit_id)
        for image_id in image_ids:
            self.suggestions.delete(image_id)
            self.storage.delete(image_id)
        ok = self.edits.delete(edit_id)
        logger.info(
            "Deleted edit %s (%d cached strengths, %d history entries, %d images)",
            edit_id,
            purged,
            ledger,
            len(image_ids),
        )
        return ok
