from __future__ import annotations

from dataclasses import dataclass

from retouch.application.use_cases.manage_edit import require_edit
from retouch.domain.entities.cache_entries import EditHistoryEntry
from retouch.domain.entities.edit import EditEntity
from retouch.domain.errors import NotFoundError
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.history_repository import HistoryRepository


@dataclass
class RevertEditUseCase:
    """
    Use case for undo/redo across an edit's parameter history.

    Nothing is deleted or re-applied: the edit is pointed at the image a
    ledger entry produced, so moving back and forth never grows the ledger.
    """

    edits: EditRepository
    history: HistoryRepository

    def execute(self, edit_id: str, sequence: int, user_id: str | None = None) -> EditEntity:
        """
        Point the edit at the result of ledger entry ``sequence``.

        Raises:
            NotFoundError: If the edit or the ledger entry doesn't exist
        """
        require_edit(self.edits, edit_id, user_id)
        entry = self.history.get_by_sequence(edit_id, sequence)
        if entry is None:
            raise NotFoundError(f"History entry {sequence} not found for edit {edit_id}")
        updated = self.edits.complete(edit_id, entry.image_id, effect_strength=entry.strength)
        if updated is None:
            raise NotFoundError(f"Edit {edit_id} not found")
        return updated

    def get_history(self, edit_id: str, user_id: str | None = None) -> tuple[EditEntity, list[EditHistoryEntry]]:
        edit = require_edit(self.edits, edit_id, user_id)
        return edit, self.history.list_by_edit(edit_id)
