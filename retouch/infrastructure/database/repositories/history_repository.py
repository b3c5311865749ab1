from __future__ import annotations

import itertools
import json
import logging
import os
import threading
from datetime import UTC, datetime
from typing import Any

from retouch import config
from retouch.domain.entities.cache_entries import EditHistoryEntry
from retouch.infrastructure.database.postgres_client import get_postgres_client, is_unique_violation

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

logger = logging.getLogger(__name__)

# module-level in-memory store for disabled mode; the lock stands in for the
# UNIQUE (edit_id, sequence) constraint of the real tables
_MEM_HISTORY: dict[str, EditHistoryEntry] = {}
_MEM_LOCK = threading.Lock()
_MEM_IDS = itertools.count(1)


class SequenceConflictError(RuntimeError):
    """Sequence assignment kept colliding with concurrent writers."""


def _is_supabase_conflict(exc: BaseException) -> bool:
    return getattr(exc, "code", None) == "23505"


class HistoryRepository:
    """Append-only ledger of applied parameter edits.

    Ordered by ``sequence`` for undo/redo and searched by
    ``(edit_id, fingerprint, strength)`` as the parameter-edit cache.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None
        self.max_retries = config.SEQUENCE_RETRIES

    def _in_memory(self) -> bool:
        return self.disabled or self.client is None

    def _row_to_entity(self, row: dict) -> EditHistoryEntry:
        """Convert database row to EditHistoryEntry."""
        created_at = row["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        params = row.get("params")
        if isinstance(params, str):
            params = json.loads(params)

        return EditHistoryEntry(
            id=str(row["id"]),
            edit_id=str(row["edit_id"]),
            fingerprint=row["fingerprint"],
            strength=int(row["effect_strength"]),
            image_id=row["image_id"],
            sequence=int(row["sequence"]),
            created_at=created_at,
            params=params,
        )

    def _max_sequence_in_memory(self, edit_id: str) -> int:
        return max((h.sequence for h in _MEM_HISTORY.values() if h.edit_id == edit_id), default=0)

    def get_next_sequence(self, edit_id: str) -> int:
        """``1 + max(sequence)`` for the edit, or 1 when it has no entries.

        This is a read; ``append`` performs the assignment atomically with the
        insert, so two concurrent appends never share a sequence number.
        """
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = self.pg_client.execute_one(
                "SELECT COALESCE(MAX(sequence), 0) + 1 AS next FROM edit_history WHERE edit_id = %s",
                (int(edit_id),),
            )
            return int(row["next"]) if row else 1

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                return self._max_sequence_in_memory(str(edit_id)) + 1

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("edit_history")
                .select("sequence")
                .eq("edit_id", edit_id)
                .order("sequence", desc=True)
                .limit(1)
                .execute()
            )
            rows = res.data or []
            return int(rows[0]["sequence"]) + 1 if rows else 1
        except Exception as exc:
            raise RuntimeError(f"DB next sequence failed: {exc}") from exc

    def append(
        self,
        edit_id: str,
        fingerprint: str,
        strength: int,
        image_id: str,
        params: dict[str, Any] | None = None,
    ) -> EditHistoryEntry:
        """Insert a ledger entry with the next free sequence number for the edit."""
        now = datetime.now(UTC)
        params_json = json.dumps(params) if params is not None else None

        # PostgreSQL mode: compute MAX+1 inside the INSERT, retry on UNIQUE violation
        if self.use_local_db and self.pg_client:
            query = """
                INSERT INTO edit_history (
                    edit_id, fingerprint, effect_strength, image_id, params, sequence, created_at
                )
                SELECT %s, %s, %s, %s, %s, COALESCE(MAX(sequence), 0) + 1, %s
                FROM edit_history WHERE edit_id = %s
                RETURNING *
            """
            for attempt in range(1, self.max_retries + 1):
                try:
                    row = self.pg_client.execute_insert(
                        query,
                        (int(edit_id), fingerprint, strength, image_id, params_json, now, int(edit_id)),
                    )
                    return self._row_to_entity(row)
                except Exception as exc:
                    if not is_unique_violation(exc):
                        raise RuntimeError(f"PostgreSQL insert history failed: {exc}") from exc
                    logger.debug("Sequence collision for edit %s (attempt %d)", edit_id, attempt)
            raise SequenceConflictError(f"Could not assign a sequence for edit {edit_id}")

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                entry = EditHistoryEntry(
                    id=f"hist_{next(_MEM_IDS)}",
                    edit_id=str(edit_id),
                    fingerprint=fingerprint,
                    strength=strength,
                    image_id=image_id,
                    sequence=self._max_sequence_in_memory(str(edit_id)) + 1,
                    created_at=now,
                    params=params,
                )
                _MEM_HISTORY[entry.id] = entry
            return entry

        # Supabase mode: read MAX, insert, retry on UNIQUE violation
        for attempt in range(1, self.max_retries + 1):  # pragma: no cover - network
            data = {
                "edit_id": int(edit_id),
                "fingerprint": fingerprint,
                "effect_strength": strength,
                "image_id": image_id,
                "params": params_json,
                "sequence": self.get_next_sequence(edit_id),
                "created_at": now.isoformat(),
            }
            try:
                res = self.client.table("edit_history").insert(data).execute()
                return self._row_to_entity(res.data[0])
            except Exception as exc:
                if not _is_supabase_conflict(exc):
                    raise RuntimeError(f"DB insert history failed: {exc}") from exc
                logger.debug("Sequence collision for edit %s (attempt %d)", edit_id, attempt)
        raise SequenceConflictError(f"Could not assign a sequence for edit {edit_id}")

    def find(self, edit_id: str, fingerprint: str, strength: int) -> EditHistoryEntry | None:
        """Latest ledger entry matching the parameter-edit cache key."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                SELECT * FROM edit_history
                WHERE edit_id = %s AND fingerprint = %s AND effect_strength = %s
                ORDER BY sequence DESC
                LIMIT 1
            """
            row = self.pg_client.execute_one(query, (int(edit_id), fingerprint, strength))
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            matches = [
                h
                for h in _MEM_HISTORY.values()
                if h.edit_id == str(edit_id) and h.fingerprint == fingerprint and h.strength == strength
            ]
            return max(matches, key=lambda h: h.sequence) if matches else None

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("edit_history")
                .select("*")
                .eq("edit_id", edit_id)
                .eq("fingerprint", fingerprint)
                .eq("effect_strength", strength)
                .order("sequence", desc=True)
                .limit(1)
                .execute()
            )
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB find history failed: {exc}") from exc

    def list_by_edit(self, edit_id: str) -> list[EditHistoryEntry]:
        """All ledger entries for an edit, ordered by sequence."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            rows = self.pg_client.execute_many(
                "SELECT * FROM edit_history WHERE edit_id = %s ORDER BY sequence ASC",
                (int(edit_id),),
            )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self._in_memory():
            entries = [h for h in _MEM_HISTORY.values() if h.edit_id == str(edit_id)]
            return sorted(entries, key=lambda h: h.sequence)

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("edit_history")
                .select("*")
                .eq("edit_id", edit_id)
                .order("sequence", desc=False)
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list history by edit failed: {exc}") from exc

    def get_by_sequence(self, edit_id: str, sequence: int) -> EditHistoryEntry | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = self.pg_client.execute_one(
                "SELECT * FROM edit_history WHERE edit_id = %s AND sequence = %s",
                (int(edit_id), sequence),
            )
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            for h in _MEM_HISTORY.values():
                if h.edit_id == str(edit_id) and h.sequence == sequence:
                    return h
            return None

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("edit_history")
                .select("*")
                .eq("edit_id", edit_id)
                .eq("sequence", sequence)
                .limit(1)
                .execute()
            )
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get history failed: {exc}") from exc

    def delete_by_edit(self, edit_id: str) -> int:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "DELETE FROM edit_history WHERE edit_id = %s"
            return self.pg_client.execute_update(query, (int(edit_id),))

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                ids = [k for k, v in _MEM_HISTORY.items() if v.edit_id == str(edit_id)]
                for k in ids:
                    _MEM_HISTORY.pop(k, None)
            return len(ids)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("edit_history").delete().eq("edit_id", edit_id).execute()
            return len(res.data or [])
        except Exception as exc:
            raise RuntimeError(f"DB delete history failed: {exc}") from exc
