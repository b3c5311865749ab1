from __future__ import annotations

import os
import threading
from datetime import UTC, datetime

from retouch.domain.entities.cache_entries import StrengthCacheEntry
from retouch.infrastructure.database.postgres_client import get_postgres_client

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode, keyed by (edit_id, strength)
_MEM_STRENGTH: dict[tuple[str, int], StrengthCacheEntry] = {}
_MEM_LOCK = threading.Lock()


class StrengthCacheRepository:
    """Generative results keyed by ``(edit_id, strength)``, unique per key."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _in_memory(self) -> bool:
        return self.disabled or self.client is None

    def _row_to_entity(self, row: dict) -> StrengthCacheEntry:
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return StrengthCacheEntry(
            edit_id=str(row["edit_id"]),
            strength=int(row["strength"]),
            image_id=row["image_id"],
            created_at=created_at,
        )

    def get(self, edit_id: str, strength: int) -> StrengthCacheEntry | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = self.pg_client.execute_one(
                "SELECT * FROM strength_cache WHERE edit_id = %s AND strength = %s",
                (int(edit_id), strength),
            )
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            return _MEM_STRENGTH.get((str(edit_id), strength))

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("strength_cache")
                .select("*")
                .eq("edit_id", edit_id)
                .eq("strength", strength)
                .limit(1)
                .execute()
            )
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get strength cache failed: {exc}") from exc

    def upsert(self, edit_id: str, strength: int, image_id: str) -> StrengthCacheEntry:
        """Insert or overwrite the entry for ``(edit_id, strength)``."""
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO strength_cache (edit_id, strength, image_id, created_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (edit_id, strength)
                    DO UPDATE SET image_id = EXCLUDED.image_id, created_at = EXCLUDED.created_at
                    RETURNING *
                """
                row = self.pg_client.execute_insert(query, (int(edit_id), strength, image_id, now))
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL upsert strength cache failed: {exc}") from exc

        # In-memory mode
        if self._in_memory():
            entry = StrengthCacheEntry(
                edit_id=str(edit_id), strength=strength, image_id=image_id, created_at=now
            )
            with _MEM_LOCK:
                _MEM_STRENGTH[(entry.edit_id, strength)] = entry
            return entry

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "edit_id": int(edit_id),
                "strength": strength,
                "image_id": image_id,
                "created_at": now.isoformat(),
            }
            res = (
                self.client.table("strength_cache")
                .upsert(data, on_conflict="edit_id,strength")
                .execute()
            )
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB upsert strength cache failed: {exc}") from exc

    def list_by_edit(self, edit_id: str) -> list[StrengthCacheEntry]:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            rows = self.pg_client.execute_many(
                "SELECT * FROM strength_cache WHERE edit_id = %s ORDER BY strength",
                (int(edit_id),),
            )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self._in_memory():
            entries = [e for (eid, _), e in _MEM_STRENGTH.items() if eid == str(edit_id)]
            return sorted(entries, key=lambda e: e.strength)

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("strength_cache")
                .select("*")
                .eq("edit_id", edit_id)
                .order("strength")
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list strength cache failed: {exc}") from exc

    def purge(self, edit_id: str) -> int:
        """Delete every cached strength for an edit. Returns the number removed."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            return self.pg_client.execute_update(
                "DELETE FROM strength_cache WHERE edit_id = %s", (int(edit_id),)
            )

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                keys = [k for k in _MEM_STRENGTH if k[0] == str(edit_id)]
                for key in keys:
                    _MEM_STRENGTH.pop(key, None)
            return len(keys)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("strength_cache").delete().eq("edit_id", edit_id).execute()
            return len(res.data or [])
        except Exception as exc:
            raise RuntimeError(f"DB purge strength cache failed: {exc}") from exc
