from __future__ import annotations

import json
import os
import threading
from datetime import UTC, datetime

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.entities.cache_entries import NaturalSuggestion, SuggestionsCacheEntry
from retouch.infrastructure.database.postgres_client import get_postgres_client

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode
_MEM_SUGGESTIONS: dict[str, SuggestionsCacheEntry] = {}
_MEM_LOCK = threading.Lock()


def _natural_to_json(suggestions: list[NaturalSuggestion]) -> str:
    return json.dumps([{"label": s.label, "params": s.vector.to_dict()} for s in suggestions])


def _natural_from_json(raw: str | list) -> list[NaturalSuggestion]:
    items = json.loads(raw) if isinstance(raw, str) else raw
    return [
        NaturalSuggestion(
            label=item["label"],
            vector=AdjustmentVector.from_dict(item.get("params", {}), validate=False),
        )
        for item in items
    ]


class SuggestionsRepository:
    """Per-image analysis results. A second analysis overwrites the first."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _in_memory(self) -> bool:
        return self.disabled or self.client is None

    def _row_to_entity(self, row: dict) -> SuggestionsCacheEntry:
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        ai = row.get("ai_suggestions_json") or "[]"
        return SuggestionsCacheEntry(
            image_id=row["image_id"],
            natural_suggestions=_natural_from_json(row.get("natural_suggestions_json") or "[]"),
            ai_suggestions=list(json.loads(ai) if isinstance(ai, str) else ai),
            created_at=created_at,
        )

    def get(self, image_id: str) -> SuggestionsCacheEntry | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = self.pg_client.execute_one(
                "SELECT * FROM suggestions_cache WHERE image_id = %s", (image_id,)
            )
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            return _MEM_SUGGESTIONS.get(image_id)

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("suggestions_cache")
                .select("*")
                .eq("image_id", image_id)
                .limit(1)
                .execute()
            )
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get suggestions failed: {exc}") from exc

    def upsert(self, entry: SuggestionsCacheEntry) -> SuggestionsCacheEntry:
        now = datetime.now(UTC)
        natural_json = _natural_to_json(entry.natural_suggestions)
        ai_json = json.dumps(list(entry.ai_suggestions))

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO suggestions_cache (
                        image_id, natural_suggestions_json, ai_suggestions_json, created_at
                    ) VALUES (%s, %s, %s, %s)
                    ON CONFLICT (image_id) DO UPDATE SET
                        natural_suggestions_json = EXCLUDED.natural_suggestions_json,
                        ai_suggestions_json = EXCLUDED.ai_suggestions_json,
                        created_at = EXCLUDED.created_at
                    RETURNING *
                """
                row = self.pg_client.execute_insert(
                    query, (entry.image_id, natural_json, ai_json, now)
                )
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL upsert suggestions failed: {exc}") from exc

        # In-memory mode
        if self._in_memory():
            stored = SuggestionsCacheEntry(
                image_id=entry.image_id,
                natural_suggestions=list(entry.natural_suggestions),
                ai_suggestions=list(entry.ai_suggestions),
                created_at=now,
            )
            with _MEM_LOCK:
                _MEM_SUGGESTIONS[entry.image_id] = stored
            return stored

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "image_id": entry.image_id,
                "natural_suggestions_json": natural_json,
                "ai_suggestions_json": ai_json,
                "created_at": now.isoformat(),
            }
            res = (
                self.client.table("suggestions_cache")
                .upsert(data, on_conflict="image_id")
                .execute()
            )
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB upsert suggestions failed: {exc}") from exc

    def delete(self, image_id: str) -> bool:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "DELETE FROM suggestions_cache WHERE image_id = %s"
            return self.pg_client.execute_update(query, (image_id,)) > 0

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                return _MEM_SUGGESTIONS.pop(image_id, None) is not None

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("suggestions_cache").delete().eq("image_id", image_id).execute()
            return bool(res.data)
        except Exception as exc:
            raise RuntimeError(f"DB delete suggestions failed: {exc}") from exc
