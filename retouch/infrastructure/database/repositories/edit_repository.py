from __future__ import annotations

import itertools
import os
import threading
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from retouch.domain.entities.edit import EditEntity, EditStatus
from retouch.infrastructure.database.postgres_client import get_postgres_client

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode
_MEM_EDITS: dict[str, EditEntity] = {}
_MEM_LOCK = threading.Lock()
_MEM_IDS = itertools.count(1)

_COLUMNS = {
    "current_image_id",
    "prompt",
    "refined_prompt",
    "effect_strength",
    "status",
    "title",
}


class EditRepository:
    """Edit rows. Only the orchestrator and the edit use cases mutate them."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _in_memory(self) -> bool:
        return self.disabled or self.client is None

    def _row_to_entity(self, row: dict) -> EditEntity:
        """Convert database row to EditEntity."""
        created_at = row["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return EditEntity(
            id=str(row["id"]),
            original_image_id=row["original_image_id"],
            current_image_id=row["current_image_id"],
            width=row["width"],
            height=row["height"],
            prompt=row.get("prompt") or "",
            created_at=created_at,
            refined_prompt=row.get("refined_prompt"),
            effect_strength=row.get("effect_strength", 50),
            status=EditStatus(row.get("status", "pending")),
            title=row.get("title") or "Untitled Draft",
            user_id=row.get("user_id"),
        )

    def create(
        self,
        original_image_id: str,
        width: int,
        height: int,
        title: str = "Untitled Draft",
        user_id: str | None = None,
    ) -> EditEntity:
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO edits (
                        user_id, original_image_id, current_image_id, width, height,
                        prompt, effect_strength, title, status, created_at
                    ) VALUES (%s, %s, %s, %s, %s, '', 50, %s, 'pending', %s)
                    RETURNING *
                """
                row = self.pg_client.execute_insert(
                    query,
                    (user_id, original_image_id, original_image_id, width, height, title, now),
                )
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL insert edit failed: {exc}") from exc

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                entity = EditEntity(
                    id=str(next(_MEM_IDS)),
                    original_image_id=original_image_id,
                    current_image_id=original_image_id,  # Initially same as original
                    width=width,
                    height=height,
                    prompt="",
                    created_at=now,
                    title=title,
                    user_id=user_id,
                )
                _MEM_EDITS[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "original_image_id": original_image_id,
                "current_image_id": original_image_id,
                "width": width,
                "height": height,
                "prompt": "",
                "effect_strength": 50,
                "title": title,
                "status": EditStatus.PENDING.value,
                "created_at": now.isoformat(),
            }
            if user_id:
                data["user_id"] = user_id
            res = self.client.table("edits").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB insert edit failed: {exc}") from exc

    def get(self, edit_id: str) -> EditEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if not str(edit_id).isdigit():
                return None
            row = self.pg_client.execute_one("SELECT * FROM edits WHERE id = %s", (int(edit_id),))
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            return _MEM_EDITS.get(str(edit_id))

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("edits").select("*").eq("id", edit_id).limit(1).execute()
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get edit failed: {exc}") from exc

    def list_edits(self, user_id: str | None = None) -> list[EditEntity]:
        """List edits newest first, optionally restricted to one user."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if user_id is None:
                rows = self.pg_client.execute_many("SELECT * FROM edits ORDER BY created_at DESC")
            else:
                rows = self.pg_client.execute_many(
                    "SELECT * FROM edits WHERE user_id = %s ORDER BY created_at DESC", (user_id,)
                )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self._in_memory():
            items = [e for e in _MEM_EDITS.values() if user_id is None or e.user_id == user_id]
            return sorted(items, key=lambda e: (e.created_at, int(e.id)), reverse=True)

        # Supabase mode
        try:  # pragma: no cover - network
            query = self.client.table("edits").select("*")
            if user_id is not None:
                query = query.eq("user_id", user_id)
            res = query.order("created_at", desc=True).execute()
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list edits failed: {exc}") from exc

    def _update(self, edit_id: str, fields: dict[str, Any]) -> EditEntity | None:
        unknown = set(fields) - _COLUMNS
        if unknown:
            raise ValueError(f"Cannot update edit columns: {', '.join(sorted(unknown))}")
        fields = {k: (v.value if isinstance(v, EditStatus) else v) for k, v in fields.items()}

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if not str(edit_id).isdigit():
                return None
            assignments = ", ".join(f"{column} = %s" for column in fields)
            query = f"UPDATE edits SET {assignments} WHERE id = %s RETURNING *"
            try:
                row = self.pg_client.execute_one(query, (*fields.values(), int(edit_id)))
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL update edit failed: {exc}") from exc
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                current = _MEM_EDITS.get(str(edit_id))
                if current is None:
                    return None
                if "status" in fields:
                    fields["status"] = EditStatus(fields["status"])
                updated = replace(current, **fields)
                _MEM_EDITS[updated.id] = updated
            return updated

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("edits").update(fields).eq("id", edit_id).execute()
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB update edit failed: {exc}") from exc

    def mark_processing(self, edit_id: str) -> EditEntity | None:
        return self._update(edit_id, {"status": EditStatus.PROCESSING})

    def complete(
        self,
        edit_id: str,
        current_image_id: str,
        *,
        prompt: str | None = None,
        refined_prompt: str | None = None,
        effect_strength: int | None = None,
    ) -> EditEntity | None:
        fields: dict[str, Any] = {
            "status": EditStatus.COMPLETED,
            "current_image_id": current_image_id,
        }
        if prompt is not None:
            fields["prompt"] = prompt
        if refined_prompt is not None:
            fields["refined_prompt"] = refined_prompt
        if effect_strength is not None:
            fields["effect_strength"] = effect_strength
        return self._update(edit_id, fields)

    def fail(self, edit_id: str) -> EditEntity | None:
        # current_image_id keeps pointing at the last good result
        return self._update(edit_id, {"status": EditStatus.FAILED})

    def update_title(self, edit_id: str, title: str) -> EditEntity | None:
        return self._update(edit_id, {"title": title})

    def delete(self, edit_id: str) -> bool:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if not str(edit_id).isdigit():
                return False
            return self.pg_client.execute_update("DELETE FROM edits WHERE id = %s", (int(edit_id),)) > 0

        # In-memory mode
        if self._in_memory():
            with _MEM_LOCK:
                return _MEM_EDITS.pop(str(edit_id), None) is not None

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("edits").delete().eq("id", edit_id).execute()
            return bool(res.data)
        except Exception as exc:
            raise RuntimeError(f"DB delete edit failed: {exc}") from exc
