from __future__ import annotations

import os
import uuid
from pathlib import Path

from retouch import config
from retouch.domain.errors import NotFoundError

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


class BlobStorage:
    """Opaque-id blob store on Supabase Storage with a local directory fallback.

    Ids are ``{hex}.{ext}``; the core never interprets them.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "images")
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.local_dir = Path(config.STORAGE_LOCAL_DIR)
        if self.disabled or self.client is None:
            self.local_dir.mkdir(parents=True, exist_ok=True)

    def _is_local(self) -> bool:
        return self.disabled or self.client is None

    def save(self, data: bytes, content_type: str = "image/png") -> str:
        blob_id = f"{uuid.uuid4().hex}.{_EXTENSIONS.get(content_type, 'png')}"
        if self._is_local():
            (self.local_dir / blob_id).write_bytes(data)
            return blob_id
        try:  # pragma: no cover - network
            self.client.storage.from_(self.bucket).upload(  # type: ignore[attr-defined]
                path=blob_id,
                file=data,
                file_options={"content-type": content_type},
            )
            return blob_id
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(f"Storage upload failed: {exc}") from exc

    def load(self, blob_id: str) -> bytes:
        if self._is_local():
            full_path = self.local_dir / Path(blob_id).name
            if not full_path.is_file():
                raise NotFoundError(f"Image {blob_id} not found")
            return full_path.read_bytes()
        try:  # pragma: no cover - network
            return self.client.storage.from_(self.bucket).download(blob_id)  # type: ignore[attr-defined]
        except Exception as exc:  # pragma: no cover
            raise NotFoundError(f"Image {blob_id} not found: {exc}") from exc

    def delete(self, blob_id: str) -> bool:
        if self._is_local():
            full_path = self.local_dir / Path(blob_id).name
            if full_path.exists():
                full_path.unlink()
                return True
            return False
        try:  # pragma: no cover - network
            self.client.storage.from_(self.bucket).remove([blob_id])  # type: ignore[attr-defined]
            return True
        except Exception as exc:
            raise RuntimeError(f"Storage delete failed: {exc}") from exc

    @staticmethod
    def content_type(blob_id: str) -> str:
        ext = blob_id.rsplit(".", 1)[-1].lower() if "." in blob_id else "png"
        return {"jpg": "image/jpeg", "jpeg": "image/jpeg", "webp": "image/webp"}.get(ext, "image/png")
