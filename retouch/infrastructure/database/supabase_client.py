from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Any

try:
    from supabase import Client, create_client
except Exception:  # pragma: no cover - env without supabase installed
    Client = Any  # type: ignore
    create_client = None  # type: ignore


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None


class SupabaseAuthAdapter:
    """Validate bearer tokens against Supabase Auth.

    When SUPABASE_DISABLED=1 every non-empty token maps to a stable local user,
    so edits stay scoped per token across replicas and restarts.
    """

    def __init__(self) -> None:
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self._client: Client | None = None if self.disabled else get_supabase_client()

    def validate_token(self, token: str) -> UserInfo:
        if not token:
            raise ValueError("Missing access token")
        if self.disabled or not self._client:
            digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
            return UserInfo(id=f"local-{digest}", email=None)
        try:
            res = self._client.auth.get_user(token)  # type: ignore[attr-defined]
            user = res.user  # type: ignore[assignment]
        except Exception as exc:  # pragma: no cover - network path
            raise ValueError(f"Invalid access token: {exc}") from exc
        if not user:
            raise ValueError("Invalid access token")
        return UserInfo(id=user.id, email=user.email)  # type: ignore[attr-defined]


# Reusable singleton client for repositories and storage
_CLIENT_SINGLETON: Client | None = None


def get_supabase_client() -> Client | None:
    global _CLIENT_SINGLETON
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    if disabled or create_client is None or not url or not key:
        return None
    if _CLIENT_SINGLETON is None:
        _CLIENT_SINGLETON = create_client(url, key)
    return _CLIENT_SINGLETON
