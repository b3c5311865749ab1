from __future__ import annotations

import base64

from openai import AsyncOpenAI

from retouch import config

_CLIENT_SINGLETON: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI:
    """Shared async client; the SDK's own retries are off, attempts are never retried."""
    global _CLIENT_SINGLETON
    if _CLIENT_SINGLETON is None:
        _CLIENT_SINGLETON = AsyncOpenAI(
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            max_retries=0,
        )
    return _CLIENT_SINGLETON


def to_data_url(image: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
