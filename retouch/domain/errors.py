"""Error taxonomy shared by every layer.

``DecodeError``, ``ValidationError`` and ``NotFoundError`` are raised
synchronously, before an edit is marked as processing. ``UpstreamError`` is
raised inside an asynchronous attempt and resolves the edit to ``failed``.
"""
from __future__ import annotations


class RetouchError(Exception):
    """Base class for all domain errors."""


class DecodeError(RetouchError):
    """Malformed or zero-dimension image."""


class ValidationError(RetouchError):
    """Malformed adjustment vector, strength or prompt."""


class NotFoundError(RetouchError):
    """Referenced edit or image id is absent."""


class UpstreamError(RetouchError):
    """Generation or analysis service failure, timeout or refusal."""
