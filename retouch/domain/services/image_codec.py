from __future__ import annotations

from typing import Protocol


class ImageCodec(Protocol):
    """Decode/encode, resize and crop primitives used by the canvas adapter.

    Implementations raise ``DecodeError`` for unreadable or zero-size input.
    """

    def dimensions(self, data: bytes) -> tuple[int, int]: ...

    def pad(self, data: bytes, size: int, left: int, top: int) -> bytes: ...

    def resize_square(self, data: bytes, size: int) -> bytes: ...

    def crop(self, data: bytes, left: int, top: int, width: int, height: int) -> bytes: ...
