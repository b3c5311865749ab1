from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError

from retouch.domain.errors import DecodeError


class PillowCodec:
    """ImageCodec backed by Pillow. All encoded output is PNG."""

    def _open(self, data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("Empty image data")
        try:
            img = Image.open(BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise DecodeError(f"Unreadable image: {exc}") from exc
        if img.width <= 0 or img.height <= 0:
            raise DecodeError(f"Invalid image dimensions {img.width}x{img.height}")
        return img

    @staticmethod
    def _encode(img: Image.Image) -> bytes:
        buf = BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def dimensions(self, data: bytes) -> tuple[int, int]:
        img = self._open(data)
        return img.width, img.height

    def mime_type(self, data: bytes) -> str:
        img = self._open(data)
        return Image.MIME.get(img.format or "", "image/png")

    def pad(self, data: bytes, size: int, left: int, top: int) -> bytes:
        img = self._open(data).convert("RGBA")
        canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        canvas.paste(img, (left, top))
        return self._encode(canvas)

    def resize_square(self, data: bytes, size: int) -> bytes:
        img = self._open(data)
        if img.size == (size, size):
            return self._encode(img)
        return self._encode(img.resize((size, size), Image.Resampling.LANCZOS))

    def crop(self, data: bytes, left: int, top: int, width: int, height: int) -> bytes:
        img = self._open(data)
        if left < 0 or top < 0 or left + width > img.width or top + height > img.height:
            raise DecodeError(
                f"Crop rectangle ({left}, {top}, {width}x{height}) outside {img.width}x{img.height}"
            )
        return self._encode(img.crop((left, top, left + width, top + height)))

    def to_array(self, data: bytes) -> np.ndarray:
        img = self._open(data).convert("RGB")
        return np.asarray(img).astype(np.float32) / 255.0

    def from_array(self, array: np.ndarray) -> bytes:
        arr = np.clip(array, 0.0, 1.0).astype(np.float32)
        if arr.ndim == 2:
            img = Image.fromarray((arr * 255.0).round().astype("uint8"))
        else:
            img = Image.fromarray((arr[..., :3] * 255.0).round().astype("uint8"))
        return self._encode(img)
