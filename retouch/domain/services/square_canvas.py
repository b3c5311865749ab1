from __future__ import annotations

from dataclasses import dataclass

from retouch.domain.errors import DecodeError
from retouch.domain.services.image_codec import ImageCodec


@dataclass(frozen=True)
class PadDescriptor:
    """Placement of a ``width x height`` image centred in an ``S x S`` canvas."""

    S: int
    left: int
    top: int
    width: int
    height: int

    @classmethod
    def for_dimensions(cls, width: int, height: int) -> PadDescriptor:
        if width <= 0 or height <= 0:
            raise DecodeError(f"Invalid image dimensions {width}x{height}")
        size = max(width, height)
        return cls(
            S=size,
            left=(size - width) // 2,
            top=(size - height) // 2,
            width=width,
            height=height,
        )


@dataclass(frozen=True)
class PaddedImage:
    square: bytes
    pad: PadDescriptor


class SquareCanvasAdapter:
    """Bridge arbitrary aspect ratios to a generator that only takes squares.

    ``unpad_from_square`` must be given the descriptor of the *target*
    dimensions, which can differ from the image that was padded when a prior
    edit is being refined.
    """

    def __init__(self, codec: ImageCodec) -> None:
        self.codec = codec

    def pad_to_square(self, image: bytes) -> PaddedImage:
        width, height = self.codec.dimensions(image)
        pad = PadDescriptor.for_dimensions(width, height)
        square = self.codec.pad(image, pad.S, pad.left, pad.top)
        return PaddedImage(square=square, pad=pad)

    def unpad_from_square(self, returned_square: bytes, pad: PadDescriptor) -> bytes:
        width, height = self.codec.dimensions(returned_square)
        if width != height:
            raise DecodeError(f"Generator returned a non-square image ({width}x{height})")
        scaled = self.codec.resize_square(returned_square, pad.S)
        return self.codec.crop(scaled, pad.left, pad.top, pad.width, pad.height)
