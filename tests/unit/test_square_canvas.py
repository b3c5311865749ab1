import io

import pytest
from PIL import Image

from retouch.domain.errors import DecodeError
from retouch.domain.services.square_canvas import PadDescriptor, SquareCanvasAdapter
from retouch.infrastructure.codec.pillow_codec import PillowCodec


@pytest.fixture()
def canvas():
    return SquareCanvasAdapter(PillowCodec())


def test_pad_descriptor_centres_image():
    pad = PadDescriptor.for_dimensions(1200, 800)
    assert pad == PadDescriptor(S=1200, left=0, top=200, width=1200, height=800)
    pad = PadDescriptor.for_dimensions(3, 8)
    assert (pad.S, pad.left, pad.top) == (8, 2, 0)


@pytest.mark.parametrize("w,h", [(0, 10), (10, 0), (-1, 5)])
def test_pad_descriptor_rejects_empty(w, h):
    with pytest.raises(DecodeError):
        PadDescriptor.for_dimensions(w, h)


def test_pad_is_transparent_outside_image(canvas, png_bytes):
    padded = canvas.pad_to_square(png_bytes(30, 10))
    img = Image.open(io.BytesIO(padded.square))
    assert img.size == (30, 30)
    assert img.getpixel((0, 0))[3] == 0
    assert img.getpixel((15, 15))[3] == 255


@pytest.mark.parametrize("w,h", [(1200, 800), (800, 1200), (333, 17), (64, 64), (1, 5)])
@pytest.mark.parametrize("native", [64, 1024])
def test_unpad_recovers_dimensions_from_any_generator_size(canvas, codec, png_bytes, w, h, native):
    padded = canvas.pad_to_square(png_bytes(w, h))
    returned = codec.resize_square(padded.square, native)
    out = canvas.unpad_from_square(returned, padded.pad)
    assert codec.dimensions(out) == (w, h)


def test_unpad_uses_target_descriptor(canvas, codec, png_bytes):
    # refining a 100x100 result of a 300x150 edit must crop back to 300x150
    padded = canvas.pad_to_square(png_bytes(100, 100))
    target = PadDescriptor.for_dimensions(300, 150)
    out = canvas.unpad_from_square(padded.square, target)
    assert codec.dimensions(out) == (300, 150)


def test_unpad_rejects_non_square(canvas, png_bytes):
    with pytest.raises(DecodeError):
        canvas.unpad_from_square(png_bytes(10, 12), PadDescriptor.for_dimensions(10, 12))


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_undecodable_input(canvas, data):
    with pytest.raises(DecodeError):
        canvas.pad_to_square(data)
