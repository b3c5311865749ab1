import asyncio
import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.errors import UpstreamError
from retouch.infrastructure.services.generation_service import (
    OpenAIGenerationService,
    strength_description,
)
from retouch.infrastructure.services.vision_service import OpenAIVisionService


def _chat_client(content):
    client = MagicMock()
    message = SimpleNamespace(content=content)
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)])
    )
    return client


def test_analyze_parses_and_clamps():
    payload = {
        "title": "Harbor at dusk",
        "natural": [
            {"label": "Warm tone", "params": {"hue": -10, "saturation": 80}},
            {"label": "Broken"},
            {"params": {"brightness": 5}},
        ],
        "ai": ["Add a sunset glow", ""],
    }
    client = _chat_client(json.dumps(payload))
    analysis = asyncio.run(OpenAIVisionService(client).analyze(b"png"))

    assert analysis.title == "Harbor at dusk"
    assert [s.label for s in analysis.natural_suggestions] == ["Warm tone"]
    assert analysis.natural_suggestions[0].vector == AdjustmentVector(hue=-10, saturation=50)
    assert analysis.ai_suggestions == ["Add a sunset glow"]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}


def test_analyze_skips_non_finite_suggestion():
    payload = {
        "title": "Harbor",
        "natural": [
            {"label": "Blown out", "params": {"brightness": float("inf")}},
            {"label": "Cooler", "params": {"hue": 12}},
        ],
        "ai": [],
    }
    analysis = asyncio.run(OpenAIVisionService(_chat_client(json.dumps(payload))).analyze(b"png"))
    assert [s.label for s in analysis.natural_suggestions] == ["Cooler"]


def test_analyze_refusal_is_upstream_error():
    with pytest.raises(UpstreamError):
        asyncio.run(OpenAIVisionService(_chat_client(None)).analyze(b"png"))
    with pytest.raises(UpstreamError):
        asyncio.run(OpenAIVisionService(_chat_client("not json")).analyze(b"png"))


def test_infer_adjustments():
    client = _chat_client(json.dumps({"brightness": 12.4, "sharpen": 2.26, "noise_reduction": 0}))
    vector = asyncio.run(OpenAIVisionService(client).infer_adjustments("brighter and crisper", b"png"))
    assert vector == AdjustmentVector(brightness=12, sharpen=2.3)


def test_infer_adjustments_rejects_unknown_fields():
    client = _chat_client(json.dumps({"exposure": 3}))
    with pytest.raises(UpstreamError):
        asyncio.run(OpenAIVisionService(client).infer_adjustments("expose", b"png"))


@pytest.mark.parametrize("strength,word", [(0, "subtle"), (29, "subtle"), (30, "moderate"), (69, "moderate"), (70, "strong")])
def test_strength_description(strength, word):
    assert strength_description(strength) == word


def test_refine_prompt_mentions_intensity():
    client = _chat_client("  A harbor under a stormy sky  ")
    refined = asyncio.run(OpenAIGenerationService(client).refine_prompt("make sky dramatic", 80, b"png"))
    assert refined == "A harbor under a stormy sky"
    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert "strong edit: make sky dramatic" in messages[1]["content"][0]["text"]


def test_generate_decodes_b64(png_bytes):
    square = png_bytes(8, 8)
    client = MagicMock()
    client.images.edit = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(b64_json=base64.b64encode(square).decode(), url=None)])
    )
    service = OpenAIGenerationService(client)
    assert asyncio.run(service.generate("rain", png_bytes(4, 4))) == square
    kwargs = client.images.edit.call_args.kwargs
    assert kwargs["size"] == f"{service.size}x{service.size}"


def test_generate_without_data_is_upstream_error(png_bytes):
    client = MagicMock()
    client.images.edit = AsyncMock(return_value=SimpleNamespace(data=[]))
    with pytest.raises(UpstreamError):
        asyncio.run(OpenAIGenerationService(client).generate("rain", png_bytes(4, 4)))
