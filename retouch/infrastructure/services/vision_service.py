from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from retouch import config
from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.entities.cache_entries import ImageAnalysis, NaturalSuggestion
from retouch.domain.errors import UpstreamError, ValidationError
from retouch.infrastructure.services.openai_client import get_openai_client, to_data_url

logger = logging.getLogger(__name__)

_VECTOR_SCHEMA = (
    '{"brightness": -50..50, "contrast": -50..50, "saturation": -50..50, '
    '"hue": -180..180, "sharpen": 0..10, "noise_reduction": 0..100}'
)

ANALYST_INSTRUCTIONS = f"""You are a Vision Analyst AI. Analyze the image and return:
- a short descriptive title,
- 4-5 "natural" photo adjustments, each a short label with parameters,
- 4-5 creative generative edit prompts.

Parameters use this shape, 0 meaning unchanged: {_VECTOR_SCHEMA}

Output strictly valid JSON:
{{"title": "...", "natural": [{{"label": "...", "params": {{...}}}}], "ai": ["...", "..."]}}"""

INFERENCE_INSTRUCTIONS = f"""You translate a photo edit request into adjustment parameters
for the provided image. Use 0 for anything the request does not ask for.

Output strictly valid JSON with exactly these keys: {_VECTOR_SCHEMA}"""


def _vector(params: Any) -> AdjustmentVector:
    if not isinstance(params, dict):
        raise ValidationError("params must be an object")
    return AdjustmentVector.from_dict(params, validate=False).clamped()


class OpenAIVisionService:
    """VisionAnalysisService on the OpenAI chat API with JSON responses."""

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self._client = client
        self.model = config.VISION_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def _ask_json(self, instructions: str, text: str, image: bytes) -> dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instructions},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": text},
                            {"type": "image_url", "image_url": {"url": to_data_url(image)}},
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                max_completion_tokens=1024,
            )
        except OpenAIError as exc:
            raise UpstreamError(f"Vision request failed: {exc}") from exc

        content = response.choices[0].message.content
        if not content:
            raise UpstreamError("Vision model returned no content (refusal or empty response)")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise UpstreamError(f"Vision model returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise UpstreamError("Vision model returned a non-object JSON payload")
        return data

    async def analyze(self, image: bytes) -> ImageAnalysis:
        data = await self._ask_json(ANALYST_INSTRUCTIONS, "Analyze this image.", image)
        natural: list[NaturalSuggestion] = []
        for item in data.get("natural") or []:
            try:
                natural.append(NaturalSuggestion(label=str(item["label"]), vector=_vector(item.get("params"))))
            except (KeyError, TypeError, ValidationError) as exc:
                logger.warning("Skipping malformed natural suggestion %r: %s", item, exc)
        ai = [str(s) for s in data.get("ai") or [] if str(s).strip()]
        title = str(data.get("title") or "").strip() or "Untitled Image"
        return ImageAnalysis(title=title, natural_suggestions=natural, ai_suggestions=ai)

    async def infer_adjustments(self, prompt: str, image: bytes) -> AdjustmentVector:
        data = await self._ask_json(INFERENCE_INSTRUCTIONS, f'Edit request: "{prompt}"', image)
        try:
            return _vector(data)
        except ValidationError as exc:
            raise UpstreamError(f"Vision model returned unusable parameters: {exc}") from exc
