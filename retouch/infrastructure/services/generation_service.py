from __future__ import annotations

import base64
import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from retouch import config
from retouch.domain.errors import UpstreamError
from retouch.infrastructure.services.openai_client import get_openai_client, to_data_url

logger = logging.getLogger(__name__)

PROMPT_ENGINEER_INSTRUCTIONS = """You are an expert AI Prompt Engineer (Composer).
Look at the provided image and the user's requested edit. Write a highly detailed,
descriptive prompt that describes the scene in the original image BUT with the
user's changes applied. Focus on lighting, style, composition and subject details.
Transparent borders are padding and must stay outside the subject.

Output ONLY the raw prompt text, nothing else."""


def strength_description(strength: int) -> str:
    if strength < 30:
        return "subtle"
    if strength < 70:
        return "moderate"
    return "strong"


class OpenAIGenerationService:
    """GenerativeImageService on the OpenAI images and chat APIs.

    ``generate`` takes and returns square PNG bytes; the output is the model's
    native size (``RETOUCH_GENERATOR_SIZE``), not the size of the input.
    """

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self._client = client
        self.image_model = config.IMAGE_MODEL
        self.vision_model = config.VISION_MODEL
        self.size = config.GENERATOR_SIZE

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def refine_prompt(self, prompt: str, strength: int, image: bytes) -> str:
        """Rewrite the user's edit request into a full scene description."""
        request = f"Apply a {strength_description(strength)} edit: {prompt}"
        try:
            response = await self.client.chat.completions.create(
                model=self.vision_model,
                messages=[
                    {"role": "system", "content": PROMPT_ENGINEER_INSTRUCTIONS},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": f'User\'s requested edit: "{request}"'},
                            {"type": "image_url", "image_url": {"url": to_data_url(image)}},
                        ],
                    },
                ],
                max_completion_tokens=1024,
            )
        except OpenAIError as exc:
            raise UpstreamError(f"Prompt refinement failed: {exc}") from exc
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise UpstreamError("Prompt refinement returned no content")
        return content

    async def generate(self, prompt: str, square_image: bytes) -> bytes:
        try:
            response = await self.client.images.edit(
                model=self.image_model,
                image=("image.png", square_image, "image/png"),
                prompt=prompt[:4000],
                n=1,
                size=f"{self.size}x{self.size}",
            )
        except OpenAIError as exc:
            raise UpstreamError(f"Image generation failed: {exc}") from exc

        if not response.data:
            raise UpstreamError("No image generated")
        item = response.data[0]
        if item.b64_json:
            return base64.b64decode(item.b64_json)
        if item.url:
            return await self._download(item.url)
        raise UpstreamError("Generator returned neither image data nor URL")

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as http:
                resp = await http.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to download generated image: {exc}") from exc
