import asyncio
import io
import os
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path so 'retouch' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# in-memory repositories and a throwaway blob directory; set before retouch.config is imported
os.environ["SUPABASE_DISABLED"] = "1"
os.environ["USE_LOCAL_DB"] = "0"
os.environ.setdefault("RETOUCH_STORAGE_LOCAL_DIR", tempfile.mkdtemp(prefix="retouch-blobs-"))


def make_png_bytes(w=4, h=4, color=(128, 64, 32)) -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeGenerator:
    """Square-only generator returning a solid image at its own native size."""

    def __init__(self, size=64, delay=0.0, fail_refine=False):
        self.size = size
        self.delay = delay
        self.fail_refine = fail_refine
        self.generate_calls = []
        self.refine_calls = []

    async def refine_prompt(self, prompt, strength, image):
        from retouch.domain.errors import UpstreamError

        self.refine_calls.append((prompt, strength))
        if self.fail_refine:
            raise UpstreamError("refusal")
        return f"refined: {prompt}"

    async def generate(self, prompt, square_image):
        self.generate_calls.append((prompt, square_image))
        if self.delay:
            await asyncio.sleep(self.delay)
        shade = (40 * len(self.generate_calls)) % 256
        return make_png_bytes(self.size, self.size, color=(shade, 90, 160))


class FakeVision:
    def __init__(self, analysis=None, inferred=None, fail=False, delay=0.0):
        self.analysis = analysis
        self.inferred = inferred
        self.fail = fail
        self.delay = delay
        self.analyze_calls = 0
        self.infer_calls = []

    async def analyze(self, image):
        from retouch.domain.entities.cache_entries import ImageAnalysis, NaturalSuggestion
        from retouch.domain.entities.adjustment import AdjustmentVector
        from retouch.domain.errors import UpstreamError

        self.analyze_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UpstreamError("vision unavailable")
        if self.analysis is not None:
            return self.analysis
        return ImageAnalysis(
            title="Harbor at dusk",
            natural_suggestions=[
                NaturalSuggestion("Lift shadows", AdjustmentVector(brightness=10, contrast=-5)),
                NaturalSuggestion("Punchy", AdjustmentVector(contrast=15, saturation=20)),
            ],
            ai_suggestions=["Add a sunset glow"],
        )

    async def infer_adjustments(self, prompt, image):
        from retouch.domain.entities.adjustment import AdjustmentVector
        from retouch.domain.errors import UpstreamError

        self.infer_calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UpstreamError("vision unavailable")
        return self.inferred or AdjustmentVector(saturation=10)


@pytest.fixture()
def png_bytes():
    return make_png_bytes


@pytest.fixture()
def generator():
    return FakeGenerator()


@pytest.fixture()
def vision():
    return FakeVision()


@pytest.fixture()
def stores():
    from retouch.infrastructure.database.repositories.edit_repository import EditRepository
    from retouch.infrastructure.database.repositories.history_repository import HistoryRepository
    from retouch.infrastructure.database.repositories.strength_cache_repository import (
        StrengthCacheRepository,
    )
    from retouch.infrastructure.database.repositories.suggestions_repository import (
        SuggestionsRepository,
    )
    from retouch.infrastructure.storage.blob_storage import BlobStorage

    return {
        "edits": EditRepository(None),
        "strength_cache": StrengthCacheRepository(None),
        "history": HistoryRepository(None),
        "suggestions": SuggestionsRepository(None),
        "storage": BlobStorage(None),
    }


@pytest.fixture()
def codec():
    from retouch.infrastructure.codec.pillow_codec import PillowCodec

    return PillowCodec()


@pytest.fixture()
def orchestrator(stores, codec, generator, vision):
    from retouch.application.use_cases.edit_job_orchestrator import EditJobOrchestrator

    return EditJobOrchestrator(codec=codec, generator=generator, vision=vision, **stores)


@pytest.fixture()
def upload(stores, codec, vision):
    """Upload image bytes through the real use case and return the new edit."""
    from retouch.application.use_cases.upload_image import UploadEditUseCase

    uc = UploadEditUseCase(
        storage=stores["storage"],
        edits=stores["edits"],
        suggestions=stores["suggestions"],
        vision=vision,
        codec=codec,
    )

    def _upload(data, user_id=None):
        edit, _ = asyncio.run(uc.execute(data, user_id=user_id))
        return edit

    return _upload


@pytest.fixture(scope="session")
def fake_services():
    return FakeGenerator(), FakeVision()


@pytest.fixture(scope="session")
def client(fake_services) -> TestClient:
    # lazy import after env configured
    from retouch.infrastructure.api.dependencies import get_generation_service, get_vision_service
    from retouch.main import create_app

    generator, vision = fake_services
    app = create_app()
    app.dependency_overrides[get_generation_service] = lambda: generator
    app.dependency_overrides[get_vision_service] = lambda: vision
    return TestClient(app)


@pytest.fixture()
def auth_header() -> dict[str, str]:
    # any token is accepted in disabled mode
    return {"Authorization": "Bearer test-token"}
