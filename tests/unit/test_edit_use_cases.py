import asyncio

import pytest

from retouch.application.use_cases.get_suggestions import GetSuggestionsUseCase
from retouch.application.use_cases.manage_edit import DeleteEditUseCase, RenameEditUseCase
from retouch.application.use_cases.revert_image import RevertEditUseCase
from retouch.application.use_cases.upload_image import UploadEditUseCase
from retouch.domain.entities.edit import EditStatus
from retouch.domain.errors import DecodeError, NotFoundError, ValidationError
from retouch.domain.services.fallback_suggestions import FALLBACK_AI_SUGGESTIONS, FALLBACK_TITLE


def test_upload_creates_pending_edit_with_suggestions(upload, png_bytes, stores):
    edit = upload(png_bytes(1200, 800), user_id="alice")
    assert edit.status == EditStatus.PENDING
    assert edit.original_image_id == edit.current_image_id
    assert (edit.width, edit.height) == (1200, 800)
    assert edit.title == "Harbor at dusk"
    assert edit.user_id == "alice"

    entry = stores["suggestions"].get(edit.original_image_id)
    assert [s.label for s in entry.natural_suggestions] == ["Lift shadows", "Punchy"]
    assert entry.ai_suggestions == ["Add a sunset glow"]


def test_upload_uses_fallback_when_analysis_fails(upload, png_bytes, stores, vision):
    vision.fail = True
    edit = upload(png_bytes(30, 20))
    assert edit.title == FALLBACK_TITLE
    entry = stores["suggestions"].get(edit.original_image_id)
    assert entry.ai_suggestions == list(FALLBACK_AI_SUGGESTIONS)
    assert entry.find("Brighten") is not None


def test_upload_uses_fallback_when_analysis_is_slow(png_bytes, stores, codec, vision):
    vision.delay = 1.0
    uc = UploadEditUseCase(
        storage=stores["storage"],
        edits=stores["edits"],
        suggestions=stores["suggestions"],
        vision=vision,
        codec=codec,
        analysis_timeout=0.05,
    )
    edit, entry = asyncio.run(uc.execute(png_bytes(30, 20)))
    assert edit.status == EditStatus.PENDING
    assert edit.title == FALLBACK_TITLE
    assert entry.ai_suggestions == list(FALLBACK_AI_SUGGESTIONS)


def test_upload_rejects_undecodable_bytes(upload):
    with pytest.raises(DecodeError):
        upload(b"\x89PNG broken")


def _suggestions_uc(stores, vision):
    return GetSuggestionsUseCase(
        edits=stores["edits"], suggestions=stores["suggestions"], storage=stores["storage"], vision=vision
    )


def test_suggestions_cached_per_image(upload, png_bytes, stores, vision):
    edit = upload(png_bytes(30, 20))
    uc = _suggestions_uc(stores, vision)
    calls = vision.analyze_calls

    entry = asyncio.run(uc.execute(edit.id))
    assert entry.image_id == edit.current_image_id
    assert vision.analyze_calls == calls


def test_suggestions_miss_analyzes_and_caches(orchestrator, upload, png_bytes, stores, vision):
    edit = upload(png_bytes(30, 20))
    started, job = asyncio.run(orchestrator.start_adjustment(edit.id, params={"brightness": 10}))
    done = asyncio.run(orchestrator.run_adjustment(job))
    uc = _suggestions_uc(stores, vision)
    calls = vision.analyze_calls

    entry = asyncio.run(uc.execute(edit.id))
    assert entry.image_id == done.current_image_id
    assert vision.analyze_calls == calls + 1
    assert stores["suggestions"].get(done.current_image_id) is not None


def test_suggestions_failure_serves_fallback_without_caching(orchestrator, upload, png_bytes, stores, vision):
    edit = upload(png_bytes(30, 20))
    _, job = asyncio.run(orchestrator.start_adjustment(edit.id, params={"contrast": 10}))
    done = asyncio.run(orchestrator.run_adjustment(job))
    vision.fail = True

    entry = asyncio.run(_suggestions_uc(stores, vision).execute(edit.id))
    assert entry.ai_suggestions == list(FALLBACK_AI_SUGGESTIONS)
    assert stores["suggestions"].get(done.current_image_id) is None


def test_slow_suggestions_analysis_serves_fallback(orchestrator, upload, png_bytes, stores, vision):
    edit = upload(png_bytes(30, 20))
    _, job = asyncio.run(orchestrator.start_adjustment(edit.id, params={"saturation": 10}))
    done = asyncio.run(orchestrator.run_adjustment(job))
    vision.delay = 1.0

    uc = _suggestions_uc(stores, vision)
    uc.analysis_timeout = 0.05
    entry = asyncio.run(uc.execute(edit.id))
    assert entry.ai_suggestions == list(FALLBACK_AI_SUGGESTIONS)
    assert stores["suggestions"].get(done.current_image_id) is None


def test_rename(upload, png_bytes, stores):
    edit = upload(png_bytes(8, 8))
    uc = RenameEditUseCase(edits=stores["edits"])
    assert uc.execute(edit.id, "  Beach  ").title == "Beach"
    with pytest.raises(ValidationError):
        uc.execute(edit.id, " ")
    with pytest.raises(NotFoundError):
        uc.execute("999999", "Beach")


def test_restore_moves_between_history_entries(orchestrator, upload, png_bytes, stores):
    edit = upload(png_bytes(16, 16))
    results = []
    for brightness in (10, 20):
        _, job = asyncio.run(orchestrator.start_adjustment(edit.id, params={"brightness": brightness}))
        results.append(asyncio.run(orchestrator.run_adjustment(job)).current_image_id)

    uc = RevertEditUseCase(edits=stores["edits"], history=stores["history"])
    undone = uc.execute(edit.id, 1)
    assert undone.current_image_id == results[0]
    assert undone.status == EditStatus.COMPLETED
    redone = uc.execute(edit.id, 2)
    assert redone.current_image_id == results[1]

    current, entries = uc.get_history(edit.id)
    assert [e.sequence for e in entries] == [1, 2]
    assert current.current_image_id == results[1]

    with pytest.raises(NotFoundError):
        uc.execute(edit.id, 3)


def test_delete_cascades_to_caches_ledger_and_blobs(orchestrator, upload, png_bytes, stores):
    edit = upload(png_bytes(40, 20))
    _, job = asyncio.run(orchestrator.start_adjustment(edit.id, params={"brightness": 10}))
    adjusted = asyncio.run(orchestrator.run_adjustment(job)).current_image_id
    _, job = asyncio.run(orchestrator.start_generation(edit.id, "add rain"))
    generated = asyncio.run(orchestrator.run_generation(job)).current_image_id

    uc = DeleteEditUseCase(
        edits=stores["edits"],
        strength_cache=stores["strength_cache"],
        history=stores["history"],
        suggestions=stores["suggestions"],
        storage=stores["storage"],
    )
    assert uc.execute(edit.id) is True

    assert stores["edits"].get(edit.id) is None
    assert stores["strength_cache"].list_by_edit(edit.id) == []
    assert stores["history"].list_by_edit(edit.id) == []
    assert stores["suggestions"].get(edit.original_image_id) is None
    for image_id in (edit.original_image_id, adjusted, generated):
        with pytest.raises(NotFoundError):
            stores["storage"].load(image_id)
    with pytest.raises(NotFoundError):
        uc.execute(edit.id)
