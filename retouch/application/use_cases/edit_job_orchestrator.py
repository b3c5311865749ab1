from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from anyio import to_thread
from starlette.concurrency import run_in_threadpool

from retouch import config
from retouch.application.use_cases.manage_edit import require_edit
from retouch.domain.entities.adjustment import AdjustmentVector
from retouch.domain.entities.cache_entries import SuggestionsCacheEntry
from retouch.domain.entities.edit import EditEntity
from retouch.domain.errors import NotFoundError, UpstreamError, ValidationError
from retouch.domain.services.adjustment_service import AdjustmentService
from retouch.domain.services.fallback_suggestions import fallback_entry
from retouch.domain.services.fingerprint import RequestFingerprinter
from retouch.domain.services.parameter_scaler import ParameterScaler, validate_strength
from retouch.domain.services.square_canvas import PadDescriptor, SquareCanvasAdapter
from retouch.infrastructure.codec.pillow_codec import PillowCodec
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.history_repository import HistoryRepository
from retouch.infrastructure.database.repositories.strength_cache_repository import (
    StrengthCacheRepository,
)
from retouch.infrastructure.database.repositories.suggestions_repository import SuggestionsRepository
from retouch.infrastructure.services.generation_service import OpenAIGenerationService
from retouch.infrastructure.services.vision_service import OpenAIVisionService
from retouch.infrastructure.storage.blob_storage import BlobStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class GenerationJob:
    """A validated generative attempt, ready to run in the background."""

    edit_id: str
    prompt: str
    strength: int
    source_image_id: str
    source: bytes = field(repr=False)
    target: PadDescriptor
    clear_cache: bool = False


@dataclass(frozen=True)
class AdjustmentJob:
    """A validated parametric attempt, ready to run in the background.

    ``base_vector`` is None while a prompt still has to be inferred; the
    inferred vector is then added to ``selection``.
    """

    edit_id: str
    strength: int
    source_image_id: str
    source: bytes = field(repr=False)
    base_vector: AdjustmentVector | None
    selection: AdjustmentVector = field(default_factory=AdjustmentVector)
    prompt: str | None = None
    refine_from_current: bool = False


@dataclass
class EditJobOrchestrator:
    """
    State machine for edit attempts.

    Each attempt runs in two phases. ``start_*`` validates the request, decodes
    the source image and marks the edit ``processing``; DecodeError,
    ValidationError and NotFoundError are raised from here and leave the edit
    untouched. ``run_*`` probes the cache, calls the external service and
    resolves the edit to ``completed`` or ``failed``; it never raises.

    Concurrent attempts on one edit are not serialized. The last write to the
    edit row wins; ledger sequence numbers and cache rows rely on the store's
    unique constraints.
    """

    edits: EditRepository
    strength_cache: StrengthCacheRepository
    history: HistoryRepository
    suggestions: SuggestionsRepository
    storage: BlobStorage
    codec: PillowCodec
    generator: OpenAIGenerationService
    vision: OpenAIVisionService
    adjuster: AdjustmentService = field(default_factory=AdjustmentService)
    generation_timeout: float = config.GENERATION_TIMEOUT
    analysis_timeout: float = config.ANALYSIS_TIMEOUT
    adjust_timeout: float = config.ADJUST_TIMEOUT

    def __post_init__(self) -> None:
        self.canvas = SquareCanvasAdapter(self.codec)

    # ------------------------------------------------------------------
    # helpers

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except TimeoutError as exc:
            raise UpstreamError(f"{what} timed out after {timeout:g}s") from exc

    async def _load_source(self, edit: EditEntity, refine_from_current: bool) -> tuple[str, bytes]:
        image_id = edit.current_image_id if refine_from_current else edit.original_image_id
        data = await run_in_threadpool(self.storage.load, image_id)
        # undecodable input is rejected before the edit changes state
        self.codec.dimensions(data)
        return image_id, data

    async def _mark_processing(self, edit: EditEntity) -> EditEntity:
        processing = await run_in_threadpool(self.edits.mark_processing, edit.id)
        if processing is None:
            raise NotFoundError(f"Edit {edit.id} not found")
        return processing

    async def _fail(self, edit_id: str, what: str) -> EditEntity | None:
        logger.exception("%s attempt for edit %s failed", what, edit_id)
        try:
            return await run_in_threadpool(self.edits.fail, edit_id)
        except Exception:
            # the row stays processing until the next attempt overwrites it
            logger.exception("Could not mark edit %s as failed", edit_id)
            return None

    # ------------------------------------------------------------------
    # generative edits

    async def start_generation(
        self,
        edit_id: str,
        prompt: str,
        strength: int = 50,
        *,
        refine_from_current: bool = False,
        clear_cache: bool = False,
        keep_size_of: str | None = None,
        user_id: str | None = None,
    ) -> tuple[EditEntity, GenerationJob]:
        """
        Validate a generative request and mark the edit as processing.

        The result is cropped back to the dimensions of ``keep_size_of`` when
        given, otherwise to the edit's own dimensions, whatever the size of
        the source image.

        Raises:
            ValidationError: If the prompt is empty or the strength is out of range
            NotFoundError: If the edit or a referenced image doesn't exist
            DecodeError: If the source or reference image can't be decoded
        """
        if not prompt or not prompt.strip():
            raise ValidationError("prompt must not be empty")
        validate_strength(strength)
        edit = await run_in_threadpool(require_edit, self.edits, edit_id, user_id)
        source_image_id, source = await self._load_source(edit, refine_from_current)

        if keep_size_of:
            reference = await run_in_threadpool(self.storage.load, keep_size_of)
            target = PadDescriptor.for_dimensions(*self.codec.dimensions(reference))
        else:
            target = PadDescriptor.for_dimensions(edit.width, edit.height)

        processing = await self._mark_processing(edit)
        job = GenerationJob(
            edit_id=edit.id,
            prompt=prompt,
            strength=strength,
            source_image_id=source_image_id,
            source=source,
            target=target,
            clear_cache=clear_cache,
        )
        logger.info(
            "Generation accepted for edit %s at strength %d (source %s, target %dx%d)",
            edit.id,
            strength,
            source_image_id,
            target.width,
            target.height,
        )
        return processing, job

    async def run_generation(self, job: GenerationJob) -> EditEntity | None:
        """Resolve a started generative attempt. Failures mark the edit ``failed``."""
        try:
            return await self._generate(job)
        except Exception:
            return await self._fail(job.edit_id, "Generation")

    async def _generate(self, job: GenerationJob) -> EditEntity | None:
        edit = await run_in_threadpool(self.edits.get, job.edit_id)
        if edit is None:
            raise NotFoundError(f"Edit {job.edit_id} disappeared during generation")

        # results keyed only by strength are meaningless once the prompt changes
        if job.prompt != edit.prompt or job.clear_cache:
            purged = await run_in_threadpool(self.strength_cache.purge, job.edit_id)
            logger.info("Purged %d cached strengths for edit %s", purged, job.edit_id)

        # cached strengths are cropped to the edit's own size; other sizes bypass the cache
        cacheable = (job.target.width, job.target.height) == (edit.width, edit.height)
        cached = None
        if cacheable:
            cached = await run_in_threadpool(self.strength_cache.get, job.edit_id, job.strength)
        if cached is not None:
            logger.info("Strength cache hit for edit %s at %d", job.edit_id, job.strength)
            return await run_in_threadpool(
                self.edits.complete,
                job.edit_id,
                cached.image_id,
                prompt=job.prompt,
                effect_strength=job.strength,
            )

        padded = await run_in_threadpool(self.canvas.pad_to_square, job.source)
        refined = await self._refine_prompt(job, padded.square)
        square = await self._bounded(
            self.generator.generate(refined, padded.square), self.generation_timeout, "Generation"
        )
        result = await run_in_threadpool(self.canvas.unpad_from_square, square, job.target)

        image_id = await run_in_threadpool(self.storage.save, result, "image/png")
        if cacheable:
            await run_in_threadpool(self.strength_cache.upsert, job.edit_id, job.strength, image_id)
        logger.info("Generation for edit %s completed as %s", job.edit_id, image_id)
        return await run_in_threadpool(
            self.edits.complete,
            job.edit_id,
            image_id,
            prompt=job.prompt,
            refined_prompt=refined,
            effect_strength=job.strength,
        )

    async def _refine_prompt(self, job: GenerationJob, square: bytes) -> str:
        try:
            return await self._bounded(
                self.generator.refine_prompt(job.prompt, job.strength, square),
                self.analysis_timeout,
                "Prompt refinement",
            )
        except Exception as exc:
            logger.warning("Prompt refinement for edit %s failed, using the user prompt: %s", job.edit_id, exc)
            return job.prompt

    # ------------------------------------------------------------------
    # parametric edits

    async def start_adjustment(
        self,
        edit_id: str,
        *,
        params: dict[str, Any] | None = None,
        prompt: str | None = None,
        selected_labels: Iterable[str] = (),
        strength: int = 50,
        refine_from_current: bool = False,
        user_id: str | None = None,
    ) -> tuple[EditEntity, AdjustmentJob]:
        """
        Validate a parametric request and mark the edit as processing.

        ``params`` is a base (strength 50) vector. Alternatively the base vector
        is the clamped sum of the selected natural suggestions plus whatever
        the vision service infers from ``prompt``.

        Raises:
            ValidationError: If the vector, labels or strength are invalid
            NotFoundError: If the edit or its source image doesn't exist
            DecodeError: If the source image can't be decoded
        """
        validate_strength(strength)
        labels = list(dict.fromkeys(selected_labels or ()))
        if prompt is not None and not prompt.strip():
            prompt = None
        if params is not None and (prompt or labels):
            raise ValidationError("params cannot be combined with prompt or selected_labels")
        if params is None and not prompt and not labels:
            raise ValidationError("provide params, a prompt or selected_labels")

        base = AdjustmentVector.from_dict(params) if params is not None else None
        edit = await run_in_threadpool(require_edit, self.edits, edit_id, user_id)
        source_image_id, source = await self._load_source(edit, refine_from_current)

        selection = AdjustmentVector()
        if labels:
            entry = await run_in_threadpool(self._suggestions_for, edit, source_image_id)
            for label in labels:
                suggestion = entry.find(label)
                if suggestion is None:
                    raise ValidationError(f"Unknown suggestion label: {label}")
                selection = selection + suggestion.vector
            selection = selection.clamped()
            if prompt is None:
                base = selection

        processing = await self._mark_processing(edit)
        job = AdjustmentJob(
            edit_id=edit.id,
            strength=strength,
            source_image_id=source_image_id,
            source=source,
            base_vector=base,
            selection=selection,
            prompt=prompt,
            refine_from_current=refine_from_current,
        )
        logger.info("Adjustment accepted for edit %s at strength %d", edit.id, strength)
        return processing, job

    def _suggestions_for(self, edit: EditEntity, image_id: str) -> SuggestionsCacheEntry:
        # a refined image is usually not analyzed yet; its labels come from the upload
        return (
            self.suggestions.get(image_id)
            or self.suggestions.get(edit.original_image_id)
            or fallback_entry(image_id)
        )

    async def run_adjustment(self, job: AdjustmentJob) -> EditEntity | None:
        """Resolve a started parametric attempt. Failures mark the edit ``failed``."""
        try:
            return await self._adjust(job)
        except Exception:
            return await self._fail(job.edit_id, "Adjustment")

    async def _adjust(self, job: AdjustmentJob) -> EditEntity | None:
        base = job.base_vector
        if base is None:
            inferred = await self._bounded(
                self.vision.infer_adjustments(job.prompt or "", job.source),
                self.analysis_timeout,
                "Adjustment inference",
            )
            base = (job.selection + inferred).clamped()

        fingerprint = RequestFingerprinter.for_vector(
            base, source_image_id=job.source_image_id if job.refine_from_current else None
        )
        key = RequestFingerprinter.cache_key(job.edit_id, fingerprint, job.strength)
        hit = await run_in_threadpool(self.history.find, *key)
        if hit is not None:
            logger.info("Ledger hit for edit %s (sequence %d)", job.edit_id, hit.sequence)
            return await run_in_threadpool(
                self.edits.complete, job.edit_id, hit.image_id, effect_strength=job.strength
            )

        scaled = ParameterScaler.scale(base, job.strength)
        # an abandoned worker finishes in the background; its result is discarded
        result = await self._bounded(
            to_thread.run_sync(self._apply, job.source, scaled, abandon_on_cancel=True),
            self.adjust_timeout,
            "Adjustment",
        )
        image_id = await run_in_threadpool(self.storage.save, result, "image/png")
        entry = await run_in_threadpool(
            self.history.append, job.edit_id, fingerprint, job.strength, image_id, scaled.to_dict()
        )
        logger.info(
            "Adjustment for edit %s completed as %s (sequence %d)", job.edit_id, image_id, entry.sequence
        )
        return await run_in_threadpool(
            self.edits.complete, job.edit_id, image_id, effect_strength=job.strength
        )

    def _apply(self, data: bytes, vector: AdjustmentVector) -> bytes:
        matrix = self.codec.to_array(data)
        return self.codec.from_array(self.adjuster.apply(matrix, vector))
