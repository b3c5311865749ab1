from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from retouch.application.use_cases.edit_job_orchestrator import EditJobOrchestrator
from retouch.application.use_cases.get_suggestions import GetSuggestionsUseCase
from retouch.application.use_cases.manage_edit import DeleteEditUseCase, RenameEditUseCase
from retouch.application.use_cases.revert_image import RevertEditUseCase
from retouch.application.use_cases.upload_image import UploadEditUseCase
from retouch.infrastructure.codec.pillow_codec import PillowCodec
from retouch.infrastructure.database.repositories.edit_repository import EditRepository
from retouch.infrastructure.database.repositories.history_repository import HistoryRepository
from retouch.infrastructure.database.repositories.strength_cache_repository import (
    StrengthCacheRepository,
)
from retouch.infrastructure.database.repositories.suggestions_repository import SuggestionsRepository
from retouch.infrastructure.database.supabase_client import (
    SupabaseAuthAdapter,
    UserInfo,
    get_supabase_client,
)
from retouch.infrastructure.services.generation_service import OpenAIGenerationService
from retouch.infrastructure.services.vision_service import OpenAIVisionService
from retouch.infrastructure.storage.blob_storage import BlobStorage

_bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_adapter() -> SupabaseAuthAdapter:
    return SupabaseAuthAdapter()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)] = None,
    auth: Annotated[SupabaseAuthAdapter, Depends(get_auth_adapter)] = None,
) -> UserInfo:
    if not credentials or not credentials.scheme or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = credentials.credentials
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return auth.validate_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))


def get_storage() -> BlobStorage:
    return BlobStorage(get_supabase_client())


def get_edit_repo() -> EditRepository:
    return EditRepository(get_supabase_client())


def get_history_repo() -> HistoryRepository:
    return HistoryRepository(get_supabase_client())


def get_strength_cache_repo() -> StrengthCacheRepository:
    return StrengthCacheRepository(get_supabase_client())


def get_suggestions_repo() -> SuggestionsRepository:
    return SuggestionsRepository(get_supabase_client())


def get_codec() -> PillowCodec:
    return PillowCodec()


def get_generation_service() -> OpenAIGenerationService:
    return OpenAIGenerationService()


def get_vision_service() -> OpenAIVisionService:
    return OpenAIVisionService()


def get_orchestrator(
    edits: EditRepository = Depends(get_edit_repo),
    strength_cache: StrengthCacheRepository = Depends(get_strength_cache_repo),
    history: HistoryRepository = Depends(get_history_repo),
    suggestions: SuggestionsRepository = Depends(get_suggestions_repo),
    storage: BlobStorage = Depends(get_storage),
    codec: PillowCodec = Depends(get_codec),
    generator: OpenAIGenerationService = Depends(get_generation_service),
    vision: OpenAIVisionService = Depends(get_vision_service),
) -> EditJobOrchestrator:
    return EditJobOrchestrator(
        edits=edits,
        strength_cache=strength_cache,
        history=history,
        suggestions=suggestions,
        storage=storage,
        codec=codec,
        generator=generator,
        vision=vision,
    )


def get_upload_use_case(
    storage: BlobStorage = Depends(get_storage),
    edits: EditRepository = Depends(get_edit_repo),
    suggestions: SuggestionsRepository = Depends(get_suggestions_repo),
    vision: OpenAIVisionService = Depends(get_vision_service),
    codec: PillowCodec = Depends(get_codec),
) -> UploadEditUseCase:
    return UploadEditUseCase(
        storage=storage, edits=edits, suggestions=suggestions, vision=vision, codec=codec
    )


def get_suggestions_use_case(
    edits: EditRepository = Depends(get_edit_repo),
    suggestions: SuggestionsRepository = Depends(get_suggestions_repo),
    storage: BlobStorage = Depends(get_storage),
    vision: OpenAIVisionService = Depends(get_vision_service),
) -> GetSuggestionsUseCase:
    return GetSuggestionsUseCase(edits=edits, suggestions=suggestions, storage=storage, vision=vision)


def get_rename_use_case(edits: EditRepository = Depends(get_edit_repo)) -> RenameEditUseCase:
    return RenameEditUseCase(edits=edits)


def get_delete_use_case(
    edits: EditRepository = Depends(get_edit_repo),
    strength_cache: StrengthCacheRepository = Depends(get_strength_cache_repo),
    history: HistoryRepository = Depends(get_history_repo),
    suggestions: SuggestionsRepository = Depends(get_suggestions_repo),
    storage: BlobStorage = Depends(get_storage),
) -> DeleteEditUseCase:
    return DeleteEditUseCase(
        edits=edits,
        strength_cache=strength_cache,
        history=history,
        suggestions=suggestions,
        storage=storage,
    )


def get_revert_use_case(
    edits: EditRepository = Depends(get_edit_repo),
    history: HistoryRepository = Depends(get_history_repo),
) -> RevertEditUseCase:
    return RevertEditUseCase(edits=edits, history=history)
