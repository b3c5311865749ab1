from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status

from retouch.application.dtos.edit_dto import (
    AdjustmentRequest,
    DeleteEditResponse,
    EditJobResponse,
    EditResponse,
    GenerationRequest,
    ListEditsResponse,
    RenameEditRequest,
    SuggestionsResponse,
    UploadEditResponse,
)
from retouch.application.use_cases.edit_job_orchestrator import EditJobOrchestrator
from retouch.application.use_cases.get_suggestions import GetSuggestionsUseCase
from retouch.application.use_cases.manage_edit import (
    DeleteEditUseCase,
    RenameEditUseCase,
    require_edit,
)
from retouch.application.use_cases.upload_image import UploadEditUseCase
from retouch.infrastructure.api.dependencies import (
    get_current_user,
    get_delete_use_case,
    get_edit_repo,
    get_orchestrator,
    get_rename_use_case,
    get_suggestions_use_case,
    get_upload_use_case,
)
from retouch.infrastructure.database.repositories.edit_repository import EditRepository

router = APIRouter(
    prefix="/edits",
    tags=["Edits"],
    responses={
        400: {"description": "Bad Request - Undecodable image or invalid parameters"},
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        404: {"description": "Not Found - Edit does not exist or user doesn't have access"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.post(
    "/upload",
    response_model=UploadEditResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Image",
    description="""
    Upload an image and start a new edit for it.

    The image is analyzed to produce a title plus natural (parametric) and AI
    (generative) suggestions. Analysis never blocks the upload: if the vision
    service fails, a static fallback set is returned instead.

    **Supported formats**: anything Pillow can decode (JPEG, PNG, WEBP, ...)
    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The new edit in `pending` state and its suggestions",
)
async def upload_image(
    file: UploadFile = File(..., description="Image file to upload"),
    user=Depends(get_current_user),
    uc: UploadEditUseCase = Depends(get_upload_use_case),
):
    """Upload an image and create an edit for it."""
    data = await file.read()
    edit, suggestions = await uc.execute(data, user_id=user.id)
    return UploadEditResponse(
        edit=EditResponse.from_entity(edit),
        suggestions=SuggestionsResponse.from_entry(suggestions),
    )


@router.get(
    "",
    response_model=ListEditsResponse,
    summary="List Edits",
    description="""
    Retrieve all edits owned by the authenticated user, newest first.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="List of the user's edits",
)
async def list_edits(
    user=Depends(get_current_user),
    edits: EditRepository = Depends(get_edit_repo),
):
    """List the user's edits."""
    items = edits.list_edits(user.id)
    return ListEditsResponse(edits=[EditResponse.from_entity(e) for e in items])


@router.get(
    "/{edit_id}",
    response_model=EditResponse,
    summary="Get Edit",
    description="""
    Retrieve the current state of an edit.

    Edit attempts run in the background; poll this endpoint until `status`
    is `completed` or `failed`. A failed attempt leaves `current_image_id`
    pointing at the last good result.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Current state of the edit",
)
async def get_edit(
    edit_id: str,
    user=Depends(get_current_user),
    edits: EditRepository = Depends(get_edit_repo),
):
    """Get an edit's current state."""
    return EditResponse.from_entity(require_edit(edits, edit_id, user.id))


@router.patch(
    "/{edit_id}",
    response_model=EditResponse,
    summary="Rename Edit",
    description="""
    Change the display title of an edit.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The renamed edit",
)
async def rename_edit(
    edit_id: str,
    body: RenameEditRequest,
    user=Depends(get_current_user),
    uc: RenameEditUseCase = Depends(get_rename_use_case),
):
    """Rename an edit."""
    return EditResponse.from_entity(uc.execute(edit_id, body.title, user_id=user.id))


@router.delete(
    "/{edit_id}",
    response_model=DeleteEditResponse,
    summary="Delete Edit",
    description="""
    Permanently delete an edit and all associated data.

    **This operation will:**
    - Purge the edit's strength cache and history ledger
    - Remove every image the edit produced, and the upload itself
    - Delete the edit row
    - Cannot be undone

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Confirmation of successful deletion",
)
async def delete_edit(
    edit_id: str,
    user=Depends(get_current_user),
    uc: DeleteEditUseCase = Depends(get_delete_use_case),
):
    """Delete an edit and everything derived from it."""
    return DeleteEditResponse(ok=uc.execute(edit_id, user_id=user.id))


@router.post(
    "/{edit_id}/generate",
    response_model=EditJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start Generative Edit",
    description="""
    Apply a plain-language edit with the generative image service.

    The request is validated and the edit is marked `processing` before this
    endpoint returns; generation continues in the background.

    **Caching:**
    - Results are cached per strength, so returning a slider to a visited
      value is instant
    - Changing the prompt (or passing `clear_cache`) discards those results

    **Options:**
    - `refine_from_current` edits the current result instead of the upload
    - `keep_size_of` crops the result to the dimensions of another image

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The edit in `processing` state",
)
async def generate_edit(
    edit_id: str,
    body: GenerationRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    orchestrator: EditJobOrchestrator = Depends(get_orchestrator),
):
    """Start a generative edit attempt."""
    edit, job = await orchestrator.start_generation(
        edit_id,
        body.prompt,
        body.strength,
        refine_from_current=body.refine_from_current,
        clear_cache=body.clear_cache,
        keep_size_of=body.keep_size_of,
        user_id=user.id,
    )
    background_tasks.add_task(orchestrator.run_generation, job)
    return EditJobResponse(edit=EditResponse.from_entity(edit))


@router.post(
    "/{edit_id}/adjust",
    response_model=EditJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start Parametric Edit",
    description="""
    Apply brightness, contrast, saturation, hue, sharpen and noise reduction.

    Send either `params` (the base vector at strength 50) or any combination
    of `prompt` and `selected_labels` (labels of the image's natural
    suggestions). The base vector is scaled by `strength / 50`.

    Every applied result is recorded in the edit's history; repeating an
    identical request returns the recorded result instead of recomputing it.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The edit in `processing` state and the base vector when known",
)
async def adjust_edit(
    edit_id: str,
    body: AdjustmentRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    orchestrator: EditJobOrchestrator = Depends(get_orchestrator),
):
    """Start a parametric edit attempt."""
    edit, job = await orchestrator.start_adjustment(
        edit_id,
        params=body.params,
        prompt=body.prompt,
        selected_labels=body.selected_labels,
        strength=body.strength,
        refine_from_current=body.refine_from_current,
        user_id=user.id,
    )
    background_tasks.add_task(orchestrator.run_adjustment, job)
    base = job.base_vector.to_dict() if job.base_vector is not None else None
    return EditJobResponse(edit=EditResponse.from_entity(edit), base_params=base)


@router.get(
    "/{edit_id}/suggestions",
    response_model=SuggestionsResponse,
    summary="Get Suggestions",
    description="""
    Natural and AI suggestions for the edit's current image.

    Results are cached per image. An image that was never analyzed is
    analyzed on first request; if analysis fails a static fallback set is
    returned and not cached.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Suggestions for the current image",
)
async def get_suggestions(
    edit_id: str,
    user=Depends(get_current_user),
    uc: GetSuggestionsUseCase = Depends(get_suggestions_use_case),
):
    """Get suggestions for an edit's current image."""
    return SuggestionsResponse.from_entry(await uc.execute(edit_id, user_id=user.id))
