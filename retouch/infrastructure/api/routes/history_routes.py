from __future__ import annotations

from fastapi import APIRouter, Depends

from retouch.application.dtos.edit_dto import EditResponse
from retouch.application.dtos.history_dto import HistoryItem, ListHistoryResponse
from retouch.application.use_cases.revert_image import RevertEditUseCase
from retouch.infrastructure.api.dependencies import get_current_user, get_revert_use_case

router = APIRouter(
    prefix="/edits/{edit_id}/history",
    tags=["Edit History"],
    responses={
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        404: {"description": "Not Found - Edit or history entry does not exist"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.get(
    "",
    response_model=ListHistoryResponse,
    summary="List Edit History",
    description="""
    Retrieve every parametric edit applied to an edit, ordered by sequence.

    Sequence numbers start at 1 and have no gaps. Together with
    `current_image_id` they drive undo/redo in the client.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="History entries ordered by sequence",
)
async def list_history(
    edit_id: str,
    user=Depends(get_current_user),
    uc: RevertEditUseCase = Depends(get_revert_use_case),
):
    """Get an edit's history."""
    edit, entries = uc.get_history(edit_id, user_id=user.id)
    return ListHistoryResponse(
        edit_id=edit.id,
        current_image_id=edit.current_image_id,
        history=[HistoryItem.from_entity(e) for e in entries],
    )


@router.post(
    "/{sequence}/restore",
    response_model=EditResponse,
    summary="Restore History Entry",
    description="""
    Point the edit at the result of an earlier (undo) or later (redo) entry.

    **Note**: Nothing is recomputed and no history entry is added.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The edit after the restore",
)
async def restore_history(
    edit_id: str,
    sequence: int,
    user=Depends(get_current_user),
    uc: RevertEditUseCase = Depends(get_revert_use_case),
):
    """Restore an edit to a history entry."""
    return EditResponse.from_entity(uc.execute(edit_id, sequence, user_id=user.id))
