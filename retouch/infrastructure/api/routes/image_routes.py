from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from retouch.infrastructure.api.dependencies import get_storage
from retouch.infrastructure.storage.blob_storage import BlobStorage

router = APIRouter(
    prefix="/images",
    tags=["Images"],
    responses={404: {"description": "Not Found - Image does not exist"}},
)


@router.get(
    "/{image_id}",
    summary="Download Image File",
    description="""
    Download the bytes of an uploaded or generated image.

    Image ids are random and unguessable, so this endpoint can be used
    directly as an `<img src>` without an Authorization header.
    """,
    response_description="Binary image file data",
    responses={200: {"content": {"image/*": {}}, "description": "Image file content"}},
)
async def download_image(
    image_id: str,
    storage: BlobStorage = Depends(get_storage),
):
    """Download the binary content of an image."""
    data = storage.load(image_id)
    return Response(content=data, media_type=storage.content_type(image_id))
