from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from typing import List
import logging

from imgvault.dependencies.dependencies import get_current_user, get_image_store
from imgvault.image_service.service import VersionedImageStore
from imgvault.image_service.validation import validate_image_bytes
from imgvault.image_service.models import (
    ImageItem, ImageRenameRequest, ImageUpdateResponse, ListImagesResponse, OrphanResponse,
    UploadResponse,
)
from imgvault.models import UploadImage, UserInfo
from imgvault.exceptions import ImageNotFoundException, InvalidImageException
from imgvault.settings import settings

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["images"]
)

@router.post("", response_model=UploadResponse, status_code=201)
async def upload_images(
    files: List[UploadFile] = File(...),
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """
    Uploads one or more images.

    A file whose name matches one of the caller's images becomes a new
    version of that image.
    """
    uploads = []
    for file in files:
        if not file.filename:
            raise InvalidImageException("Missing file name")
        contents = await file.read()
        content_type, dimensions = validate_image_bytes(contents, file.content_type, file.filename)
        uploads.append(UploadImage(
            name=file.filename,
            content_type=content_type,
            data=contents,
            dimensions=dimensions,
        ))

    # store calls are blocking, keep them off the event loop
    image_ids = [await run_in_threadpool(store.upload, image, user) for image in uploads]
    log.info("User %s uploaded %d image(s)", user.username, len(image_ids))
    return UploadResponse(uploaded=len(image_ids), image_ids=image_ids)

@router.get("", response_model=ListImagesResponse)
def list_images(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Lists the caller's images, most recently modified first."""
    return ListImagesResponse.from_list(store.get_metadata_all(user, page, limit))

@router.get("/orphans", response_model=OrphanResponse)
def list_orphans(
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Reports S3 objects without metadata and metadata without S3 objects."""
    report = store.find_orphans(user)
    return OrphanResponse(
        orphaned_objects=report.orphaned_objects,
        orphaned_images=report.orphaned_images,
    )

@router.get("/{image_id}")
def get_image(
    image_id: str,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Returns the bytes of the image's current version."""
    image = store.get_one(image_id, user)
    if image is None:
        raise ImageNotFoundException(image_id)
    return Response(
        content=image.data,
        media_type=image.content_type,
        headers={"Cache-Control": "private, max-age=0, must-revalidate"},
    )

@router.get("/{image_id}/metadata", response_model=ImageItem)
def get_image_metadata(
    image_id: str,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Gets image metadata along with its place in the version lineage."""
    image = store.get_metadata_one(image_id, user)
    if image is None:
        raise ImageNotFoundException(image_id)
    return ImageItem.from_image(image)

@router.patch("/{image_id}", response_model=ImageUpdateResponse)
def rename_image(
    image_id: str,
    body: ImageRenameRequest,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Renames an image. The stored object keeps its key."""
    name = body.image_name.strip()
    if not name:
        raise InvalidImageException("Image name must not be empty")
    new_name = store.rename(image_id, name, user)
    return ImageUpdateResponse(updated=new_name is not None, name=new_name)

@router.post("/{image_id}/revert", response_model=ImageUpdateResponse)
def revert_image(
    image_id: str,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Makes the previous version current."""
    version = store.revert(image_id, user)
    return ImageUpdateResponse(updated=version is not None, version=version)

@router.post("/{image_id}/restore", response_model=ImageUpdateResponse)
def restore_image(
    image_id: str,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Makes the next version current."""
    version = store.restore(image_id, user)
    return ImageUpdateResponse(updated=version is not None, version=version)

@router.delete("/{image_id}", status_code=204)
def delete_image(
    image_id: str,
    user: UserInfo = Depends(get_current_user),
    store: VersionedImageStore = Depends(get_image_store),
):
    """Deletes an image and its version lineage."""
    store.delete(image_id, user)
    return Response(status_code=204)
