from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from imgvault.models import Image, ImageList


class ImageItem(BaseModel):
    id: str
    name: str
    content_type: str
    created_at: datetime
    last_modified: Optional[datetime] = None
    version: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    size: Optional[int] = None
    version_index: Optional[int] = None
    version_count: int = 0
    latest_version: bool = False
    initial_version: bool = False

    @classmethod
    def from_image(cls, image: Image) -> "ImageItem":
        return cls(
            id=image.id,
            name=image.name,
            content_type=image.content_type.mime,
            created_at=image.created_at,
            last_modified=image.last_modified,
            version=image.version,
            width=image.width,
            height=image.height,
            size=image.size,
            version_index=image.version_index,
            version_count=image.version_count,
            latest_version=image.latest_version,
            initial_version=image.initial_version,
        )


class ListImagesResponse(BaseModel):
    images: List[ImageItem]
    total: int
    has_more: bool

    @classmethod
    def from_list(cls, image_list: ImageList) -> "ListImagesResponse":
        return cls(
            images=[ImageItem.from_image(image) for image in image_list.images],
            total=image_list.total,
            has_more=image_list.has_more,
        )


class UploadResponse(BaseModel):
    uploaded: int
    image_ids: List[str]


class ImageRenameRequest(BaseModel):
    image_name: str


class ImageUpdateResponse(BaseModel):
    updated: bool
    version: Optional[str] = None
    name: Optional[str] = None


class CreateUserRequest(BaseModel):
    username: str


class UserResponse(BaseModel):
    username: str
    object_base_path: str


class OrphanResponse(BaseModel):
    orphaned_objects: List[str]
    orphaned_images: List[str]
