import os
import time
from enum import Enum
from typing import List, Optional, Tuple
from datetime import datetime
from pydantic import BaseModel, Field, computed_field
from uuid import UUID


def new_image_id() -> str:
    """
        Generates a time-ordered UUID (version 7 layout): 48 bits of
        unix milliseconds followed by random bits, so ids sort by creation.
    """
    millis = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return str(UUID(int=value))


class ContentType(int, Enum):
    UNKNOWN = 0
    JPEG = 1
    PNG = 2
    GIF = 3
    WEBP = 4
    BMP = 5

    @classmethod
    def from_extension(cls, extension: Optional[str]) -> "ContentType":
        if not extension:
            return cls.UNKNOWN
        return _EXTENSIONS.get(extension.lower().lstrip("."), cls.UNKNOWN)

    @classmethod
    def from_mime(cls, mime: Optional[str]) -> "ContentType":
        if not mime:
            return cls.UNKNOWN
        mime = mime.split(";")[0].strip().lower()
        for content_type, value in _MIMES.items():
            if value == mime:
                return content_type
        if mime == "image/jpg":
            return cls.JPEG
        return cls.UNKNOWN

    @property
    def mime(self) -> str:
        return _MIMES[self]


_EXTENSIONS = {
    "jpg": ContentType.JPEG,
    "jpeg": ContentType.JPEG,
    "png": ContentType.PNG,
    "gif": ContentType.GIF,
    "webp": ContentType.WEBP,
    "bmp": ContentType.BMP,
}

_MIMES = {
    ContentType.UNKNOWN: "application/octet-stream",
    ContentType.JPEG: "image/jpeg",
    ContentType.PNG: "image/png",
    ContentType.GIF: "image/gif",
    ContentType.WEBP: "image/webp",
    ContentType.BMP: "image/bmp",
}


class UserInfo(BaseModel):
    username: str
    object_base_path: str


class ImageInfo(BaseModel):
    """Current addressable version of an image."""
    id: str
    name: str
    extension: str
    username: str
    content_type: ContentType
    version: str


class Image(BaseModel):
    """An image projected onto its current version, with lineage facts."""
    id: str
    name: str
    extension: str
    content_type: ContentType
    created_at: datetime
    last_modified: Optional[datetime] = None
    version: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    size: Optional[int] = None
    version_index: Optional[int] = None
    version_count: int = 0

    @computed_field
    @property
    def latest_version(self) -> bool:
        return self.version_index is not None and self.version_index == self.version_count

    @computed_field
    @property
    def initial_version(self) -> bool:
        return self.version_index == 1


class ImageList(BaseModel):
    images: List[Image] = []
    total: int = 0
    has_more: bool = False


class UploadImage(BaseModel):
    name: str
    content_type: ContentType
    data: bytes
    dimensions: Tuple[int, int] = (0, 0)

    @property
    def extension(self) -> str:
        _, ext = os.path.splitext(self.name)
        return ext.lstrip(".").lower() or "jpg"


class ImageData(BaseModel):
    content_type: str
    data: bytes


class OrphanReport(BaseModel):
    orphaned_objects: List[str] = Field(default_factory=list)
    orphaned_images: List[str] = Field(default_factory=list)
