"""
    Joins an S3 listing with metadata rows into one paginated page.

    The listing decides which images exist and in what order (newest object
    first); the metadata rows supply the facts about each one. Both sides
    meet on the derived object key.
"""
from typing import Any, Dict, Iterable, List, Optional

from imgvault.models import Image, ImageList, OrphanReport


def object_key(base_path: str, image_id: str, extension: Optional[str] = None) -> str:
    """S3 key of an image: <base_path>/<image_id>.<extension>."""
    return f"{base_path}/{image_id}.{extension or 'jpg'}"


def user_prefix(base_path: str) -> str:
    return f"{base_path}/"


def index_by_key(base_path: str, images: Iterable[Image]) -> Dict[str, Image]:
    return {object_key(base_path, image.id, image.extension): image for image in images}


def sort_objects(objects: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Most recently modified first; key order breaks ties."""
    return sorted(objects, key=lambda o: (o["LastModified"], o["Key"]), reverse=True)


def merge_listing(
    objects: List[Dict[str, Any]],
    images: Iterable[Image],
    base_path: str,
    page: int,
    limit: int,
) -> ImageList:
    if page < 1:
        raise ValueError("page must be >= 1")
    if limit < 1:
        raise ValueError("limit must be >= 1")

    total = len(objects)
    start = min((page - 1) * limit, total)
    end = min(start + limit, total)

    by_key = index_by_key(base_path, images)
    # objects with no metadata row are orphans and drop out of the page
    page_images = [
        by_key[obj["Key"]]
        for obj in sort_objects(objects)[start:end]
        if obj["Key"] in by_key
    ]
    return ImageList(images=page_images, total=total, has_more=end < total)


def find_orphans(
    objects: List[Dict[str, Any]],
    images: Iterable[Image],
    base_path: str,
) -> OrphanReport:
    by_key = index_by_key(base_path, images)
    keys = {obj["Key"] for obj in objects}
    return OrphanReport(
        orphaned_objects=sorted(keys - by_key.keys()),
        orphaned_images=sorted(image.id for key, image in by_key.items() if key not in keys),
    )
