from io import BytesIO
from typing import Optional, Tuple
from PIL import Image, UnidentifiedImageError

from imgvault.models import ContentType
from imgvault.exceptions import InvalidImageException


def validate_image_bytes(
    file_bytes: bytes,
    declared_type: Optional[str],
    filename: Optional[str] = None,
) -> Tuple[ContentType, Tuple[int, int]]:
    """
        Validate that the uploaded file is a real image and read its size.

        The format Pillow detects wins over the declared MIME type and the
        file extension, which are only hints.
    """
    if declared_type and not declared_type.startswith("image/"):
        raise InvalidImageException(f"Unsupported content type: {declared_type}")
    if not file_bytes:
        raise InvalidImageException("Empty image file")

    try:
        img = Image.open(BytesIO(file_bytes))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise InvalidImageException("Invalid image file")

    content_type = ContentType.from_extension(img.format)
    if content_type is ContentType.UNKNOWN:
        content_type = ContentType.from_mime(declared_type)
    if content_type is ContentType.UNKNOWN and filename:
        content_type = ContentType.from_extension(filename.rsplit(".", 1)[-1])
    if content_type is ContentType.UNKNOWN:
        raise InvalidImageException(f"Unsupported image type: {img.format}")

    return content_type, img.size
