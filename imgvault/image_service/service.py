import hashlib
import logging
from typing import Optional
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

from imgvault.storage.database import MetadataRepository
from imgvault.storage.s3 import S3Service
from imgvault.image_service.listing import find_orphans, merge_listing, object_key, user_prefix
from imgvault.models import (
    ContentType, Image, ImageData, ImageInfo, ImageList, OrphanReport, UploadImage, UserInfo,
    new_image_id,
)
from imgvault.settings import settings
from imgvault.exceptions import (
    ImageNotFoundException, ObjectStoreException, QueryFailureException, ReadFailureException,
)

log = logging.getLogger(__name__)

SYNTHETIC_VERSION_PREFIX = "sha256-"


def synthesize_version(data: bytes) -> str:
    """
        Version token for buckets that do not hand out version ids: the
        payload digest plus a time-ordered suffix, unique per upload so
        re-uploading old bytes still appends to the lineage.
    """
    return f"{SYNTHETIC_VERSION_PREFIX}{hashlib.sha256(data).hexdigest()}-{new_image_id()}"


def is_synthetic_version(version: Optional[str]) -> bool:
    return bool(version) and version.startswith(SYNTHETIC_VERSION_PREFIX)


class VersionedImageStore:
    """
        Keeps S3 objects and their metadata rows in step.

        S3 holds every revision of an image under one key per image id; the
        database holds the lineage of those revisions and which one is current.
        Every operation runs its store calls one after another, since the
        version id S3 returns is an input to the metadata write.
    """

    def __init__(self, db: MetadataRepository, s3: S3Service):
        self.db = db
        self.s3 = s3

    def upload(self, image: UploadImage, user: UserInfo) -> str:
        """
            Stores image as a new image, or as a new version of the user's
            image with the same name. Returns the image id.

            Only an S3 failure fails the upload. Metadata writes after the
            object is stored are logged and skipped on error.
        """
        try:
            existing_id = self.db.find_image_id_by_name(image.name, user.username)
        except SQLAlchemyError as e:
            log.error(f"Image lookup by name failed: {e}")
            raise QueryFailureException(f"Failed to look up image '{image.name}': {e}")

        is_new = existing_id is None
        image_id = new_image_id() if is_new else existing_id
        extension = image.extension
        if not is_new:
            try:
                extension = self.db.find_image_extension(image_id) or extension
            except SQLAlchemyError as e:
                log.error(f"Image extension lookup failed: {e}")
                raise QueryFailureException(f"Failed to look up image '{image.name}': {e}")
        key = object_key(user.object_base_path, image_id, extension)

        try:
            version = self.s3.put(image.data, key, image.content_type.mime)
        except (BotoCoreError, ClientError) as e:
            log.error(f"S3 upload failed: {e}")
            raise ObjectStoreException(f"Failed to upload image to S3: {e}")

        if version is None:
            version = synthesize_version(image.data)
            log.warning("No version id from S3 for %s, using %s", key, version)

        if is_new:
            try:
                if not self.db.insert_image(
                    image_id, image.name, extension, image.content_type, user.username
                ):
                    # a concurrent upload claimed the name first; our object has no row
                    log.error(
                        "Image %s already recorded for %s, object %s is orphaned",
                        image.name, user.username, key,
                    )
                    return image_id
            except SQLAlchemyError as e:
                log.error(f"Image insert failed, object {key} is orphaned: {e}")
                return image_id

        try:
            if self.db.insert_image_version(image_id, version, image.dimensions, len(image.data)) is None:
                log.warning("Version %s of image %s already recorded", version, image_id)
        except SQLAlchemyError as e:
            log.error(f"Image version insert failed: {e}")

        log.info("Uploaded image %s version %s", image_id, version)
        return image_id

    def get_one(self, image_id: str, user: UserInfo) -> Optional[ImageData]:
        """
            Fetches the bytes of the current version. The version id comes
            from the metadata row, so a concurrent upload cannot swap the
            payload under the metadata that was read.
        """
        info = self._find_info(image_id, user)
        if info is None:
            return None

        key = object_key(user.object_base_path, info.id, info.extension)
        version = None if is_synthetic_version(info.version) else info.version
        try:
            resp = self.s3.get(key, version)
        except (BotoCoreError, ClientError) as e:
            log.error(f"S3 get failed: {e}")
            raise ObjectStoreException(f"Failed to fetch image from S3: {e}")

        try:
            data = resp["Body"].read()
        except (BotoCoreError, OSError) as e:
            log.error(f"S3 body read failed for {key}: {e}")
            raise ReadFailureException(key)

        content_type = info.content_type.mime
        if info.content_type is ContentType.UNKNOWN:
            content_type = resp.get("ContentType") or content_type
        return ImageData(content_type=content_type, data=data)

    def get_metadata_one(self, image_id: str, user: UserInfo) -> Optional[Image]:
        try:
            return self.db.find_image_with_lineage(image_id, user.username)
        except SQLAlchemyError as e:
            log.error(f"Image metadata query failed: {e}")
            raise QueryFailureException(f"Failed to get image metadata: {e}")

    def get_metadata_all(self, user: UserInfo, page: int = 1, limit: Optional[int] = None) -> ImageList:
        page = max(page, 1)
        limit = max(1, min(limit or settings.default_page_limit, settings.max_page_limit))

        objects = self._list_objects(user)
        try:
            images = self.db.find_all_images(user.username)
        except SQLAlchemyError as e:
            log.error(f"Image metadata query failed: {e}")
            raise QueryFailureException(f"Failed to get image metadata: {e}")

        return merge_listing(objects, images, user.object_base_path, page, limit)

    def delete(self, image_id: str, user: UserInfo):
        """
            Deletes the metadata first, then the live S3 object. Older
            revisions stay in the bucket's version history.
        """
        info = self._require_info(image_id, user)
        try:
            self.db.delete_image(info.id)
        except SQLAlchemyError as e:
            log.error(f"Image delete failed: {e}")
            raise QueryFailureException(f"Failed to delete image metadata: {e}")

        key = object_key(user.object_base_path, info.id, info.extension)
        try:
            self.s3.delete(key)
        except (BotoCoreError, ClientError) as e:
            log.error(f"S3 delete failed, {key} is orphaned: {e}")
            raise ObjectStoreException(f"Failed to delete image from S3: {e}")
        log.info("Deleted image %s", info.id)

    def rename(self, image_id: str, new_name: str, user: UserInfo) -> Optional[str]:
        info = self._require_info(image_id, user)
        try:
            return self.db.rename_image(info.id, new_name)
        except SQLAlchemyError as e:
            log.error(f"Image rename failed: {e}")
            raise QueryFailureException(f"Failed to rename image: {e}")

    def revert(self, image_id: str, user: UserInfo) -> Optional[str]:
        """Makes the previous version current. None when already at the first one."""
        info = self._require_info(image_id, user)
        try:
            version = self.db.revert_image_version(info.id)
        except SQLAlchemyError as e:
            log.error(f"Image revert failed: {e}")
            raise QueryFailureException(f"Failed to revert image: {e}")
        return None if version == info.version else version

    def restore(self, image_id: str, user: UserInfo) -> Optional[str]:
        """Makes the next version current. None when already at the latest one."""
        info = self._require_info(image_id, user)
        try:
            version = self.db.restore_image_version(info.id)
        except SQLAlchemyError as e:
            log.error(f"Image restore failed: {e}")
            raise QueryFailureException(f"Failed to restore image: {e}")
        return None if version == info.version else version

    def find_orphans(self, user: UserInfo) -> OrphanReport:
        """Objects without metadata rows and rows without objects, for one user."""
        objects = self._list_objects(user)
        try:
            images = self.db.find_all_images(user.username)
        except SQLAlchemyError as e:
            log.error(f"Image metadata query failed: {e}")
            raise QueryFailureException(f"Failed to get image metadata: {e}")
        return find_orphans(objects, images, user.object_base_path)

    def _list_objects(self, user: UserInfo):
        try:
            return self.s3.list(user_prefix(user.object_base_path))
        except (BotoCoreError, ClientError) as e:
            log.error(f"S3 list failed: {e}")
            raise ObjectStoreException(f"Failed to list images in S3: {e}")

    def _find_info(self, image_id: str, user: UserInfo) -> Optional[ImageInfo]:
        try:
            return self.db.find_image(image_id, user.username)
        except SQLAlchemyError as e:
            log.error(f"Image lookup failed: {e}")
            raise QueryFailureException(f"Failed to get image metadata: {e}")

    def _require_info(self, image_id: str, user: UserInfo) -> ImageInfo:
        info = self._find_info(image_id, user)
        if info is None:
            raise ImageNotFoundException(image_id)
        return info
