from fastapi import Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError

from imgvault.storage.database import MetadataRepository
from imgvault.storage.s3 import S3Service
from imgvault.image_service.service import VersionedImageStore
from imgvault.models import UserInfo
from imgvault.exceptions import QueryFailureException, UserNotFoundException

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_metadata_repository(request: Request) -> MetadataRepository:
    """Dependency provider for MetadataRepository"""
    return request.app.state.db

def get_image_store(
    db: MetadataRepository = Depends(get_metadata_repository),
    s3: S3Service = Depends(get_s3_service),
) -> VersionedImageStore:
    """Dependency provider for VersionedImageStore"""
    return VersionedImageStore(db=db, s3=s3)

def get_current_user(
    x_username: str = Header(...),
    db: MetadataRepository = Depends(get_metadata_repository),
) -> UserInfo:
    """Resolves the caller named in the X-Username header."""
    try:
        user = db.find_user(x_username)
    except SQLAlchemyError as e:
        raise QueryFailureException(f"Failed to look up user: {e}")
    if user is None:
        raise UserNotFoundException(x_username)
    return user
