from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
import logging

from imgvault.dependencies.dependencies import get_metadata_repository
from imgvault.storage.database import MetadataRepository
from imgvault.image_service.models import CreateUserRequest, UserResponse
from imgvault.exceptions import InvalidImageException, QueryFailureException, UserExistsException

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"]
)

@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    body: CreateUserRequest,
    db: MetadataRepository = Depends(get_metadata_repository),
):
    """Registers a user and assigns the S3 prefix their images live under."""
    username = body.username.strip()
    if not username:
        raise InvalidImageException("Username must not be empty")
    try:
        user = db.create_user(username)
    except SQLAlchemyError as e:
        log.error(f"User insert failed: {e}")
        raise QueryFailureException(f"Failed to create user: {e}")
    if user is None:
        raise UserExistsException(username)
    log.info("Registered user %s", username)
    return UserResponse(username=user.username, object_base_path=user.object_base_path)
