"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class ImageNotFoundException(APIException):
    """Exception for when an image is not found for the caller."""
    def __init__(self, image_id: str):
        super().__init__(status_code=404, detail=f"Image with ID '{image_id}' not found.")

class InvalidImageException(APIException):
    """Exception for invalid image files."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class QueryFailureException(APIException):
    """Exception for metadata database failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class ObjectStoreException(APIException):
    """Exception for S3 put/get/list/delete failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class ReadFailureException(APIException):
    """Exception for an object body that could not be read to the end."""
    def __init__(self, key: str):
        super().__init__(status_code=500, detail=f"Failed to read object '{key}'.")

class UserNotFoundException(APIException):
    """Exception for a caller that does not resolve to a known user."""
    def __init__(self, username: str):
        super().__init__(status_code=401, detail=f"User '{username}' not found.")

class UserExistsException(APIException):
    def __init__(self, username: str):
        super().__init__(status_code=409, detail=f"User '{username}' already exists.")

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    if exc.status_code >= 500:
        log.error(f"API Exception: {exc.detail}", exc_info=exc)
    else:
        log.warning(f"API Exception: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
