from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from imgvault.storage.database import MetadataRepository
from imgvault.storage.s3 import S3Service
from imgvault.settings import settings
from imgvault.routers.image_service import router as image_router
from imgvault.routers.users import router as user_router
from imgvault.exceptions import add_exception_handlers

logging.basicConfig(level=settings.log_level.upper())
log = logging.getLogger("imgvault")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Opens the S3 client and the metadata database, and closes them on
        shutdown. Services already set on app.state are kept.
    """
    if getattr(app.state, "s3", None) is None:
        app.state.s3 = S3Service()
    if getattr(app.state, "db", None) is None:
        app.state.db = MetadataRepository()
    log.info("Image store ready (bucket %s)", app.state.s3.bucket)
    yield
    app.state.s3.close()
    app.state.db.close()
    app.state.s3 = None
    app.state.db = None

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Versioned image store backed by S3 and a metadata database",
    root_path="/api/v1"
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(user_router)
app.include_router(image_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Image Vault is running."

if __name__ == "__main__":
    uvicorn.run("imgvault.main:app", host="0.0.0.0", port=8000, reload=True)
