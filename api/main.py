"""HTTP API for the household inventory service.

Provides endpoints for registration/login, Object, Location and Category
CRUD, image uploads and object photos. Every ``/api`` route except register
and login requires a bearer token.

``create_app`` wires one ``Store``, one ``CredentialStore`` and one image
store into ``app.state``; routes receive them through dependencies instead of
module globals, and the store is disposed when the app shuts down.

Copyright (c) Bryn Gwalad 2025
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.database import Store

from . import categories, locations, objects
from .auth import CredentialStore, Identity, get_credentials, get_current_user
from .config import DEV_JWT_SECRET, Settings
from .listing import ObjectFilters
from .models import CategoryInput, LocationInput, LoginRequest, ObjectInput, RegisterRequest
from .uploads import ImageStore, LocalImageStore, build_image_store, validate_image

# Module logger
logger = logging.getLogger("inventory_api")
access_logger = logging.getLogger("access")


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_images(request: Request) -> ImageStore:
    return request.app.state.images


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Only field location and message; raw input could hold a password.
    details = [{"loc": err.get("loc"), "msg": err.get("msg")} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request data", "details": jsonable_encoder(details)},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - start) * 1000
    access_logger.info(
        "%s %s %s %.2fms", request.method, request.url.path, response.status_code, elapsed
    )
    return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter(prefix="/api")


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, credentials: CredentialStore = Depends(get_credentials)):
    """Create an account. The first account becomes the household admin."""
    return credentials.register(body.name, body.email, body.password)


@router.post("/auth/login")
def login(body: LoginRequest, credentials: CredentialStore = Depends(get_credentials)):
    return credentials.login(body.email, body.password)


@router.get("/auth/me")
def current_user(
    user: Identity = Depends(get_current_user),
    credentials: CredentialStore = Depends(get_credentials),
):
    return {"user": credentials.me(user)}


@router.get("/objects")
def list_objects(
    category: Optional[int] = Query(default=None),
    location: Optional[int] = Query(default=None),
    search: Optional[str] = Query(default=None),
    store: Store = Depends(get_store),
    user: Identity = Depends(get_current_user),
):
    """List objects, optionally filtered by category, location and a search term."""
    filters = ObjectFilters(category=category, location=location, search=search)
    return {"objects": objects.list_objects(store, filters)}


@router.get("/objects/{object_id}")
def get_object(object_id: int, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    """Return an object and its location history."""
    return objects.get_object(store, object_id)


@router.post("/objects", status_code=status.HTTP_201_CREATED)
def create_object(body: ObjectInput, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    return {"object": objects.create_object(store, body, user)}


@router.put("/objects/{object_id}")
def update_object(
    object_id: int,
    body: ObjectInput,
    store: Store = Depends(get_store),
    user: Identity = Depends(get_current_user),
):
    """Replace an object. Sending a different ``location_id`` records a move."""
    return {"object": objects.update_object(store, object_id, body, user)}


@router.delete("/objects/{object_id}")
def delete_object(object_id: int, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    objects.delete_object(store, object_id)
    return {"message": "Object deleted successfully"}


@router.post("/objects/{object_id}/photo")
def upload_object_photo(
    object_id: int,
    image: UploadFile = File(...),
    store: Store = Depends(get_store),
    images: ImageStore = Depends(get_images),
    settings: Settings = Depends(get_settings),
    user: Identity = Depends(get_current_user),
):
    """Upload an image and set it as the object's photo."""
    try:
        content = image.file.read()
    finally:
        image.file.close()
    validate_image(content, image.content_type, settings.max_upload_bytes)
    obj = objects.attach_photo(store, images, object_id, content, image.filename or "", image.content_type)
    return {"object": obj}


@router.get("/locations")
def list_locations(store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    return {"locations": locations.list_locations(store)}


@router.get("/locations/{location_id}")
def get_location(location_id: int, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    """Return a location and the objects stored there."""
    return locations.get_location(store, location_id)


@router.post("/locations", status_code=status.HTTP_201_CREATED)
def create_location(body: LocationInput, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    return {"location": locations.create_location(store, body)}


@router.put("/locations/{location_id}")
def update_location(
    location_id: int,
    body: LocationInput,
    store: Store = Depends(get_store),
    user: Identity = Depends(get_current_user),
):
    return {"location": locations.update_location(store, location_id, body)}


@router.delete("/locations/{location_id}")
def delete_location(location_id: int, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    """Delete an empty location; fails with 409 while objects are stored there."""
    locations.delete_location(store, location_id)
    return {"message": "Location deleted successfully"}


@router.get("/categories")
def list_categories(store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    return {"categories": categories.list_categories(store)}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(body: CategoryInput, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    return {"category": categories.create_category(store, body)}


@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    body: CategoryInput,
    store: Store = Depends(get_store),
    user: Identity = Depends(get_current_user),
):
    return {"category": categories.update_category(store, category_id, body)}


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, store: Store = Depends(get_store), user: Identity = Depends(get_current_user)):
    """Delete a category; objects using it keep existing without a category."""
    categories.delete_category(store, category_id)
    return {"message": "Category deleted successfully"}


@router.post("/upload")
def upload_image(
    image: UploadFile = File(...),
    images: ImageStore = Depends(get_images),
    settings: Settings = Depends(get_settings),
    user: Identity = Depends(get_current_user),
):
    """Store an image and return ``{"url", "id"}`` for use as a photo_url."""
    try:
        content = image.file.read()
    finally:
        image.file.close()
    validate_image(content, image.content_type, settings.max_upload_bytes)
    stored = images.upload(content, filename=image.filename or "", content_type=image.content_type)
    return stored.to_dict()


@router.delete("/upload/{image_id}")
def delete_image(image_id: str, images: ImageStore = Depends(get_images), user: Identity = Depends(get_current_user)):
    images.delete(image_id)
    return {"message": "Image deleted successfully"}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None, image_store: Optional[ImageStore] = None) -> FastAPI:
    """Build the FastAPI app around one store, credential store and image store."""
    settings = settings or Settings()

    # Configure logging (do not override global config if already set by the host)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
    if settings.jwt_secret == DEV_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; using the development signing key")

    store = Store(settings.database_url)
    images = image_store or build_image_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting household inventory API; database=%s", store.url)
        store.init_schema()
        if settings.seed_defaults:
            store.seed_defaults()
        yield
        logger.info("Shutting down household inventory API")
        store.dispose()

    app = FastAPI(title="Household Inventory API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.credentials = CredentialStore(
        store,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_days=settings.token_expire_days,
    )
    app.state.images = images

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.middleware("http")(request_logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(router)
    if isinstance(images, LocalImageStore):
        app.mount("/uploads", StaticFiles(directory=str(images.directory)), name="uploads")
    return app


app = create_app()
