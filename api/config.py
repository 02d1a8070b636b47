"""Runtime configuration for the household inventory API.

Values come from environment variables, with a ``.env`` file at the project
root loaded first when present. ``Settings()`` reads the environment when it
is instantiated, so tests can build isolated settings without touching
``os.environ``.

Copyright (c) Bryn Gwalad 2025
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEV_JWT_SECRET = "change-me-household-inventory"

# Google Drive serves files by id; the stored id is appended to this prefix.
DEFAULT_IMAGE_BASE_URL = "https://drive.google.com/uc?export=view&id="


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return "sqlite:///" + os.getenv("SQLITE_FILE", "database/database.db")


def _origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    """Application settings.

    Attributes:
        database_url: SQLAlchemy URL of the entity store
        jwt_secret: HMAC key used to sign access tokens
        token_expire_days: lifetime of an issued token
        seed_defaults: seed default categories and locations into an empty store
        upload_backend: ``local`` or ``drive``
        upload_dir: directory used by the local image store
        max_upload_bytes: largest accepted image
        image_base_url: prefix for Drive image URLs
    """

    database_url: str = field(default_factory=_database_url)
    jwt_secret: str = field(default_factory=lambda: _env("JWT_SECRET", DEV_JWT_SECRET))
    jwt_algorithm: str = field(default_factory=lambda: _env("JWT_ALGORITHM", "HS256"))
    token_expire_days: int = field(default_factory=lambda: int(_env("TOKEN_EXPIRE_DAYS", "7")))
    seed_defaults: bool = field(default_factory=lambda: _flag("SEED_DEFAULTS", "1"))

    upload_backend: str = field(default_factory=lambda: _env("UPLOAD_BACKEND", "local"))
    upload_dir: str = field(default_factory=lambda: _env("UPLOAD_DIR", "uploads"))
    max_upload_bytes: int = field(default_factory=lambda: int(_env("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))))
    image_base_url: str = field(default_factory=lambda: _env("IMAGE_BASE_URL", DEFAULT_IMAGE_BASE_URL))
    gdrive_credentials_path: str = field(default_factory=lambda: _env("GDRIVE_CREDENTIALS_PATH", "credentials.json"))
    gdrive_token_path: str = field(default_factory=lambda: _env("GDRIVE_TOKEN_PATH", "environment/token.json"))
    gdrive_folder_id: str = field(default_factory=lambda: _env("GDRIVE_FOLDER_ID", ""))
    gdrive_impersonate_user: str = field(default_factory=lambda: _env("GDRIVE_IMPERSONATE_USER", ""))

    cors_origins: List[str] = field(default_factory=_origins)
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
