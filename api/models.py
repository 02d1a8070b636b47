"""Data models for the household inventory API.

This module defines the SQLModel tables used by the store (User, Location,
Category, Object and ObjectHistory) together with the request bodies the
API accepts. Foreign keys carry their delete policies so the database itself
enforces them:

- Object.category_id / Object.location_id: cleared when the target goes away
- Object.added_by: objects are removed with their owner
- ObjectHistory.object_id / ObjectHistory.moved_by: rows removed with the
  object or the mover

Copyright (c) Bryn Gwalad 2025
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BeforeValidator, field_validator
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

DEFAULT_CATEGORY_COLOR = "#3B82F6"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp column stored as naive UTC and read back timezone-aware.

    SQLite has no timezone support, so values are normalised to UTC on the
    way in; naive values are taken to already be UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class User(SQLModel, table=True):
    """A registered household member.

    Attributes:
        id: primary key
        name: display name
        email: unique login
        password_hash: salted one-way hash, never returned by the API
        role: ``admin`` for the first registered user, ``member`` afterwards
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'member')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = Field(default=ROLE_MEMBER)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Location(SQLModel, table=True):
    """A physical place where objects are stored."""

    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Category(SQLModel, table=True):
    """A tag for grouping objects, with a display colour."""

    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    color: str = Field(default=DEFAULT_CATEGORY_COLOR)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Object(SQLModel, table=True):
    """A tracked household item.

    Attributes:
        id: primary key
        name: item name
        description: optional description
        category_id: optional foreign key to Category
        location_id: optional foreign key to Location
        photo_url: URL returned by the image store, if any
        added_by: the creating user; set once at creation
    """

    __tablename__ = "objects"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = Field(
        default=None, foreign_key="categories.id", ondelete="SET NULL", index=True
    )
    location_id: Optional[int] = Field(
        default=None, foreign_key="locations.id", ondelete="SET NULL", index=True
    )
    photo_url: Optional[str] = None
    added_by: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ObjectHistory(SQLModel, table=True):
    """Immutable record of an object moving between locations."""

    __tablename__ = "object_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    object_id: int = Field(foreign_key="objects.id", ondelete="CASCADE", index=True)
    from_location_id: Optional[int] = Field(
        default=None, foreign_key="locations.id", ondelete="SET NULL"
    )
    to_location_id: Optional[int] = Field(
        default=None, foreign_key="locations.id", ondelete="SET NULL"
    )
    moved_by: int = Field(foreign_key="users.id", ondelete="CASCADE")
    moved_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def _clean_text(value):
    # Blank strings from HTML forms are stored as NULL.
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


Text = Annotated[Optional[str], BeforeValidator(_clean_text)]


class RegisterRequest(SQLModel):
    name: Text = None
    email: Text = None
    password: Optional[str] = None


class LoginRequest(SQLModel):
    email: Text = None
    password: Optional[str] = None


class LocationInput(SQLModel):
    """Body for creating or replacing a location."""

    name: Text = None
    description: Text = None
    address: Text = None


class CategoryInput(SQLModel):
    """Body for creating or replacing a category."""

    name: Text = None
    color: Text = None

    @field_validator("color")
    @classmethod
    def check_color(cls, value):
        if value is not None and not _HEX_COLOR.match(value):
            raise ValueError("color must be a hex string like #3B82F6")
        return value


class ObjectInput(SQLModel):
    """Body for creating or replacing an object.

    On update, ``location_id`` left out of the body keeps the current
    location; sending it (including ``null``) moves the object. ``notes`` is
    only recorded on the history row written by a move.
    """

    name: Text = None
    description: Text = None
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    photo_url: Text = None
    notes: Text = None
