"""Read-side projections for objects, locations and categories.

Each query joins the normalized tables into the display shape the API
returns (category name/colour, location name, creator name, object counts).
Nothing here is stored; every call recomputes from the tables, inside the
caller's transaction so a listing is one consistent read.

Copyright (c) Bryn Gwalad 2025
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import String, func, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, select

from .errors import NotFound
from .models import Category, Location, Object, ObjectHistory, User


@dataclass
class ObjectFilters:
    """Filters for ``list_objects``; all given filters must match.

    Attributes:
        category: only objects with this category_id
        location: only objects with this location_id
        search: case-insensitive substring of the name or the description
    """

    category: Optional[int] = None
    location: Optional[int] = None
    search: Optional[str] = None


def _object_query():
    return (
        select(
            Object,
            col(Category.name).label("category_name"),
            col(Category.color).label("category_color"),
            col(Location.name).label("location_name"),
            col(User.name).label("added_by_name"),
        )
        .join(Category, col(Object.category_id) == col(Category.id), isouter=True)
        .join(Location, col(Object.location_id) == col(Location.id), isouter=True)
        .join(User, col(Object.added_by) == col(User.id), isouter=True)
    )


def _serialize_object(row) -> dict:
    obj, category_name, category_color, location_name, added_by_name = row
    return {
        "id": obj.id,
        "name": obj.name,
        "description": obj.description,
        "category_id": obj.category_id,
        "category_name": category_name,
        "category_color": category_color,
        "location_id": obj.location_id,
        "location_name": location_name,
        "photo_url": obj.photo_url,
        "added_by": obj.added_by,
        "added_by_name": added_by_name,
        "created_at": obj.created_at,
        "updated_at": obj.updated_at,
    }


def _case_fold(session: Session):
    # utils.database registers casefold() on SQLite connections.
    if session.get_bind().dialect.name == "sqlite":
        return lambda expr: func.casefold(expr, type_=String)
    return func.lower


def list_objects(session: Session, filters: Optional[ObjectFilters] = None) -> List[dict]:
    """Return matching objects, most recently updated first."""
    filters = filters or ObjectFilters()
    q = _object_query()
    if filters.category is not None:
        q = q.where(col(Object.category_id) == filters.category)
    if filters.location is not None:
        q = q.where(col(Object.location_id) == filters.location)
    term = (filters.search or "").strip().casefold()
    if term:
        fold = _case_fold(session)
        q = q.where(
            or_(
                fold(col(Object.name)).contains(term, autoescape=True),
                fold(col(Object.description)).contains(term, autoescape=True),
            )
        )
    q = q.order_by(col(Object.updated_at).desc(), col(Object.id).desc())
    return [_serialize_object(row) for row in session.exec(q).all()]


def get_object(session: Session, object_id: int) -> dict:
    row = session.exec(_object_query().where(col(Object.id) == object_id)).first()
    if row is None:
        raise NotFound("Object not found")
    return _serialize_object(row)


def objects_at_location(session: Session, location_id: int) -> List[dict]:
    q = (
        _object_query()
        .where(col(Object.location_id) == location_id)
        .order_by(col(Object.name), col(Object.id))
    )
    return [_serialize_object(row) for row in session.exec(q).all()]


def object_history(session: Session, object_id: int) -> List[dict]:
    """Return the moves of one object, most recent first."""
    from_location = aliased(Location)
    to_location = aliased(Location)
    q = (
        select(
            ObjectHistory,
            from_location.name.label("from_location_name"),
            to_location.name.label("to_location_name"),
            col(User.name).label("moved_by_name"),
        )
        .join(from_location, col(ObjectHistory.from_location_id) == from_location.id, isouter=True)
        .join(to_location, col(ObjectHistory.to_location_id) == to_location.id, isouter=True)
        .join(User, col(ObjectHistory.moved_by) == col(User.id), isouter=True)
        .where(col(ObjectHistory.object_id) == object_id)
        .order_by(col(ObjectHistory.moved_at).desc(), col(ObjectHistory.id).desc())
    )
    history = []
    for entry, from_name, to_name, moved_by_name in session.exec(q).all():
        history.append(
            {
                "id": entry.id,
                "object_id": entry.object_id,
                "from_location_id": entry.from_location_id,
                "from_location_name": from_name,
                "to_location_id": entry.to_location_id,
                "to_location_name": to_name,
                "moved_by": entry.moved_by,
                "moved_by_name": moved_by_name,
                "moved_at": entry.moved_at,
                "notes": entry.notes,
            }
        )
    return history


def serialize_location(location: Location, object_count: Optional[int] = None) -> dict:
    data = {
        "id": location.id,
        "name": location.name,
        "description": location.description,
        "address": location.address,
        "created_at": location.created_at,
        "updated_at": location.updated_at,
    }
    if object_count is not None:
        data["object_count"] = object_count
    return data


def serialize_category(category: Category, object_count: Optional[int] = None) -> dict:
    data = {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "created_at": category.created_at,
    }
    if object_count is not None:
        data["object_count"] = object_count
    return data


def list_locations(session: Session) -> List[dict]:
    q = (
        select(Location, func.count(col(Object.id)).label("object_count"))
        .join(Object, col(Object.location_id) == col(Location.id), isouter=True)
        .group_by(col(Location.id))
        .order_by(col(Location.name), col(Location.id))
    )
    return [serialize_location(loc, count) for loc, count in session.exec(q).all()]


def list_categories(session: Session) -> List[dict]:
    q = (
        select(Category, func.count(col(Object.id)).label("object_count"))
        .join(Object, col(Object.category_id) == col(Category.id), isouter=True)
        .group_by(col(Category.id))
        .order_by(col(Category.name), col(Category.id))
    )
    return [serialize_category(cat, count) for cat, count in session.exec(q).all()]
