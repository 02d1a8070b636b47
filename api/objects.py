"""Object lifecycle service.

Objects are created by an authenticated user (recorded in ``added_by``) and
updated wholesale. When an update moves an object to a different location
the history row and the object change are written in one transaction.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from typing import Optional

from utils.database import Store

from . import listing
from .auth import Identity
from .errors import InvalidInput, NotFound
from .listing import ObjectFilters
from .models import Category, Location, Object, ObjectHistory, ObjectInput, utcnow
from .uploads import ImageStore

logger = logging.getLogger("inventory_api.objects")


def _check_references(store: Store, session, category_id: Optional[int], location_id: Optional[int]):
    if category_id is not None and not store.exists(session, Category, category_id):
        raise InvalidInput("Category does not exist")
    if location_id is not None and not store.exists(session, Location, location_id):
        raise InvalidInput("Location does not exist")


def list_objects(store: Store, filters: Optional[ObjectFilters] = None):
    with store.transaction() as session:
        return listing.list_objects(session, filters)


def get_object(store: Store, object_id: int) -> dict:
    """Return ``{"object": ..., "history": [...]}``; history is newest first."""
    with store.transaction() as session:
        obj = listing.get_object(session, object_id)
        return {"object": obj, "history": listing.object_history(session, object_id)}


def create_object(store: Store, data: ObjectInput, user: Identity) -> dict:
    if not data.name:
        raise InvalidInput("Object name is required")
    with store.transaction() as session:
        _check_references(store, session, data.category_id, data.location_id)
        obj = store.save(
            session,
            Object(
                name=data.name,
                description=data.description,
                category_id=data.category_id,
                location_id=data.location_id,
                photo_url=data.photo_url,
                added_by=user.id,
            ),
        )
        result = listing.get_object(session, obj.id)
    logger.info("Object %s created by user %s", result["id"], user.id)
    return result


def update_object(store: Store, object_id: int, data: ObjectInput, user: Identity) -> dict:
    """Replace an object's fields and record a move when its location changes.

    ``location_id`` is only applied when the caller sent it. If it differs
    from the stored value a history row (from, to, mover, notes) is written
    in the same transaction as the update.
    """
    moving = "location_id" in data.model_fields_set
    with store.transaction() as session:
        obj = store.get(session, Object, object_id)
        if not data.name:
            raise InvalidInput("Object name is required")
        _check_references(store, session, data.category_id, data.location_id if moving else None)

        now = utcnow()
        if moving and data.location_id != obj.location_id:
            store.save(
                session,
                ObjectHistory(
                    object_id=obj.id,
                    from_location_id=obj.location_id,
                    to_location_id=data.location_id,
                    moved_by=user.id,
                    moved_at=now,
                    notes=data.notes,
                ),
            )
            logger.info(
                "Object %s moved from location %s to %s by user %s",
                obj.id, obj.location_id, data.location_id, user.id,
            )
            obj.location_id = data.location_id

        obj.name = data.name
        obj.description = data.description
        obj.category_id = data.category_id
        obj.photo_url = data.photo_url
        obj.updated_at = now
        store.save(session, obj)
        return listing.get_object(session, obj.id)


def delete_object(store: Store, object_id: int) -> None:
    with store.transaction() as session:
        obj = store.get(session, Object, object_id)
        store.delete(session, obj)
    logger.info("Object %s deleted", object_id)


def attach_photo(
    store: Store,
    images: ImageStore,
    object_id: int,
    content: bytes,
    filename: str,
    content_type: str,
) -> dict:
    """Upload an image and point the object's ``photo_url`` at it.

    The object row is only written after the image store returned a URL. If
    the object disappeared meanwhile the uploaded image is removed again.
    """
    with store.transaction() as session:
        store.get(session, Object, object_id)

    stored = images.upload(content, filename=filename, content_type=content_type)

    try:
        with store.transaction() as session:
            obj = store.get(session, Object, object_id)
            obj.photo_url = stored.url
            obj.updated_at = utcnow()
            store.save(session, obj)
            result = listing.get_object(session, object_id)
    except NotFound:
        images.delete(stored.id)
        raise
    logger.info("Object %s photo set to image %s", object_id, stored.id)
    return result
