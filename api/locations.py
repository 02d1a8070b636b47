"""Location service.

A location cannot be deleted while any object is stored there; the check and
the delete run in the same transaction.

Copyright (c) Bryn Gwalad 2025
"""

import logging

from sqlmodel import col

from utils.database import Store

from . import listing
from .errors import Conflict, InvalidInput
from .models import Location, LocationInput, Object, utcnow

logger = logging.getLogger("inventory_api.locations")


def list_locations(store: Store):
    """Return all locations with their object counts, ordered by name."""
    with store.transaction() as session:
        return listing.list_locations(session)


def get_location(store: Store, location_id: int) -> dict:
    """Return ``{"location": ..., "objects": [...]}`` for one location."""
    with store.transaction() as session:
        location = store.get(session, Location, location_id)
        return {
            "location": listing.serialize_location(location),
            "objects": listing.objects_at_location(session, location_id),
        }


def create_location(store: Store, data: LocationInput) -> dict:
    if not data.name:
        raise InvalidInput("Location name is required")
    with store.transaction() as session:
        location = store.save(
            session,
            Location(name=data.name, description=data.description, address=data.address),
        )
        result = listing.serialize_location(location)
    logger.info("Location %s created", result["id"])
    return result


def update_location(store: Store, location_id: int, data: LocationInput) -> dict:
    with store.transaction() as session:
        location = store.get(session, Location, location_id)
        if not data.name:
            raise InvalidInput("Location name is required")
        location.name = data.name
        location.description = data.description
        location.address = data.address
        location.updated_at = utcnow()
        store.save(session, location)
        result = listing.serialize_location(location)
    logger.info("Location %s updated", location_id)
    return result


def delete_location(store: Store, location_id: int) -> None:
    with store.transaction() as session:
        location = store.get(session, Location, location_id)
        in_use = store.count(session, Object, col(Object.location_id) == location_id)
        if in_use:
            raise Conflict(
                "Cannot delete location with objects. Move or delete objects first."
            )
        store.delete(session, location)
    logger.info("Location %s deleted", location_id)
