"""Category service.

Category names are unique; the store enforces it and a collision is reported
as ``Conflict``. Deleting a category never fails because of objects using it:
the store clears their ``category_id`` instead.

Copyright (c) Bryn Gwalad 2025
"""

import logging

from utils.database import Store

from . import listing
from .errors import Conflict, ConstraintViolation, InvalidInput
from .models import DEFAULT_CATEGORY_COLOR, Category, CategoryInput

logger = logging.getLogger("inventory_api.categories")

DUPLICATE_NAME = "Category with this name already exists"


def list_categories(store: Store):
    """Return all categories with their object counts, ordered by name."""
    with store.transaction() as session:
        return listing.list_categories(session)


def create_category(store: Store, data: CategoryInput) -> dict:
    if not data.name:
        raise InvalidInput("Category name is required")
    try:
        with store.transaction() as session:
            category = store.save(
                session,
                Category(name=data.name, color=data.color or DEFAULT_CATEGORY_COLOR),
            )
            result = listing.serialize_category(category)
    except ConstraintViolation as exc:
        raise Conflict(DUPLICATE_NAME) from exc
    logger.info("Category %s created", result["id"])
    return result


def update_category(store: Store, category_id: int, data: CategoryInput) -> dict:
    try:
        with store.transaction() as session:
            category = store.get(session, Category, category_id)
            if not data.name:
                raise InvalidInput("Category name is required")
            category.name = data.name
            category.color = data.color or DEFAULT_CATEGORY_COLOR
            store.save(session, category)
            result = listing.serialize_category(category)
    except ConstraintViolation as exc:
        raise Conflict(DUPLICATE_NAME) from exc
    logger.info("Category %s updated", category_id)
    return result


def delete_category(store: Store, category_id: int) -> None:
    with store.transaction() as session:
        category = store.get(session, Category, category_id)
        store.delete(session, category)
    logger.info("Category %s deleted", category_id)
