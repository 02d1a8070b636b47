"""Entity store for the household inventory API.

Utilities provided:
- ``Store``: owns the SQLAlchemy engine for one database URL
- transactional sessions that commit, roll back and close on every path
- schema creation, default seeding and DDL export

The default local SQLite file is ``database/database.db``. SQLite connections
switch on ``PRAGMA foreign_keys`` so the delete policies declared on the
models are enforced by the database itself, and register a Unicode-aware
``casefold()`` SQL function for case-insensitive search.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Type, TypeVar

from sqlalchemy import event, func
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlmodel import Session, SQLModel, create_engine, select

from api.errors import ConstraintViolation, NotFound
from api.models import Category, Location

logger = logging.getLogger("inventory_api.store")

Row = TypeVar("Row", bound=SQLModel)

DEFAULT_CATEGORIES = [
    ("Tools", "#EF4444"),
    ("Seasonal Items", "#F59E0B"),
    ("Documents", "#3B82F6"),
    ("Electronics", "#8B5CF6"),
    ("Outdoor Equipment", "#10B981"),
    ("Kitchen Items", "#EC4899"),
    ("Storage Boxes", "#6366F1"),
    ("Other", "#6B7280"),
]

DEFAULT_LOCATIONS = [
    ("Main House", "Primary residence"),
    ("Garage", "Attached garage"),
    ("Storage Unit", "Off-site storage facility"),
    ("Basement", "Basement storage area"),
    ("Attic", "Attic storage space"),
]


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def _configure_sqlite_connection(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # SQLite lower() only folds ASCII; searches use this instead.
    dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)


class Store:
    """Durable storage for users, locations, categories, objects and history.

    One instance is created per process (see ``api.main.create_app``) and
    passed to every service call. Rows are only read or written inside
    ``transaction()``.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        parsed = make_url(url)
        kwargs = {}
        self.is_sqlite = parsed.get_backend_name() == "sqlite"
        if self.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            database = parsed.database
            if not database or database == ":memory:":
                # A single shared connection keeps the in-memory database alive.
                kwargs["poolclass"] = StaticPool
            else:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(url, echo=echo, **kwargs)
        if self.is_sqlite:
            event.listen(self.engine, "connect", _configure_sqlite_connection)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session bound to one transaction.

        Commits when the block exits normally and rolls back otherwise.
        Integrity errors from the database surface as ``ConstraintViolation``.
        """
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.info("Constraint violation: %s", exc.orig)
            raise ConstraintViolation() from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- row level helpers ---------------------------------------------------

    def get(self, session: Session, model: Type[Row], ident: int) -> Row:
        """Return the row with primary key ``ident`` or raise ``NotFound``."""
        row = session.get(model, ident)
        if row is None:
            raise NotFound(f"{model.__name__} not found")
        return row

    def exists(self, session: Session, model: Type[Row], ident: Optional[int]) -> bool:
        return ident is not None and session.get(model, ident) is not None

    def save(self, session: Session, row: Row) -> Row:
        """Insert or update ``row`` and flush so constraints are checked now."""
        session.add(row)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConstraintViolation() from exc
        return row

    def delete(self, session: Session, row: SQLModel) -> None:
        session.delete(row)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConstraintViolation() from exc

    def count(self, session: Session, model: Type[SQLModel], *criteria) -> int:
        query = select(func.count()).select_from(model)
        for criterion in criteria:
            query = query.where(criterion)
        return session.exec(query).one()

    # -- lifecycle -----------------------------------------------------------

    def init_schema(self) -> None:
        """Create tables and indexes that do not exist yet."""
        SQLModel.metadata.create_all(self.engine)

    def seed_defaults(self) -> bool:
        """Insert the default categories and locations into an empty store.

        Returns True when rows were inserted.
        """
        with self.transaction() as session:
            if self.count(session, Category) or self.count(session, Location):
                logger.info("Store already seeded")
                return False
            for name, color in DEFAULT_CATEGORIES:
                session.add(Category(name=name, color=color))
            for name, description in DEFAULT_LOCATIONS:
                session.add(Location(name=name, description=description))
        logger.info(
            "Seeded %d categories and %d locations",
            len(DEFAULT_CATEGORIES),
            len(DEFAULT_LOCATIONS),
        )
        return True

    def write_schema(self, path) -> Path:
        """Write the SQL DDL for every table and index to ``path``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for table in SQLModel.metadata.sorted_tables:
                f.write(str(CreateTable(table).compile(self.engine)).strip())
                f.write(";\n\n")
                for index in sorted(table.indexes, key=lambda i: i.name):
                    f.write(str(CreateIndex(index).compile(self.engine)).strip())
                    f.write(";\n\n")
        return path

    def dispose(self) -> None:
        self.engine.dispose()
