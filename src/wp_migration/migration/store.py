"""Destination store interface.

The migration only talks to the destination through this narrow surface:
look a record up by its natural key or source ID, insert-or-skip a record,
and insert several records at once. Existing rows are never overwritten.
"""

import secrets
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from wp_migration.client.exceptions import DestinationError, DestinationUnavailableError
from wp_migration.migration.database import (
    create_database_engine,
    create_session_factory,
    init_database,
    session_scope,
)
from wp_migration.migration.models import ENTITY_MODELS, Base, Category, Post, Tag, User
from wp_migration.resources import get_info
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Role given to imported accounts; it cannot sign in until credentials are reset
IMPORTED_ROLE = "pending_reset"


def unusable_password() -> str:
    """Return password material that no login attempt can ever match.

    The leading ``!`` is never produced by a password hasher, so the value
    cannot be verified against any plaintext.
    """
    return "!" + secrets.token_urlsafe(32)


class DestinationStore:
    """Insert-or-skip access to the destination content store."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._factory = create_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "DestinationStore":
        """Create the engine, make sure the schema exists, and return a store."""
        engine = create_database_engine(database_url, echo=echo)
        init_database(engine)
        return cls(engine)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Open a session, mapping driver failures to destination errors.

        Raises:
            DestinationUnavailableError: The database cannot be reached
            DestinationError: Any other database failure
        """
        try:
            with session_scope(self._factory) as session:
                yield session
        except (OperationalError, InterfaceError) as e:
            logger.error("destination_unavailable", error=str(e))
            raise DestinationUnavailableError(f"Destination store unreachable: {e}") from e
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            raise DestinationError(f"Destination store operation failed: {e}") from e

    @staticmethod
    def _model(entity_type: str) -> type[Base]:
        try:
            return ENTITY_MODELS[entity_type]
        except KeyError:
            raise DestinationError(f"Unknown entity type: {entity_type}") from None

    def find_by_natural_key(self, entity_type: str, key: Any) -> Any | None:
        """Find a record by the natural key registered for its entity type."""
        model = self._model(entity_type)
        column = getattr(model, get_info(entity_type).natural_key)
        with self.session() as session:
            return session.scalars(select(model).where(column == key)).first()

    def find_by_source_id(self, entity_type: str, source_id: int) -> Any | None:
        model = self._model(entity_type)
        with self.session() as session:
            return session.scalars(select(model).where(model.source_id == source_id)).first()

    def find_by_slug(self, entity_type: str, slug: str) -> Any | None:
        model = self._model(entity_type)
        with self.session() as session:
            return session.scalars(select(model).where(model.slug == slug)).first()

    def find_existing(self, entity_type: str, values: dict[str, Any]) -> Any | None:
        natural_key = get_info(entity_type).natural_key
        if values.get(natural_key) is not None:
            existing = self.find_by_natural_key(entity_type, values[natural_key])
            if existing is not None:
                return existing
        if natural_key != "source_id" and values.get("source_id") is not None:
            return self.find_by_source_id(entity_type, values["source_id"])
        return None

    def upsert(
        self,
        entity_type: str,
        values: dict[str, Any],
        category_ids: Iterable[int] = (),
        tag_ids: Iterable[int] = (),
    ) -> tuple[Any, bool]:
        """Insert a record unless one with the same key already exists.

        The natural key is checked first, then the source ID. An existing
        record is returned untouched.

        Args:
            entity_type: Entity type name
            values: Column values of the new record
            category_ids: Category IDs to link (posts only)
            tag_ids: Tag IDs to link (posts only)

        Returns:
            Tuple of (record, created)

        Raises:
            DestinationUnavailableError: The database cannot be reached
            DestinationError: The insert failed for any other reason
        """
        existing = self.find_existing(entity_type, values)
        if existing is not None:
            return existing, False

        model = self._model(entity_type)
        try:
            with self.session() as session:
                record = model(**values)
                if model is Post:
                    ids = list(category_ids)
                    if ids:
                        record.categories = list(
                            session.scalars(select(Category).where(Category.id.in_(ids)))
                        )
                    ids = list(tag_ids)
                    if ids:
                        record.tags = list(session.scalars(select(Tag).where(Tag.id.in_(ids))))
                session.add(record)
                session.flush()
        except IntegrityError as e:
            # Another unique column collided; the record exists under a different key
            existing = self.find_existing(entity_type, values)
            if existing is not None:
                return existing, False
            raise DestinationError(f"Cannot insert {entity_type} record: {e.orig}") from e

        return record, True

    def create_many(self, entity_type: str, records: Iterable[dict[str, Any]]) -> int:
        """Insert several records in one transaction, skipping existing keys.

        Returns:
            Number of records created
        """
        model = self._model(entity_type)
        natural_key = get_info(entity_type).natural_key
        column = getattr(model, natural_key)

        pending: dict[Any, dict[str, Any]] = {}
        for values in records:
            pending.setdefault(values[natural_key], values)
        if not pending:
            return 0

        with self.session() as session:
            existing = set(session.scalars(select(column).where(column.in_(list(pending)))))
            new = [model(**values) for key, values in pending.items() if key not in existing]
            session.add_all(new)

        logger.debug("records_created", entity_type=entity_type, created=len(new))
        return len(new)

    def count(self, entity_type: str) -> int:
        model = self._model(entity_type)
        with self.session() as session:
            return session.scalar(select(func.count()).select_from(model)) or 0

    def get_or_create_default_author(self, email: str, name: str) -> User:
        """Return the placeholder author used when a real author cannot be resolved."""
        user, created = self.upsert(
            "users",
            {
                "email": email,
                "name": name,
                "slug": email.split("@", 1)[0],
                "role": IMPORTED_ROLE,
                "password_hash": unusable_password(),
                "password_reset_required": True,
            },
        )
        if created:
            logger.info("default_author_created", email=email)
        return user

    def resolve_category_parents(self) -> int:
        """Link categories to their parents once both sides exist.

        Returns:
            Number of parent links resolved
        """
        resolved = 0
        with self.session() as session:
            orphans = session.scalars(
                select(Category).where(
                    Category.parent_id.is_(None), Category.source_parent_id.is_not(None)
                )
            ).all()
            for category in orphans:
                parent = session.scalars(
                    select(Category).where(Category.source_id == category.source_parent_id)
                ).first()
                if parent is not None and parent.id != category.id:
                    category.parent_id = parent.id
                    resolved += 1

        if resolved:
            logger.info("category_parents_resolved", count=resolved)
        return resolved
