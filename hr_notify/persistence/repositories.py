"""Data access layer for customized templates.

TemplateRepository works inside a caller-supplied session (the caller
commits). DatabaseOverrideStore wraps it in short-lived sessions so the
template store can use the database as its override backend.
"""

import logging
from typing import Callable, ContextManager, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hr_notify.notifications.models import Template
from hr_notify.utils.timestamps import utc_now

from .database import get_session
from .exceptions import DataIntegrityError, PersistenceError
from .schema import CustomTemplateModel, _format_datetime

logger = logging.getLogger(__name__)


class TemplateRepository:
    """Repository for custom template rows."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get(self, name: str) -> Optional[Template]:
        """Retrieve the custom template for ``name``.

        Returns:
            Template (is_custom=True) if a row exists, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(CustomTemplateModel, name)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving custom template {name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve custom template: {e}") from e

    def get_body(self, name: str) -> Optional[str]:
        template = self.get(name)
        return template.body if template is not None else None

    def list_names(self) -> List[str]:
        try:
            stmt = select(CustomTemplateModel.name).order_by(CustomTemplateModel.name)
            return list(self.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            logger.error(f"Error listing custom templates: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list custom templates: {e}") from e

    def upsert(self, name: str, body: str) -> Template:
        """Create or overwrite the custom row for ``name``.

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If database error occurs
        """
        now = _format_datetime(utc_now())
        try:
            existing = self.session.get(CustomTemplateModel, name)

            if existing:
                existing.body = body
                existing.updated_at = now
                self.session.flush()
                return existing.to_domain()

            model = CustomTemplateModel(name=name, body=body, created_at=now, updated_at=now)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error saving custom template {name}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to save custom template due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving custom template {name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save custom template: {e}") from e

    def delete(self, name: str) -> bool:
        """Delete the custom row for ``name``.

        Returns:
            True if a row was deleted
        """
        try:
            stmt = delete(CustomTemplateModel).where(CustomTemplateModel.name == name)
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting custom template {name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete custom template: {e}") from e


class DatabaseOverrideStore:
    """Override backend for :class:`TemplateStore` on the custom_templates table.

    Each call runs in its own committed session.
    """

    def __init__(self, session_factory: Callable[[], ContextManager[Session]] = get_session):
        self.session_factory = session_factory

    def get(self, name: str) -> Optional[str]:
        with self.session_factory() as session:
            return TemplateRepository(session).get_body(name)

    def put(self, name: str, body: str) -> None:
        with self.session_factory() as session:
            TemplateRepository(session).upsert(name, body)

    def delete(self, name: str) -> bool:
        with self.session_factory() as session:
            return TemplateRepository(session).delete(name)

    def names(self) -> List[str]:
        with self.session_factory() as session:
            return TemplateRepository(session).list_names()
