"""Database schema definition and ORM models.

Only customized template bodies are persisted; defaults ship with the
package and notifications themselves are not stored.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from hr_notify.notifications.models import Template


Base = declarative_base()


class CustomTemplateModel(Base):
    """ORM model for the custom_templates table.

    One row per template name that an administrator has edited. Deleting
    the row restores the shipped default.
    """

    __tablename__ = "custom_templates"

    name = Column(String(100), primary_key=True, nullable=False)
    body = Column(Text, nullable=False)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_custom_templates_updated", "updated_at"),)

    def to_domain(self) -> Template:
        return Template(name=self.name, body=self.body, is_custom=True)

    @property
    def updated(self) -> Optional[datetime]:
        return _parse_datetime(self.updated_at)


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Args:
        dt: Datetime object (naive values are treated as UTC)

    Returns:
        ISO 8601 formatted string or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string written by :func:`_format_datetime`."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create ``custom_templates`` and its index if they don't exist."""
    Base.metadata.create_all(engine, checkfirst=True)
