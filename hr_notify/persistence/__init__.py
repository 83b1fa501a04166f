"""Persistence layer for customized email templates.

This module provides the public API for database operations including:
- Database initialization and connection management
- TemplateRepository for custom template rows
- DatabaseOverrideStore, the database backend for TemplateStore
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None

    # Repositories and stores
    - TemplateRepository: CRUD operations for custom templates
    - DatabaseOverrideStore: Override backend for the template store

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from hr_notify.persistence import init_database, DatabaseOverrideStore
    >>> from hr_notify.notifications import TemplateStore
    >>>
    >>> init_database("sqlite:///./data/hr_notify.db")
    >>> store = TemplateStore(overrides=DatabaseOverrideStore())
"""

# Database initialization and session management
from .database import close_database, get_session, init_database

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
)

# Repositories and stores
from .repositories import DatabaseOverrideStore, TemplateRepository

# Public API exports
__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    # Repositories
    "TemplateRepository",
    "DatabaseOverrideStore",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
