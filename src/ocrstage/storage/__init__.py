"""Storage layer for the staged OCR pipeline.

Provides the job record store via SQLAlchemy (PostgreSQL in production,
SQLite for development and tests).
"""

from .database import (
    Base,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from .orm_models import JobRecordORM
from .repositories import (
    EXTERNAL_ID_INDEX,
    PRIMARY_INDEX,
    SEARCH_KEY_INDEX,
    JobRecordRepository,
    SqlJobStore,
    decode_cursor,
    encode_cursor,
)

__all__ = [
    # Database
    "Base",
    "create_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "close_db",
    # ORM Models
    "JobRecordORM",
    # Repositories
    "JobRecordRepository",
    "SqlJobStore",
    "PRIMARY_INDEX",
    "EXTERNAL_ID_INDEX",
    "SEARCH_KEY_INDEX",
    "encode_cursor",
    "decode_cursor",
]
