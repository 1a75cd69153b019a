"""
Database module.
Contains the job history connection, model, and repository.
"""

from cmdqueue.db.connection import (
    close_db,
    get_engine,
    get_session_context,
    init_db,
)
from cmdqueue.db.models import Base, JobHistory
from cmdqueue.db.repository import JobHistoryRepository

__all__ = [
    "get_session_context",
    "get_engine",
    "init_db",
    "close_db",
    "JobHistory",
    "JobHistoryRepository",
    "Base",
]
