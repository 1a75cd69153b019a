"""
Job store module.
Contains the store interface and its in-memory and Redis implementations.
"""

from cmdqueue.config import Settings
from cmdqueue.store.base import CancelResult, CompleteResult, JobStore
from cmdqueue.store.memory import JobRecordStore, MemoryJobStore, PendingQueue
from cmdqueue.store.redis import RedisJobStore


def create_store(settings: Settings) -> JobStore:
    """
    Build the job store selected by configuration.

    Args:
        settings: Application settings.

    Returns:
        JobStore: A memory or Redis backed store.
    """
    if settings.store_backend == "memory":
        return MemoryJobStore()
    return RedisJobStore.from_url(
        settings.redis_url,
        key_prefix=settings.redis_key_prefix,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )


__all__ = [
    "JobStore",
    "CancelResult",
    "CompleteResult",
    "PendingQueue",
    "JobRecordStore",
    "MemoryJobStore",
    "RedisJobStore",
    "create_store",
]
