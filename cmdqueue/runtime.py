"""
Process wiring.

Builds the store, history, engine and gateway from settings and releases
their connections on exit. Shared by the API, the worker and the CLI.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from cmdqueue.config import Settings, get_settings
from cmdqueue.db import close_db, init_db
from cmdqueue.engine import TransitionEngine
from cmdqueue.gateway import JobGateway
from cmdqueue.history import DatabaseHistory, History, NullHistory
from cmdqueue.store import JobStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Components of one running process."""

    settings: Settings
    store: JobStore
    history: History
    engine: TransitionEngine
    gateway: JobGateway


@asynccontextmanager
async def open_runtime(settings: Settings | None = None) -> AsyncGenerator[Runtime]:
    """
    Open the store and history connections for a process.

    Args:
        settings: Settings to use. Defaults to the cached environment settings.

    Yields:
        Runtime: The wired components.
    """
    settings = settings or get_settings()
    store = create_store(settings)

    history: History = NullHistory()
    if settings.history_enabled:
        await init_db(settings.database_url)
        history = DatabaseHistory()

    engine = TransitionEngine(store, history=history)
    logger.info(
        "Runtime opened",
        extra={
            "store_backend": settings.store_backend,
            "history_enabled": settings.history_enabled,
        },
    )

    try:
        yield Runtime(
            settings=settings,
            store=store,
            history=history,
            engine=engine,
            gateway=JobGateway(engine),
        )
    finally:
        await store.close()
        if settings.history_enabled:
            await close_db()
