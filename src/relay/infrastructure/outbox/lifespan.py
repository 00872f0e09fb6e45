"""Application lifespan that runs the outbox background workers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from infrastructure.database.dependencies import close_database_connections
from infrastructure.outbox.dependencies import get_outbox_registry
from infrastructure.outbox.dispatcher import OutboxDispatcher
from infrastructure.outbox.janitor import OutboxJanitor
from infrastructure.outbox.publishers import LoggingMessagePublisher
from infrastructure.settings import get_outbox_settings
from shared_kernel.outbox.ports import MessagePublisher


@asynccontextmanager
async def outbox_lifespan(
    app: FastAPI,
    publisher: MessagePublisher | None = None,
) -> AsyncIterator[None]:
    """Start the dispatcher and janitor on startup, stop them on shutdown.

    Manages:
    - Dispatcher and janitor loops (only when OUTBOX_ENABLED)
    - Engine disposal for every logical database on shutdown

    The dispatcher is exposed as ``app.state.outbox_dispatcher`` even when
    the workers are disabled, so its status can still be reported.
    """
    settings = get_outbox_settings()
    registry = get_outbox_registry()

    janitor = OutboxJanitor(
        registry,
        retention_days=settings.retention_days,
        interval_seconds=settings.cleanup_interval_seconds,
    )
    dispatcher = OutboxDispatcher.from_settings(
        registry,
        publisher or LoggingMessagePublisher(),
        settings,
        janitor=janitor,
    )
    app.state.outbox_dispatcher = dispatcher

    if settings.enabled:
        await dispatcher.start()

    try:
        yield
    finally:
        await dispatcher.stop()
        get_outbox_registry.cache_clear()
        await close_database_connections()
