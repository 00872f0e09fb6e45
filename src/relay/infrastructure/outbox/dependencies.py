"""FastAPI dependency providers for the outbox.

Services that embed the outbox resolve the writer and facade through
these providers; the registry is application-scoped.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from infrastructure.database.dependencies import get_session_factory
from infrastructure.outbox.dispatcher import OutboxDispatcher
from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.service import OutboxService
from infrastructure.outbox.writer import OutboxWriter
from infrastructure.settings import get_outbox_settings
from shared_kernel.outbox.value_objects import OutboxDatabase


@lru_cache
def get_outbox_registry() -> OutboxStoreRegistry:
    """Get the application-scoped store registry (singleton).

    Registers one store per logical database, each bound to that
    database's own session factory.
    """
    settings = get_outbox_settings()
    return OutboxStoreRegistry.from_session_factories(
        {database: get_session_factory(database) for database in OutboxDatabase},
        retry_policy=settings.retry_policy(),
    )


def get_outbox_writer(
    registry: Annotated[OutboxStoreRegistry, Depends(get_outbox_registry)],
) -> OutboxWriter:
    """Get an OutboxWriter bound to the application registry."""
    return OutboxWriter(registry)


def get_outbox_service(
    registry: Annotated[OutboxStoreRegistry, Depends(get_outbox_registry)],
    writer: Annotated[OutboxWriter, Depends(get_outbox_writer)],
) -> OutboxService:
    return OutboxService(registry, writer=writer)


def get_outbox_dispatcher(request: Request) -> OutboxDispatcher:
    """Get the dispatcher created by the application lifespan."""
    return request.app.state.outbox_dispatcher
