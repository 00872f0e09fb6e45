"""Main FastAPI application entry point."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, status

from infrastructure.logging import configure_logging
from infrastructure.outbox.dependencies import get_outbox_dispatcher, get_outbox_service
from infrastructure.outbox.dispatcher import OutboxDispatcher
from infrastructure.outbox.lifespan import outbox_lifespan
from infrastructure.outbox.service import OutboxService
from infrastructure.settings import get_settings
from shared_kernel.outbox.exceptions import UnknownOutboxDatabaseError
from shared_kernel.outbox.value_objects import OutboxRecord

settings = get_settings()
configure_logging(debug=settings.debug, log_format=settings.log_format)

app = FastAPI(
    title=settings.app_name,
    description="Transactional outbox relay for the identity, auth and legal databases",
    lifespan=outbox_lifespan,
)


def _dead_letter(record: OutboxRecord) -> dict:
    return {
        "id": str(record.id),
        "aggregate_type": record.aggregate_type,
        "aggregate_id": record.aggregate_id,
        "event_type": record.event_type,
        "retry_count": record.retry_count,
        "last_error": record.last_error,
        "created_at": record.created_at.isoformat(),
    }


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/outbox/status")
async def outbox_status(
    dispatcher: Annotated[OutboxDispatcher, Depends(get_outbox_dispatcher)],
) -> dict:
    """Report per-database record counts and the dispatcher state."""
    return await dispatcher.get_status()


@app.get("/outbox/{database}/failed")
async def list_dead_letters(
    database: str,
    service: Annotated[OutboxService, Depends(get_outbox_service)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[dict]:
    """List FAILED records of one database, oldest first."""
    try:
        records = await service.list_failed(database, limit)
    except UnknownOutboxDatabaseError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return [_dead_letter(record) for record in records]


@app.post("/outbox/{database}/failed/{record_id}/replay")
async def replay_dead_letter(
    database: str,
    record_id: UUID,
    service: Annotated[OutboxService, Depends(get_outbox_service)],
) -> dict:
    """Return a FAILED record to PENDING with a fresh retry budget."""
    try:
        replayed = await service.replay_failed(database, record_id)
    except UnknownOutboxDatabaseError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    if not replayed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No FAILED record {record_id} in {database}",
        )
    return {"id": str(record_id), "status": "PENDING"}
