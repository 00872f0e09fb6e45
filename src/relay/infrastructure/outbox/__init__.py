"""Infrastructure layer for the outbox pattern.

Contains the SQLAlchemy model, repository, per-database stores, the
writer used inside business transactions, and the dispatcher and janitor
that run in the background.
"""

from infrastructure.outbox.dispatcher import OutboxDispatcher
from infrastructure.outbox.janitor import OutboxJanitor
from infrastructure.outbox.models import OutboxModel
from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.repository import OutboxRepository
from infrastructure.outbox.service import OutboxService
from infrastructure.outbox.store import OutboxStore
from infrastructure.outbox.writer import OutboxWriter

__all__ = [
    "OutboxDispatcher",
    "OutboxJanitor",
    "OutboxModel",
    "OutboxRepository",
    "OutboxService",
    "OutboxStore",
    "OutboxStoreRegistry",
    "OutboxWriter",
]
