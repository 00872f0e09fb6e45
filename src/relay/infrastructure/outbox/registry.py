"""Registry of outbox stores, one per logical database.

The dispatcher, janitor, writer and service facade all resolve a
database's store through the registry, so the per-database wiring lives in
one place.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING

from infrastructure.outbox.store import OutboxStore
from shared_kernel.outbox.exceptions import UnknownOutboxDatabaseError
from shared_kernel.outbox.value_objects import OutboxDatabase

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from shared_kernel.outbox.retry import RetryPolicy


class OutboxStoreRegistry:
    """Maps each logical database to its outbox store."""

    def __init__(self) -> None:
        self._stores: dict[OutboxDatabase, OutboxStore] = {}

    @classmethod
    def from_session_factories(
        cls,
        session_factories: Mapping[OutboxDatabase | str, async_sessionmaker[AsyncSession]],
        retry_policy: RetryPolicy | None = None,
    ) -> OutboxStoreRegistry:
        """Build a registry with one store per session factory."""
        registry = cls()
        for database, session_factory in session_factories.items():
            registry.register(
                OutboxStore(database, session_factory, retry_policy=retry_policy)
            )
        return registry

    def register(self, store: OutboxStore) -> None:
        """Register a store under its database.

        Raises:
            ValueError: If a store is already registered for the database
        """
        if store.database in self._stores:
            raise ValueError(
                f"An outbox store is already registered for database: {store.database}"
            )
        self._stores[store.database] = store

    def get(self, database: OutboxDatabase | str) -> OutboxStore:
        """Return the store for a database.

        Raises:
            UnknownOutboxDatabaseError: If the database is unknown or has no
                registered store
        """
        parsed = OutboxDatabase.parse(database)
        store = self._stores.get(parsed)
        if store is None:
            raise UnknownOutboxDatabaseError(
                f"No outbox store registered for database: {parsed}. "
                f"Registered databases: {sorted(d.value for d in self._stores)}"
            )
        return store

    @property
    def databases(self) -> list[OutboxDatabase]:
        return list(self._stores)

    def __contains__(self, database: object) -> bool:
        try:
            return OutboxDatabase.parse(database) in self._stores  # type: ignore[arg-type]
        except UnknownOutboxDatabaseError:
            return False

    def __iter__(self) -> Iterator[OutboxStore]:
        return iter(self._stores.values())

    def __len__(self) -> int:
        return len(self._stores)
