"""Unit tests for the application entry point."""

import importlib
from datetime import UTC, datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import structlog
from fastapi.testclient import TestClient

from infrastructure.outbox.dependencies import get_outbox_service
from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.service import OutboxService
from infrastructure.outbox.writer import OutboxWriter
from infrastructure.settings import get_outbox_settings, get_settings
from shared_kernel.outbox.exceptions import UnknownOutboxDatabaseError
from shared_kernel.outbox.value_objects import OutboxRecord, OutboxStatus


@pytest.fixture
def app(monkeypatch):
    """Import the application with background workers disabled.

    Importing main configures logging, so structlog is reset afterwards.
    """
    monkeypatch.setenv("OUTBOX_ENABLED", "false")
    get_settings.cache_clear()
    get_outbox_settings.cache_clear()

    main = importlib.import_module("main")
    yield main.app

    structlog.reset_defaults()
    get_settings.cache_clear()
    get_outbox_settings.cache_clear()


class TestHealth:
    def test_health_returns_ok(self, app):
        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_lifespan_exposes_idle_dispatcher(self, app):
        with TestClient(app):
            assert app.state.outbox_dispatcher.is_running is False


@pytest.fixture
def service(app):
    service = MagicMock(spec=OutboxService)
    app.dependency_overrides[get_outbox_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


class TestDeadLetterEndpoints:
    def test_lists_failed_records(self, app, service):
        record = OutboxRecord(
            id=uuid4(),
            aggregate_type="ROLE",
            aggregate_id="r1",
            event_type="auth.role.assigned",
            payload={},
            status=OutboxStatus.FAILED,
            created_at=datetime(2026, 3, 1, tzinfo=UTC),
            retry_count=3,
            last_error="broker down",
        )
        service.list_failed.return_value = [record]

        with TestClient(app) as client:
            response = client.get("/outbox/auth/failed", params={"limit": 5})

        assert response.status_code == 200
        [body] = response.json()
        assert body["id"] == str(record.id)
        assert body["last_error"] == "broker down"
        assert body["retry_count"] == 3
        service.list_failed.assert_awaited_once_with("auth", 5)

    def test_unknown_database_is_not_found(self, app, service):
        service.list_failed.side_effect = UnknownOutboxDatabaseError(
            "Unknown outbox database: billing"
        )

        with TestClient(app) as client:
            response = client.get("/outbox/billing/failed")

        assert response.status_code == 404

    def test_replay_returns_record_to_pending(self, app, service):
        record_id = uuid4()
        service.replay_failed.return_value = True

        with TestClient(app) as client:
            response = client.post(f"/outbox/legal/failed/{record_id}/replay")

        assert response.status_code == 200
        assert response.json() == {"id": str(record_id), "status": "PENDING"}
        service.replay_failed.assert_awaited_once_with("legal", record_id)

    def test_replay_of_non_failed_record_is_not_found(self, app, service):
        service.replay_failed.return_value = False

        with TestClient(app) as client:
            response = client.post(f"/outbox/legal/failed/{uuid4()}/replay")

        assert response.status_code == 404


class TestOutboxServiceProvider:
    def test_builds_facade_over_the_registry(self):
        registry = OutboxStoreRegistry()
        writer = OutboxWriter(registry)

        service = get_outbox_service(registry, writer)

        assert isinstance(service, OutboxService)
        assert service.databases == []
