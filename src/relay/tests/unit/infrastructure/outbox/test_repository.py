"""Unit tests for OutboxRepository.

These tests use mocked database sessions to test the repository logic
without requiring a real database connection.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from infrastructure.outbox.models import OutboxModel
from infrastructure.outbox.repository import OutboxRepository
from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import OutboxEvent, OutboxStatus

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _session() -> MagicMock:
    session = MagicMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=1))
    session.get = AsyncMock()
    return session


def _model(status: OutboxStatus = OutboxStatus.PROCESSING, retry_count: int = 0) -> OutboxModel:
    return OutboxModel(
        id=uuid4(),
        aggregate_type="ACCOUNT",
        aggregate_id="a1",
        event_type="identity.account.created",
        payload={"email": "x@y.com"},
        status=status,
        retry_count=retry_count,
        last_error=None,
        processed_at=None,
        created_at=NOW,
        next_attempt_at=None,
        updated_at=NOW,
    )


class TestOutboxRepositoryAppend:
    """Tests for OutboxRepository.append() and append_many()."""

    @pytest.mark.asyncio
    async def test_append_adds_pending_model_and_flushes(self):
        """Test that append adds an OutboxModel to the session and flushes."""
        session = _session()
        repo = OutboxRepository(session)

        record = await repo.append(
            OutboxEvent(
                aggregate_type="ACCOUNT",
                aggregate_id="a1",
                event_type="identity.account.created",
                payload={"email": "x@y.com"},
            ),
            now=NOW,
        )

        session.add_all.assert_called_once()
        session.flush.assert_awaited_once()
        added_model = session.add_all.call_args[0][0][0]
        assert added_model.status == OutboxStatus.PENDING
        assert added_model.retry_count == 0
        assert added_model.created_at == NOW
        assert added_model.updated_at == NOW
        assert added_model.next_attempt_at is None
        assert record.id == added_model.id
        assert record.payload == {"email": "x@y.com"}
        assert record.id.version == 7

    @pytest.mark.asyncio
    async def test_append_never_commits(self):
        """The caller owns the transaction boundary."""
        session = _session()
        session.commit = AsyncMock()
        repo = OutboxRepository(session)

        await repo.append(OutboxEvent("Session", "s1", "identity.session.started"))

        session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_append_many_preserves_order_with_increasing_ids(self):
        session = _session()
        repo = OutboxRepository(session)
        events = [OutboxEvent("Device", f"d{i}", "identity.device.added") for i in range(3)]

        records = await repo.append_many(events, now=NOW)

        assert [r.aggregate_id for r in records] == ["d0", "d1", "d2"]
        assert [r.id for r in records] == sorted(r.id for r in records)
        assert len({r.id for r in records}) == 3
        assert {r.created_at for r in records} == {NOW}
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_flush_errors_propagate(self):
        session = _session()
        session.flush.side_effect = RuntimeError("connection lost")
        repo = OutboxRepository(session)

        with pytest.raises(RuntimeError, match="connection lost"):
            await repo.append(OutboxEvent("Session", "s1", "identity.session.started"))


class TestOutboxRepositoryConditionalUpdates:
    """Tests for rowcount-based transitions."""

    @pytest.mark.asyncio
    async def test_mark_as_processing_wins_when_one_row_changes(self):
        session = _session()
        repo = OutboxRepository(session)

        assert await repo.mark_as_processing(uuid4(), now=NOW) is True

    @pytest.mark.asyncio
    async def test_mark_as_processing_loses_when_no_row_changes(self):
        """Another dispatcher already claimed the record."""
        session = _session()
        session.execute.return_value = MagicMock(rowcount=0)
        repo = OutboxRepository(session)

        assert await repo.mark_as_processing(uuid4(), now=NOW) is False

    @pytest.mark.asyncio
    async def test_mark_as_completed_reports_no_op(self):
        session = _session()
        session.execute.return_value = MagicMock(rowcount=0)
        repo = OutboxRepository(session)

        assert await repo.mark_as_completed(uuid4(), now=NOW) is False

    @pytest.mark.asyncio
    async def test_renew_claim_is_conditioned_on_the_claim_timestamp(self):
        session = _session()
        repo = OutboxRepository(session)

        assert await repo.renew_claim(uuid4(), claimed_at=NOW, now=NOW) is True

        sql = str(session.execute.await_args.args[0])
        assert "outbox_events.status =" in sql
        assert "outbox_events.updated_at <=" in sql

    @pytest.mark.asyncio
    async def test_renew_claim_fails_when_claim_was_taken_over(self):
        session = _session()
        session.execute.return_value = MagicMock(rowcount=0)
        repo = OutboxRepository(session)

        assert await repo.renew_claim(uuid4(), claimed_at=NOW, now=NOW) is False

    @pytest.mark.asyncio
    async def test_release_claim_reports_no_op(self):
        session = _session()
        session.execute.return_value = MagicMock(rowcount=0)
        repo = OutboxRepository(session)

        assert await repo.release_claim(uuid4(), claimed_at=NOW, now=NOW) is False


class TestOutboxRepositoryRecordFailure:
    """Tests for OutboxRepository.record_failure()."""

    @pytest.mark.asyncio
    async def test_requeues_with_backoff_below_budget(self):
        session = _session()
        model = _model(retry_count=0)
        session.get.return_value = model
        repo = OutboxRepository(session)

        updated = await repo.record_failure(model.id, "timeout", RetryPolicy(), now=NOW)

        assert updated is not None
        assert updated.status is OutboxStatus.PENDING
        assert updated.retry_count == 1
        assert updated.last_error == "timeout"
        assert updated.next_attempt_at == NOW + timedelta(seconds=1)
        session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dead_letters_when_budget_spent(self):
        session = _session()
        model = _model(retry_count=2)
        session.get.return_value = model
        repo = OutboxRepository(session)

        updated = await repo.record_failure(model.id, "boom", RetryPolicy(max_retries=3), now=NOW)

        assert updated is not None
        assert updated.status is OutboxStatus.FAILED
        assert updated.retry_count == 3
        assert updated.next_attempt_at is None

    @pytest.mark.asyncio
    async def test_missing_record_is_no_op(self):
        session = _session()
        session.get.return_value = None
        repo = OutboxRepository(session)

        assert await repo.record_failure(uuid4(), "boom", RetryPolicy()) is None
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OutboxStatus.COMPLETED, OutboxStatus.FAILED])
    async def test_terminal_record_is_no_op(self, status):
        session = _session()
        session.get.return_value = _model(status=status, retry_count=1)
        repo = OutboxRepository(session)

        assert await repo.record_failure(uuid4(), "boom", RetryPolicy()) is None
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_change_is_no_op(self):
        """The optimistic lock on retry_count matched no row."""
        session = _session()
        session.get.return_value = _model(retry_count=1)
        session.execute.return_value = MagicMock(rowcount=0)
        repo = OutboxRepository(session)

        assert await repo.record_failure(uuid4(), "boom", RetryPolicy(), now=NOW) is None


class TestOutboxModel:
    """Tests for OutboxModel.to_value_object()."""

    def test_naive_datetimes_are_read_back_as_utc(self):
        model = _model()
        model.created_at = datetime(2026, 3, 1, 12, 0, 0)

        record = model.to_value_object()

        assert record.created_at == NOW
        assert record.created_at.tzinfo is not None

    def test_repr_includes_status(self):
        assert "PROCESSING" in repr(_model())
