"""Unit tests for ambient transactions."""

import asyncio

import pytest

from infrastructure.database.transactions import current_session, transactional
from shared_kernel.outbox.value_objects import OutboxDatabase


class TestTransactional:
    """Tests for transactional() and current_session()."""

    @pytest.mark.asyncio
    async def test_no_session_outside_a_transaction(self):
        assert current_session(OutboxDatabase.IDENTITY) is None

    @pytest.mark.asyncio
    async def test_session_is_visible_inside_and_cleared_after(self, session_factories):
        factory = session_factories[OutboxDatabase.IDENTITY]

        async with transactional(OutboxDatabase.IDENTITY, factory) as session:
            assert current_session(OutboxDatabase.IDENTITY) is session
            assert current_session("identity") is session

        assert current_session(OutboxDatabase.IDENTITY) is None

    @pytest.mark.asyncio
    async def test_nested_block_joins_outer_transaction(self, session_factories):
        factory = session_factories[OutboxDatabase.IDENTITY]

        async with transactional(OutboxDatabase.IDENTITY, factory) as outer:
            async with transactional(OutboxDatabase.IDENTITY, factory) as inner:
                assert inner is outer

    @pytest.mark.asyncio
    async def test_transactions_are_scoped_per_database(self, session_factories):
        async with transactional(
            OutboxDatabase.IDENTITY, session_factories[OutboxDatabase.IDENTITY]
        ) as identity_session:
            assert current_session(OutboxDatabase.AUTH) is None

            async with transactional(
                OutboxDatabase.AUTH, session_factories[OutboxDatabase.AUTH]
            ) as auth_session:
                assert auth_session is not identity_session
                assert current_session(OutboxDatabase.IDENTITY) is identity_session

            assert current_session(OutboxDatabase.AUTH) is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks_do_not_share_sessions(self, session_factories):
        """Each task sees only the transaction it opened itself."""
        factory = session_factories[OutboxDatabase.LEGAL]
        seen: list[object] = []

        async def other_task() -> None:
            seen.append(current_session(OutboxDatabase.LEGAL))

        task = asyncio.create_task(other_task())
        async with transactional(OutboxDatabase.LEGAL, factory):
            await task

        assert seen == [None]
