"""Unit tests for outbox id generation."""

import time
import uuid

import pytest

from shared_kernel.outbox.identifiers import generate_outbox_id, uuid7_timestamp_ms


class TestGenerateOutboxId:
    """Tests for generate_outbox_id()."""

    def test_generates_version_7_uuid(self):
        value = generate_outbox_id()

        assert isinstance(value, uuid.UUID)
        assert value.version == 7
        assert value.variant == uuid.RFC_4122

    def test_ids_are_unique(self):
        ids = {generate_outbox_id() for _ in range(5000)}
        assert len(ids) == 5000

    def test_ids_are_strictly_increasing(self):
        """Ids generated in a burst sort in generation order."""
        ids = [generate_outbox_id() for _ in range(5000)]
        assert ids == sorted(ids)
        assert [i.hex for i in ids] == sorted(i.hex for i in ids)

    def test_embeds_current_timestamp(self):
        before = time.time_ns() // 1_000_000
        value = generate_outbox_id()
        after = time.time_ns() // 1_000_000

        # The counter may borrow a millisecond under heavy load
        assert before <= uuid7_timestamp_ms(value) <= after + 1


class TestUuid7TimestampMs:
    """Tests for uuid7_timestamp_ms()."""

    def test_rejects_other_versions(self):
        with pytest.raises(ValueError, match="v7"):
            uuid7_timestamp_ms(uuid.uuid4())
