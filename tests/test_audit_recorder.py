"""Tests for audit event emission."""

import logging
from collections import deque
from datetime import timedelta

import pytest

from keyward.audit import AuditRecorder, MemoryAuditSink
from keyward.models import AuditAction, AuditQuery, Credential, CredentialScope
from tests.mocks.credential_mocks import T0, FailingAuditSink, FakeClock


def user_credential(owner_email="alice@example.com") -> Credential:
    return Credential(
        name="deploy",
        secret_hash="$2b$04$hash",
        secret_prefix="idp_user_abcdefghijk",
        scope=CredentialScope.USER,
        owner_email=owner_email,
        created_by_email=owner_email,
        created_at=T0,
        expires_at=T0 + timedelta(days=30),
    )


class TestAuditRecorder:
    """Test AuditRecorder and MemoryAuditSink."""

    @pytest.fixture
    def sink(self):
        return MemoryAuditSink()

    @pytest.fixture
    def recorder(self, sink):
        return AuditRecorder(sink, FakeClock())

    @pytest.mark.asyncio
    async def test_record_builds_event(self, recorder, sink):
        """Events carry the credential's identity and the extra details."""
        credential = user_credential()

        event = await recorder.record(
            AuditAction.RENAME, credential, "alice@example.com", {"oldName": "a", "newName": "b"}
        )

        assert event is not None
        assert sink.events == [event]
        assert event.credential_id == credential.id
        assert event.action == AuditAction.RENAME
        assert event.actor_email == "alice@example.com"
        assert event.owner_email == "alice@example.com"
        assert event.timestamp == T0
        assert event.details["keyName"] == "deploy"
        assert event.details["keyType"] == "USER"
        assert event.details["keyPrefix"] == "idp_user_abcdefghijk"
        assert event.details["newName"] == "b"

    @pytest.mark.asyncio
    async def test_sink_failure_is_logged_and_retried(self, caplog):
        """A rejected event is kept and delivered once the sink recovers."""
        sink = FailingAuditSink()
        recorder = AuditRecorder(sink, FakeClock())
        credential = user_credential()

        with caplog.at_level(logging.ERROR, logger="keyward.audit"):
            event = await recorder.record(AuditAction.REVOKE, credential, "alice@example.com")

        assert event is None
        assert sink.attempts == 1
        assert credential.id in caplog.text
        assert "REVOKE" in caplog.text
        assert [pending.action for pending in recorder.pending] == [AuditAction.REVOKE]

        assert await recorder.flush() == 0
        sink.available = True
        assert await recorder.flush() == 1

        assert recorder.pending == deque()
        assert [e.action for e in sink.events] == [AuditAction.REVOKE]
        assert sink.events[0].credential_id == credential.id

    @pytest.mark.asyncio
    async def test_pending_events_are_delivered_first(self):
        """Events reach the sink in the order they were recorded."""
        sink = FailingAuditSink()
        recorder = AuditRecorder(sink, FakeClock())
        credential = user_credential()

        await recorder.record(AuditAction.CREATE, credential, "alice@example.com")
        await recorder.record(AuditAction.RENAME, credential, "alice@example.com")
        assert len(recorder.pending) == 2

        sink.available = True
        event = await recorder.record(AuditAction.REVOKE, credential, "alice@example.com")

        assert event is not None
        assert [e.action for e in sink.events] == [
            AuditAction.CREATE,
            AuditAction.RENAME,
            AuditAction.REVOKE,
        ]
        assert not recorder.pending

    @pytest.mark.asyncio
    async def test_backlog_is_bounded(self, caplog):
        sink = FailingAuditSink()
        recorder = AuditRecorder(sink, FakeClock(), max_pending=2)
        credential = user_credential()

        with caplog.at_level(logging.ERROR, logger="keyward.audit"):
            for action in (AuditAction.CREATE, AuditAction.RENAME, AuditAction.REVOKE):
                await recorder.record(action, credential, "alice@example.com")

        assert [e.action for e in recorder.pending] == [AuditAction.RENAME, AuditAction.REVOKE]
        assert "dropped CREATE" in caplog.text

    @pytest.mark.asyncio
    async def test_query_filters_and_orders(self, recorder):
        """Queries filter by owner or actor and time range, newest first."""
        alice_key = user_credential("alice@example.com")
        bob_key = user_credential("bob@example.com")

        first = await recorder.record(AuditAction.CREATE, alice_key, "alice@example.com", timestamp=T0)
        second = await recorder.record(
            AuditAction.CREATE, bob_key, "bob@example.com", timestamp=T0 + timedelta(hours=1)
        )
        third = await recorder.record(
            AuditAction.REVOKE, bob_key, "admin@example.com", timestamp=T0 + timedelta(hours=2)
        )

        everything = await recorder.query(AuditQuery())
        assert [event.id for event in everything] == [third.id, second.id, first.id]

        bobs = await recorder.query(AuditQuery(owner_email="bob@example.com"))
        assert [event.id for event in bobs] == [third.id, second.id]

        by_admin = await recorder.query(AuditQuery(owner_email="admin@example.com"))
        assert [event.id for event in by_admin] == [third.id]

        windowed = await recorder.query(
            AuditQuery(start_time=T0 + timedelta(minutes=30), end_time=T0 + timedelta(hours=1))
        )
        assert [event.id for event in windowed] == [second.id]
