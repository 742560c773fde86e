"""Audit emission for credential lifecycle events.

The lifecycle manager and the sweeper call ``AuditRecorder.record`` right
after a change has been committed. The recorder turns the change into an
``AuditEvent`` and hands it to an ``AuditSink``, the storage collaborator
that also answers audit queries. Events the sink rejects are kept and
retried, so every committed change is eventually recorded.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

from keyward.models import AuditAction, AuditEvent, AuditQuery, Credential
from keyward.typing import AuditDetails, Clock

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Abstract base class for audit storage backends."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Persist an audit event."""
        pass

    @abstractmethod
    async def query(self, filters: AuditQuery) -> List[AuditEvent]:
        """Return the events matching the filters."""
        pass


class MemoryAuditSink(AuditSink):
    """In-memory audit sink for development and testing."""

    def __init__(self):
        self.events: List[AuditEvent] = []
        self._lock = asyncio.Lock()

    async def record(self, event: AuditEvent) -> None:
        async with self._lock:
            self.events.append(event)

    async def query(self, filters: AuditQuery) -> List[AuditEvent]:
        return [event for event in self.events if filters.matches(event)]
class AuditRecorder:
    """Builds audit events for credential changes and emits them.

    Every event carries the credential's name, scope and secret prefix in
    its details. Delivery is at-least-once: an event the sink rejects is
    logged with the credential id and action and kept in ``pending``, and
    the change, which is already committed, does not fail. Pending events
    are delivered in order before the next event, or by ``flush``. When
    more than ``max_pending`` events are waiting, the oldest is dropped
    and logged.
    """

    def __init__(self, sink: AuditSink, clock: Clock, max_pending: int = 10000):
        self.sink = sink
        self.clock = clock
        self.max_pending = max_pending
        self.pending: Deque[AuditEvent] = deque()
        self._lock = asyncio.Lock()

    async def record(
        self,
        action: AuditAction,
        credential: Credential,
        actor_email: str,
        details: Optional[AuditDetails] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[AuditEvent]:
        """Emit an event for a committed change.

        Returns:
            Optional[AuditEvent]: The event if the sink accepted it, ``None``
            if it was queued for a later attempt
        """
        event = AuditEvent(
            credential_id=credential.id,
            action=action,
            actor_email=actor_email,
            owner_email=credential.owner_email,
            timestamp=timestamp or self.clock(),
            details={
                "keyName": credential.name,
                "keyType": credential.scope.value,
                "keyPrefix": credential.secret_prefix,
                **(details or {}),
            },
        )

        async with self._lock:
            if self.pending:
                await self._drain()
            if self.pending:
                self._enqueue(event)
                return None

            try:
                await self.sink.record(event)
            except Exception as e:
                logger.error(
                    f"Failed to record {action.value} audit event for API key {credential.id}: {e}"
                )
                self._enqueue(event)
                return None

        logger.info(
            f"API key event [{action.value}] for {credential.id} "
            f"({credential.secret_prefix}...) by {actor_email}"
        )
        return event

    async def flush(self) -> int:
        """Retry pending events.

        Returns:
            int: Number of events delivered by this call
        """
        async with self._lock:
            return await self._drain()

    async def query(self, filters: AuditQuery) -> List[AuditEvent]:
        """Matching events, newest first."""
        events = await self.sink.query(filters)
        return sorted(events, key=lambda event: event.timestamp, reverse=True)

    async def _drain(self) -> int:
        delivered = 0
        while self.pending:
            event = self.pending[0]
            try:
                await self.sink.record(event)
            except Exception as e:
                logger.warning(
                    f"Audit sink still unavailable, {len(self.pending)} event(s) pending: {e}"
                )
                break
            self.pending.popleft()
            delivered += 1

        if delivered:
            logger.info(f"Delivered {delivered} pending audit event(s)")
        return delivered

    def _enqueue(self, event: AuditEvent) -> None:
        self.pending.append(event)
        if len(self.pending) > self.max_pending:
            dropped = self.pending.popleft()
            logger.error(
                f"Audit backlog full, dropped {dropped.action.value} event "
                f"{dropped.id} for API key {dropped.credential_id}"
            )
