"""Periodic sweeping of lapsed credentials.

Two passes, both idempotent and safe to re-run after a partial failure:

* ``sweep_expired`` clears ``is_active`` on keys whose expiry has passed.
* ``sweep_grace_period`` revokes keys whose rotation grace period is over.

Each record is re-checked inside its own transaction. A record that fails
is logged and skipped and is picked up again by the next run; the returned
counts include successes only.

An external scheduler normally calls the passes (hourly is recommended).
``start``/``stop`` run them from a single asyncio task instead, so two
runs never overlap. Each run first retries audit events the sink rejected
earlier.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from keyward.audit import AuditRecorder, AuditSink
from keyward.config import CredentialConfig
from keyward.consts import EXPIRATION_REASON, GRACE_PERIOD_REVOKE_REASON
from keyward.errors import log_credential_error
from keyward.models import AuditAction, Credential, CredentialStatus, utcnow
from keyward.repository import CredentialRepository
from keyward.status import StatusResolver
from keyward.typing import Clock

logger = logging.getLogger(__name__)


class ExpirationSweeper:
    """Transitions expired keys and revokes rotated keys after their grace period."""

    def __init__(
        self,
        repository: CredentialRepository,
        audit_sink: AuditSink,
        config: Optional[CredentialConfig] = None,
        clock: Optional[Clock] = None,
        resolver: Optional[StatusResolver] = None,
        audit_recorder: Optional[AuditRecorder] = None,
    ):
        self.repository = repository
        self.config = config or CredentialConfig()
        self.clock = clock or utcnow
        self.resolver = resolver or StatusResolver(self.config.expiring_soon_days)
        self.audit = audit_recorder or AuditRecorder(
            audit_sink, self.clock, max_pending=self.config.audit_outbox_size
        )

        # Background task management
        self._background_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def system_actor(self) -> str:
        return self.config.system_actor_email

    async def sweep_expired(self) -> int:
        """Mark active keys past their expiry inactive.

        Returns:
            int: Number of keys transitioned by this run
        """
        now = self.clock()
        candidates = [
            credential
            for credential in await self.repository.find_active()
            if self._needs_expiring(credential, now)
        ]

        count = 0
        for candidate in candidates:
            try:
                expired = await self._expire_one(candidate.id, now)
            except Exception as e:
                log_credential_error(e, "sweep_expired", candidate.id)
                continue
            if expired is None:
                continue

            await self.audit.record(
                AuditAction.EXPIRE,
                expired,
                self.system_actor,
                {"expiresAt": expired.expires_at.isoformat(), "reason": EXPIRATION_REASON},
                timestamp=now,
            )
            count += 1

        if count > 0:
            logger.info(f"Processed {count} expired API keys")
        else:
            logger.debug("No expired API keys found to process")
        return count

    async def sweep_grace_period(self) -> int:
        """Revoke rotated keys whose grace period has ended.

        Returns:
            int: Number of keys revoked by this run
        """
        now = self.clock()
        candidates = [
            credential
            for credential in await self.repository.find_all()
            if self._needs_grace_revocation(credential, now)
        ]

        count = 0
        for candidate in candidates:
            try:
                revoked = await self._revoke_after_grace(candidate.id, now)
            except Exception as e:
                log_credential_error(e, "sweep_grace_period", candidate.id)
                continue
            if revoked is None:
                continue

            await self.audit.record(
                AuditAction.REVOKE,
                revoked,
                self.system_actor,
                {
                    "revokedBy": self.system_actor,
                    "reason": GRACE_PERIOD_REVOKE_REASON,
                    "gracePeriodEndsAt": revoked.grace_period_ends_at.isoformat(),
                },
                timestamp=now,
            )
            count += 1

        if count > 0:
            logger.info(f"Processed {count} API keys past rotation grace period")
        else:
            logger.debug("No API keys past rotation grace period found to process")
        return count

    async def run_once(self) -> Dict[str, int]:
        """Retry pending audit events, then run both passes.

        A failing pass does not prevent the other.
        """
        results = {"audit_events_delivered": 0, "expired": 0, "grace_period_revoked": 0}
        results["audit_events_delivered"] = await self.audit.flush()

        try:
            results["expired"] = await self.sweep_expired()
        except Exception as e:
            logger.error(f"Error processing expired API keys: {e}")

        try:
            results["grace_period_revoked"] = await self.sweep_grace_period()
        except Exception as e:
            logger.error(f"Error processing rotation grace period: {e}")

        return results

    def _needs_expiring(self, credential: Credential, now: datetime) -> bool:
        return (
            credential.is_active
            and self.resolver.for_credential(credential, now) == CredentialStatus.EXPIRED
        )

    def _needs_grace_revocation(self, credential: Credential, now: datetime) -> bool:
        return (
            not credential.is_revoked
            and credential.grace_period_ends_at is not None
            and credential.grace_period_ends_at <= now
        )

    async def _expire_one(self, credential_id: str, now: datetime) -> Optional[Credential]:
        async with self.repository.transaction(credential_id) as credential:
            if credential is None or not self._needs_expiring(credential, now):
                return None
            credential.is_active = False
            return await self.repository.save(credential)

    async def _revoke_after_grace(self, credential_id: str, now: datetime) -> Optional[Credential]:
        async with self.repository.transaction(credential_id) as credential:
            if credential is None or not self._needs_grace_revocation(credential, now):
                return None
            credential.revoke(self.system_actor, now)
            return await self.repository.save(credential)

    async def _background_sweep_task(self) -> None:
        """Background loop running both passes until stopped."""
        while not self._shutdown_event.is_set():
            logger.info("Starting scheduled API key sweep")
            await self.run_once()

            # Wait for next run or shutdown
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.sweep_interval_seconds
                )
                break
            except asyncio.TimeoutError:
                continue

    async def start(self) -> None:
        """Start the background sweep loop if it is not running."""
        if not self._background_task:
            self._background_task = asyncio.create_task(self._background_sweep_task())

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._background_task:
            self._shutdown_event.set()
            try:
                await asyncio.wait_for(self._background_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._background_task.cancel()
                try:
                    await self._background_task
                except asyncio.CancelledError:
                    pass

            self._background_task = None
            self._shutdown_event.clear()
