"""Credential lifecycle manager.

This module issues API keys and manages them through their life: creation,
renaming, revocation and rotation with a grace period during which both
the old and the new key authenticate. The plaintext secret of a key is
returned exactly once, in the response to the create or rotate call that
produced it; only a bcrypt hash is stored.

Every state change is a single atomic read-modify-write inside
``CredentialRepository.transaction``. The stored ``revoked_at`` and
``grace_period_ends_at`` are re-checked inside the transaction, and a
change that finds them already set aborts with ``ConflictError`` instead
of overwriting. A rotation saves the successor and the predecessor in
the same transaction, so either both are stored or neither is. Audit
events are emitted after the transaction commits.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import List, Optional

from keyward.audit import AuditRecorder, AuditSink
from keyward.authorization import AuthorizationGuard, Operation
from keyward.config import CredentialConfig
from keyward.errors import (
    ConflictError,
    CredentialError,
    InternalError,
    NotFoundError,
    ValidationError,
    log_credential_error,
)
from keyward.generator import SecretGenerator
from keyward.hashing import SecretHasher
from keyward.models import (
    Actor,
    AuditAction,
    AuditEvent,
    AuditQuery,
    Credential,
    CredentialScope,
    CredentialStatus,
    CredentialView,
    utcnow,
)
from keyward.repository import CredentialRepository
from keyward.status import StatusResolver
from keyward.typing import Clock

logger = logging.getLogger(__name__)


class CredentialLifecycleManager:
    """Creates, renames, revokes and rotates API keys."""

    def __init__(
        self,
        repository: CredentialRepository,
        audit_sink: AuditSink,
        config: Optional[CredentialConfig] = None,
        clock: Optional[Clock] = None,
        generator: Optional[SecretGenerator] = None,
        hasher: Optional[SecretHasher] = None,
        resolver: Optional[StatusResolver] = None,
        guard: Optional[AuthorizationGuard] = None,
        audit_recorder: Optional[AuditRecorder] = None,
    ):
        """Initialize the lifecycle manager.

        Args:
            repository: Storage for credential records
            audit_sink: Storage for audit events
            config: Limits, defaults and work factors
            clock: Source of the current time, UTC-aware
            generator: Secret generator, built from ``config`` when omitted
            hasher: Secret hasher, built from ``config`` when omitted
            resolver: Status resolver, built from ``config`` when omitted
            guard: Authorization policy
            audit_recorder: Recorder to share with an ``ExpirationSweeper`` so its
                runs also retry this manager's pending audit events
        """
        self.repository = repository
        self.config = config or CredentialConfig()
        self.clock = clock or utcnow
        self.generator = generator or SecretGenerator(
            self.config.secret_length, self.config.secret_prefix_length
        )
        self.hasher = hasher or SecretHasher(self.config.hash_rounds)
        self.resolver = resolver or StatusResolver(self.config.expiring_soon_days)
        self.guard = guard or AuthorizationGuard()
        self.audit = audit_recorder or AuditRecorder(
            audit_sink, self.clock, max_pending=self.config.audit_outbox_size
        )

    # Creation

    async def create_user_key(
        self, name: str, expiration_days: Optional[int], actor: Actor
    ) -> CredentialView:
        """Create a key owned by ``actor``."""
        return await self.create(name, CredentialScope.USER, expiration_days, actor)

    async def create_system_key(
        self, name: str, expiration_days: Optional[int], actor: Actor
    ) -> CredentialView:
        """Create an organization-wide key. Administrators only."""
        return await self.create(name, CredentialScope.SYSTEM, expiration_days, actor)

    async def create(
        self,
        name: str,
        scope: CredentialScope,
        expiration_days: Optional[int],
        actor: Actor,
    ) -> CredentialView:
        """Create a new API key.

        Args:
            name: Label, 1-100 characters, unique among the live keys of the scope
            scope: USER keys belong to ``actor``; SYSTEM keys need an administrator
            expiration_days: Lifetime in days, the configured default when ``None``
            actor: Who is creating the key

        Returns:
            CredentialView: The key's metadata plus its one-time plaintext secret
        """
        async with self._reported("create"):
            self.guard.ensure_create(actor, scope)
            name = self._validate_name(name)
            expiration_days = self._validate_expiration(expiration_days)

        now = self.clock()
        owner_email = actor.email if scope == CredentialScope.USER else None

        async with self._reported("create"):
            siblings = await self._live_siblings(scope, owner_email, now)
            if scope == CredentialScope.USER and len(siblings) >= self.config.max_active_per_owner:
                raise ValidationError(
                    f"Maximum number of API keys ({self.config.max_active_per_owner}) reached. "
                    "Please revoke an existing key before creating a new one.",
                    operation="create",
                )
            self._ensure_unique_name(name, scope, siblings)

            plaintext = self.generator.generate(scope)
            credential = Credential(
                name=name,
                secret_hash=await asyncio.to_thread(self.hasher.hash, plaintext),
                secret_prefix=self.generator.prefix_of(plaintext),
                scope=scope,
                owner_email=owner_email,
                created_by_email=actor.email,
                created_at=now,
                expires_at=now + timedelta(days=expiration_days),
            )
            credential = await self.repository.save(credential)

        logger.info(
            f"Created {scope.value} API key {credential.id} ({credential.secret_prefix}...) "
            f"for {owner_email or 'the organization'}, expires {credential.expires_at.isoformat()}"
        )
        await self.audit.record(
            AuditAction.CREATE,
            credential,
            actor.email,
            {"expirationDays": expiration_days, "createdBy": actor.email},
            timestamp=now,
        )
        return self._view(credential, now, plaintext_secret=plaintext)

    # Mutation

    async def rename(self, credential_id: str, new_name: str, actor: Actor) -> CredentialView:
        """Change the label of a key."""
        now = self.clock()

        async with self._reported("rename", credential_id):
            new_name = self._validate_name(new_name)
            async with self.repository.transaction(credential_id) as credential:
                credential = self._require(credential, credential_id, "rename")
                self.guard.ensure(actor, credential, Operation.RENAME)

                old_name = credential.name
                if new_name != old_name:
                    siblings = await self._live_siblings(
                        credential.scope, credential.owner_email, now, exclude_id=credential.id
                    )
                    self._ensure_unique_name(new_name, credential.scope, siblings)

                credential.name = new_name
                credential = await self.repository.save(credential)

        logger.info(f"Renamed API key {credential.id} from '{old_name}' to '{new_name}'")
        await self.audit.record(
            AuditAction.RENAME,
            credential,
            actor.email,
            {"oldName": old_name, "newName": new_name, "updatedBy": actor.email},
            timestamp=now,
        )
        return self._view(credential, now)

    async def revoke(self, credential_id: str, actor: Actor) -> CredentialView:
        """Revoke a key immediately. A key can be revoked only once."""
        now = self.clock()

        async with self._reported("revoke", credential_id):
            async with self.repository.transaction(credential_id) as credential:
                credential = self._require(credential, credential_id, "revoke")
                self.guard.ensure(actor, credential, Operation.REVOKE)

                if credential.is_revoked:
                    raise ConflictError(
                        "API key is already revoked",
                        credential_id=credential_id,
                        operation="revoke",
                    )

                credential.revoke(actor.email, now)
                credential = await self.repository.save(credential)

        logger.info(f"Revoked API key {credential.id} ({credential.secret_prefix}...) by {actor.email}")
        await self.audit.record(
            AuditAction.REVOKE,
            credential,
            actor.email,
            {"revokedBy": actor.email, "reason": "revoked on request"},
            timestamp=now,
        )
        return self._view(credential, now)

    async def rotate(self, credential_id: str, actor: Actor) -> CredentialView:
        """Replace a key with a new one, keeping the old one valid for a grace period.

        The successor gets the same name, scope and owner, a fresh expiry
        spanning the original key's lifetime, and ``rotated_from_id``
        pointing at the old key. The old key gets ``grace_period_ends_at``;
        the sweeper revokes it once that moment has passed.

        Returns:
            CredentialView: The successor's metadata plus its one-time plaintext secret

        Raises:
            ValidationError: The key is revoked, expired, or its grace period has elapsed
            ConflictError: The key has already been rotated and is within its grace period
        """
        now = self.clock()
        grace_period = timedelta(hours=self.config.rotation_grace_period_hours)

        async with self._reported("rotate", credential_id):
            async with self.repository.transaction(credential_id) as old:
                old = self._require(old, credential_id, "rotate")
                self.guard.ensure(actor, old, Operation.ROTATE)
                self._ensure_rotatable(old, now)

                plaintext = self.generator.generate(old.scope)
                successor = Credential(
                    name=old.name,
                    secret_hash=await asyncio.to_thread(self.hasher.hash, plaintext),
                    secret_prefix=self.generator.prefix_of(plaintext),
                    scope=old.scope,
                    owner_email=old.owner_email,
                    created_by_email=actor.email,
                    created_at=now,
                    expires_at=now + (old.expires_at - old.created_at),
                    rotated_from_id=old.id,
                )
                successor = await self.repository.save(successor)

                old.grace_period_ends_at = now + grace_period
                old = await self.repository.save(old)

        logger.info(
            f"Rotated API key {old.id} -> {successor.id}; "
            f"old key valid until {old.grace_period_ends_at.isoformat()}"
        )
        await self.audit.record(
            AuditAction.CREATE,
            successor,
            actor.email,
            {"rotatedFrom": old.id, "createdBy": actor.email},
            timestamp=now,
        )
        await self.audit.record(
            AuditAction.ROTATE,
            old,
            actor.email,
            {
                "newKeyId": successor.id,
                "gracePeriodHours": self.config.rotation_grace_period_hours,
                "gracePeriodEndsAt": old.grace_period_ends_at.isoformat(),
                "rotatedBy": actor.email,
            },
            timestamp=now,
        )
        return self._view(successor, now, plaintext_secret=plaintext)

    # Queries

    async def get(self, credential_id: str, actor: Actor) -> CredentialView:
        now = self.clock()
        async with self._reported("get", credential_id):
            credential = self._require(
                await self.repository.find_by_id(credential_id), credential_id, "get"
            )
            self.guard.ensure(actor, credential, Operation.VIEW)
        return self._view(credential, now)

    async def list_for_owner(
        self, actor: Actor, owner_email: Optional[str] = None
    ) -> List[CredentialView]:
        """Keys owned by ``owner_email`` (the actor by default), newest first.

        Listing someone else's keys requires an administrator.
        """
        owner_email = owner_email or actor.email
        now = self.clock()
        async with self._reported("list_for_owner"):
            if owner_email != actor.email:
                self.guard.ensure_admin(actor, "list other users' API keys")
            credentials = await self.repository.find_by_owner(owner_email)
        return self._views(credentials, now)

    async def list_all(self, actor: Actor) -> List[CredentialView]:
        """Every key, newest first. Administrators only."""
        now = self.clock()
        async with self._reported("list_all"):
            self.guard.ensure_admin(actor, "list all API keys")
            credentials = await self.repository.find_all()
        return self._views(credentials, now)

    async def list_audit_events(
        self,
        actor: Actor,
        owner_email: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[AuditEvent]:
        """API key audit events, newest first. Administrators only.

        ``owner_email`` matches events about that user's keys as well as
        events that user performed.
        """
        async with self._reported("list_audit_events"):
            self.guard.ensure_admin(actor, "view API key audit logs")
            for label, value in (("start_time", start_time), ("end_time", end_time)):
                if value is not None and value.utcoffset() is None:
                    raise ValidationError(
                        f"{label} must be timezone-aware", operation="list_audit_events"
                    )
            if start_time and end_time and start_time > end_time:
                raise ValidationError("start_time must not be after end_time", operation="list_audit_events")
            return await self.audit.query(
                AuditQuery(owner_email=owner_email, start_time=start_time, end_time=end_time)
            )

    # Helpers

    @asynccontextmanager
    async def _reported(self, operation: str, credential_id: Optional[str] = None):
        """Log failures and turn unexpected ones into ``InternalError``."""
        try:
            yield
        except CredentialError as e:
            log_credential_error(e, operation, credential_id)
            raise
        except Exception as e:
            error = InternalError(
                f"Storage failure during {operation}: {e.__class__.__name__}",
                credential_id=credential_id,
                operation=operation,
            )
            log_credential_error(e, operation, credential_id)
            raise error from e

    def _validate_name(self, name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Key name is required")
        if len(name) > self.config.max_name_length:
            raise ValidationError(
                f"Key name must not exceed {self.config.max_name_length} characters"
            )
        return name

    def _validate_expiration(self, expiration_days: Optional[int]) -> int:
        if expiration_days is None:
            return self.config.default_expiration_days
        if isinstance(expiration_days, bool) or not isinstance(expiration_days, int):
            raise ValidationError("Expiration period must be a whole number of days")
        low, high = self.config.min_expiration_days, self.config.max_expiration_days
        if not low <= expiration_days <= high:
            raise ValidationError(f"Expiration period must be between {low} and {high} days")
        return expiration_days

    def _ensure_rotatable(self, credential: Credential, now: datetime) -> None:
        status = self.resolver.for_credential(credential, now)
        if status == CredentialStatus.REVOKED:
            raise ValidationError(
                "Cannot rotate a revoked API key", credential_id=credential.id, operation="rotate"
            )
        if status == CredentialStatus.EXPIRED:
            raise ValidationError(
                "Cannot rotate an expired API key", credential_id=credential.id, operation="rotate"
            )
        if credential.grace_period_ends_at is not None:
            if credential.grace_period_ends_at <= now:
                raise ValidationError(
                    "API key is past its rotation grace period and is being revoked",
                    credential_id=credential.id,
                    operation="rotate",
                )
            raise ConflictError(
                "API key has already been rotated",
                credential_id=credential.id,
                operation="rotate",
            )

    async def _live_siblings(
        self,
        scope: CredentialScope,
        owner_email: Optional[str],
        now: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[Credential]:
        """Live keys sharing the name namespace of a key with this scope and owner."""
        if scope == CredentialScope.USER:
            candidates = await self.repository.find_by_owner(owner_email)
        else:
            candidates = await self.repository.find_by_scope(CredentialScope.SYSTEM)
        return [
            credential
            for credential in candidates
            if credential.scope == scope
            and credential.id != exclude_id
            and self.resolver.is_live(credential, now)
        ]

    def _ensure_unique_name(
        self, name: str, scope: CredentialScope, siblings: List[Credential]
    ) -> None:
        if any(credential.name == name for credential in siblings):
            kind = "A system API key" if scope == CredentialScope.SYSTEM else "An API key"
            raise ValidationError(f"{kind} with name '{name}' already exists")

    @staticmethod
    def _require(
        credential: Optional[Credential], credential_id: str, operation: str
    ) -> Credential:
        if credential is None:
            raise NotFoundError(credential_id=credential_id, operation=operation)
        return credential

    def _view(
        self, credential: Credential, now: datetime, plaintext_secret: Optional[str] = None
    ) -> CredentialView:
        return CredentialView.build(
            credential,
            status=self.resolver.for_credential(credential, now),
            days_until_expiration=self.resolver.days_until_expiration(now, credential.expires_at),
            plaintext_secret=plaintext_secret,
        )

    def _views(self, credentials: List[Credential], now: datetime) -> List[CredentialView]:
        ordered = sorted(credentials, key=lambda credential: credential.created_at, reverse=True)
        return [self._view(credential, now) for credential in ordered]
