"""Credential, audit event and view models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialScope(str, Enum):
    """Who a credential belongs to."""
    USER = "USER"       # Tied to an owner
    SYSTEM = "SYSTEM"   # Organization-wide, admin-only


class CredentialStatus(str, Enum):
    """Derived lifecycle status of a credential."""
    ACTIVE = "ACTIVE"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class AuditAction(str, Enum):
    """Lifecycle events written to the audit log."""
    CREATE = "CREATE"
    ROTATE = "ROTATE"
    REVOKE = "REVOKE"
    EXPIRE = "EXPIRE"
    RENAME = "RENAME"


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation."""
    email: str
    is_admin: bool = False


class Credential(BaseModel):
    """Stored API key record. Holds the hash of the secret, never the secret."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    secret_hash: str
    secret_prefix: str
    scope: CredentialScope
    owner_email: Optional[str] = None

    # Provenance
    created_by_email: str
    created_at: datetime
    expires_at: datetime
    last_used_at: Optional[datetime] = None

    # Revocation, set once
    revoked_at: Optional[datetime] = None
    revoked_by_email: Optional[str] = None
    is_active: bool = True

    # Rotation
    rotated_from_id: Optional[str] = None
    grace_period_ends_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_owner_matches_scope(self) -> "Credential":
        if self.scope == CredentialScope.USER and not self.owner_email:
            raise ValueError("USER credentials require an owner_email")
        if self.scope == CredentialScope.SYSTEM and self.owner_email is not None:
            raise ValueError("SYSTEM credentials must not have an owner_email")
        return self

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def revoke(self, revoked_by: str, now: datetime) -> None:
        """Mark the credential revoked. Callers check it is not revoked yet."""
        self.revoked_at = now
        self.revoked_by_email = revoked_by
        self.is_active = False


class AuditEvent(BaseModel):
    """A lifecycle event emitted after a committed change."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    credential_id: str
    action: AuditAction
    actor_email: str
    owner_email: Optional[str] = None
    timestamp: datetime
    details: Dict[str, Any] = {}


class AuditQuery(BaseModel):
    """Filters for listing audit events. Unset filters match everything."""

    owner_email: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def matches(self, event: AuditEvent) -> bool:
        if self.owner_email and self.owner_email not in (event.owner_email, event.actor_email):
            return False
        if self.start_time is not None and event.timestamp < self.start_time:
            return False
        if self.end_time is not None and event.timestamp > self.end_time:
            return False
        return True


class CredentialView(BaseModel):
    """What callers get back.

    ``plaintext_secret`` is only populated in the response to a create or
    rotate call and is never stored.
    """

    id: str
    name: str
    secret_prefix: str
    scope: CredentialScope
    owner_email: Optional[str] = None
    created_by_email: str
    created_at: datetime
    expires_at: datetime
    last_used_at: Optional[datetime] = None
    is_active: bool
    status: CredentialStatus
    is_expiring_soon: bool
    days_until_expiration: int
    revoked_at: Optional[datetime] = None
    revoked_by_email: Optional[str] = None
    rotated_from_id: Optional[str] = None
    grace_period_ends_at: Optional[datetime] = None
    plaintext_secret: Optional[str] = None

    @classmethod
    def build(
        cls,
        credential: Credential,
        status: CredentialStatus,
        days_until_expiration: int,
        plaintext_secret: Optional[str] = None,
    ) -> "CredentialView":
        return cls(
            **credential.model_dump(exclude={"secret_hash"}),
            status=status,
            is_expiring_soon=status == CredentialStatus.EXPIRING_SOON,
            days_until_expiration=days_until_expiration,
            plaintext_secret=plaintext_secret,
        )
