"""Derivation of a credential's lifecycle status from its timestamps."""

from datetime import datetime, timedelta
from typing import Optional

from keyward.models import Credential, CredentialStatus

LIVE_STATUSES = frozenset({CredentialStatus.ACTIVE, CredentialStatus.EXPIRING_SOON})


class StatusResolver:
    """Single source of truth for credential status.

    Precedence: REVOKED, then EXPIRED, then EXPIRING_SOON, then ACTIVE. A
    revoked credential whose expiry has also passed is REVOKED. The stored
    ``is_active`` flag is only a cache of "not revoked and not expired"
    and never influences the result.
    """

    def __init__(self, expiring_soon_days: int = 7):
        self.expiring_soon_window = timedelta(days=expiring_soon_days)

    def resolve(
        self,
        now: datetime,
        expires_at: datetime,
        revoked_at: Optional[datetime] = None,
        is_active: bool = True,
    ) -> CredentialStatus:
        if revoked_at is not None:
            return CredentialStatus.REVOKED
        if expires_at <= now:
            return CredentialStatus.EXPIRED
        if expires_at - now <= self.expiring_soon_window:
            return CredentialStatus.EXPIRING_SOON
        return CredentialStatus.ACTIVE

    def for_credential(self, credential: Credential, now: datetime) -> CredentialStatus:
        return self.resolve(now, credential.expires_at, credential.revoked_at, credential.is_active)

    def is_live(self, credential: Credential, now: datetime) -> bool:
        """Whether the credential counts towards limits and name uniqueness."""
        return self.for_credential(credential, now) in LIVE_STATUSES

    @staticmethod
    def days_until_expiration(now: datetime, expires_at: datetime) -> int:
        """Whole days left before expiry, -1 once expired."""
        if expires_at <= now:
            return -1
        return (expires_at - now).days
