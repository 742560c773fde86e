"""Tests for credential status derivation."""

from datetime import timedelta

import pytest

from keyward.models import Credential, CredentialScope, CredentialStatus
from keyward.status import StatusResolver
from tests.mocks.credential_mocks import T0


def make_credential(**overrides) -> Credential:
    values = dict(
        name="ci",
        secret_hash="$2b$04$hash",
        secret_prefix="idp_user_abcdefghijk",
        scope=CredentialScope.USER,
        owner_email="alice@example.com",
        created_by_email="alice@example.com",
        created_at=T0,
        expires_at=T0 + timedelta(days=90),
    )
    values.update(overrides)
    return Credential(**values)


class TestStatusResolver:
    """Test status precedence and thresholds."""

    @pytest.fixture
    def resolver(self):
        return StatusResolver()

    def test_active(self, resolver):
        assert resolver.resolve(T0, T0 + timedelta(days=30)) == CredentialStatus.ACTIVE

    def test_revoked_beats_expired(self, resolver):
        """A revoked key past its expiry is REVOKED, never EXPIRED."""
        status = resolver.resolve(
            T0,
            expires_at=T0 - timedelta(days=1),
            revoked_at=T0 - timedelta(days=2),
            is_active=False,
        )
        assert status == CredentialStatus.REVOKED

    def test_revoked_before_expiry(self, resolver):
        status = resolver.resolve(T0, T0 + timedelta(days=30), revoked_at=T0)
        assert status == CredentialStatus.REVOKED

    def test_expired_at_exact_expiry(self, resolver):
        """Expiry is inclusive: expires_at == now is EXPIRED."""
        assert resolver.resolve(T0, T0) == CredentialStatus.EXPIRED
        assert resolver.resolve(T0, T0 - timedelta(seconds=1)) == CredentialStatus.EXPIRED

    @pytest.mark.parametrize(
        "remaining, expected",
        [
            (timedelta(seconds=1), CredentialStatus.EXPIRING_SOON),
            (timedelta(days=3), CredentialStatus.EXPIRING_SOON),
            (timedelta(days=7), CredentialStatus.EXPIRING_SOON),
            (timedelta(days=7, seconds=1), CredentialStatus.ACTIVE),
            (timedelta(days=8), CredentialStatus.ACTIVE),
        ],
    )
    def test_expiring_soon_window(self, resolver, remaining, expected):
        """EXPIRING_SOON holds iff 0 < expires_at - now <= 7 days."""
        assert resolver.resolve(T0, T0 + remaining) == expected

    def test_is_active_flag_does_not_drive_status(self, resolver):
        """Timestamps are the source of truth, not the cached flag."""
        status = resolver.resolve(T0, T0 + timedelta(days=30), is_active=False)
        assert status == CredentialStatus.ACTIVE

    def test_custom_window(self):
        resolver = StatusResolver(expiring_soon_days=14)
        assert resolver.resolve(T0, T0 + timedelta(days=10)) == CredentialStatus.EXPIRING_SOON

    def test_for_credential_and_is_live(self, resolver):
        credential = make_credential()

        assert resolver.for_credential(credential, T0 + timedelta(days=1)) == CredentialStatus.ACTIVE
        assert resolver.is_live(credential, T0 + timedelta(days=85)) is True
        assert resolver.is_live(credential, T0 + timedelta(days=91)) is False

        credential.revoke("alice@example.com", T0 + timedelta(days=2))
        assert resolver.is_live(credential, T0 + timedelta(days=3)) is False

    def test_days_until_expiration(self, resolver):
        assert resolver.days_until_expiration(T0, T0 + timedelta(days=10, hours=5)) == 10
        assert resolver.days_until_expiration(T0, T0 + timedelta(hours=5)) == 0
        assert resolver.days_until_expiration(T0, T0) == -1
        assert resolver.days_until_expiration(T0, T0 - timedelta(days=3)) == -1
