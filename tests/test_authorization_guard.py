"""Tests for the credential authorization policy."""

from datetime import timedelta

import pytest

from keyward.authorization import AuthorizationGuard, Operation
from keyward.errors import AuthorizationError
from keyward.models import Credential, CredentialScope
from tests.mocks.credential_mocks import ADMIN, ALICE, BOB, T0


def credential_for(scope: CredentialScope, owner_email=None) -> Credential:
    return Credential(
        name="ci",
        secret_hash="$2b$04$hash",
        secret_prefix="idp_user_abcdefghijk",
        scope=scope,
        owner_email=owner_email,
        created_by_email=owner_email or ADMIN.email,
        created_at=T0,
        expires_at=T0 + timedelta(days=90),
    )


class TestAuthorizationGuard:
    """Test who may act on which credential."""

    @pytest.fixture
    def guard(self):
        return AuthorizationGuard()

    @pytest.mark.parametrize("operation", list(Operation))
    def test_owner_may_act_on_own_key(self, guard, operation):
        credential = credential_for(CredentialScope.USER, ALICE.email)
        assert guard.can_act(ALICE, credential, operation) is True

    @pytest.mark.parametrize("operation", list(Operation))
    def test_other_user_may_not_act(self, guard, operation):
        credential = credential_for(CredentialScope.USER, ALICE.email)
        assert guard.can_act(BOB, credential, operation) is False

    @pytest.mark.parametrize("operation", list(Operation))
    def test_admin_may_act_on_any_key(self, guard, operation):
        assert guard.can_act(ADMIN, credential_for(CredentialScope.USER, ALICE.email), operation) is True
        assert guard.can_act(ADMIN, credential_for(CredentialScope.SYSTEM), operation) is True

    @pytest.mark.parametrize("operation", list(Operation))
    def test_system_keys_are_admin_only(self, guard, operation):
        assert guard.can_act(ALICE, credential_for(CredentialScope.SYSTEM), operation) is False

    def test_creation_rules(self, guard):
        assert guard.can_create(ALICE, CredentialScope.USER) is True
        assert guard.can_create(ALICE, CredentialScope.SYSTEM) is False
        assert guard.can_create(ADMIN, CredentialScope.SYSTEM) is True

    def test_ensure_raises(self, guard):
        """Violations raise instead of silently passing."""
        credential = credential_for(CredentialScope.USER, ALICE.email)

        guard.ensure(ALICE, credential, Operation.REVOKE)
        with pytest.raises(AuthorizationError) as exc_info:
            guard.ensure(BOB, credential, Operation.REVOKE)

        assert exc_info.value.credential_id == credential.id
        assert exc_info.value.operation == "revoke"
        assert exc_info.value.http_status_code == 403

    def test_ensure_create_and_admin(self, guard):
        guard.ensure_create(ADMIN, CredentialScope.SYSTEM)
        guard.ensure_admin(ADMIN, "list all API keys")

        with pytest.raises(AuthorizationError):
            guard.ensure_create(ALICE, CredentialScope.SYSTEM)
        with pytest.raises(AuthorizationError):
            guard.ensure_admin(ALICE, "list all API keys")
