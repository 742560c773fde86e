"""Who may do what with a credential."""

import logging
from enum import Enum

from keyward.errors import AuthorizationError
from keyward.models import Actor, Credential, CredentialScope

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Operations checked against a specific credential."""
    VIEW = "view"
    RENAME = "rename"
    REVOKE = "revoke"
    ROTATE = "rotate"


class AuthorizationGuard:
    """Ownership-based access policy.

    Administrators may act on any credential. Everyone else may act only
    on USER credentials they own. SYSTEM credentials are administrator-only
    for every operation, creation included.
    """

    def can_create(self, actor: Actor, scope: CredentialScope) -> bool:
        if scope == CredentialScope.SYSTEM:
            return actor.is_admin
        return True

    def can_act(self, actor: Actor, credential: Credential, operation: Operation) -> bool:
        if actor.is_admin:
            return True
        return (
            credential.scope == CredentialScope.USER
            and credential.owner_email is not None
            and credential.owner_email == actor.email
        )

    def ensure(self, actor: Actor, credential: Credential, operation: Operation) -> None:
        """Raise ``AuthorizationError`` unless ``can_act`` allows the operation."""
        if not self.can_act(actor, credential, operation):
            logger.info(f"Denied {operation.value} on API key {credential.id} for {actor.email}")
            raise AuthorizationError(
                f"You do not have permission to {operation.value} this API key",
                credential_id=credential.id,
                operation=operation.value,
            )

    def ensure_create(self, actor: Actor, scope: CredentialScope) -> None:
        if not self.can_create(actor, scope):
            raise AuthorizationError(
                f"Only administrators can create {scope.value} API keys",
                operation="create",
            )

    def ensure_admin(self, actor: Actor, operation: str) -> None:
        if not actor.is_admin:
            raise AuthorizationError(
                f"Only administrators can {operation}",
                operation=operation,
            )
