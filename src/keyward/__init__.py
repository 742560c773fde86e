"""keyward - lifecycle management for long-lived API credentials.

keyward issues API keys that let users and automated systems call a
platform API without interactive login, and manages them until they lapse.

Key Components:
    - CredentialLifecycleManager: create, rename, revoke and rotate keys
    - ExpirationSweeper: periodic passes retiring expired and rotated keys
    - StatusResolver: derives ACTIVE / EXPIRING_SOON / EXPIRED / REVOKED
    - AuthorizationGuard: owner and administrator access policy
    - AuditRecorder: emits lifecycle events to an audit sink

Usage:
    ```python
    from keyward import (
        Actor,
        CredentialLifecycleManager,
        MemoryAuditSink,
        MemoryCredentialRepository,
    )

    manager = CredentialLifecycleManager(MemoryCredentialRepository(), MemoryAuditSink())
    view = await manager.create_user_key("ci-pipeline", 90, Actor("dev@example.com"))
    print(view.plaintext_secret)  # shown once, never again
    ```
"""

from keyward.audit import AuditRecorder, AuditSink, MemoryAuditSink
from keyward.authorization import AuthorizationGuard, Operation
from keyward.config import CredentialConfig, load_config
from keyward.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    CredentialError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from keyward.generator import SecretGenerator
from keyward.hashing import SecretHasher
from keyward.lifecycle import CredentialLifecycleManager
from keyward.models import (
    Actor,
    AuditAction,
    AuditEvent,
    AuditQuery,
    Credential,
    CredentialScope,
    CredentialStatus,
    CredentialView,
)
from keyward.repository import CredentialRepository, MemoryCredentialRepository
from keyward.status import StatusResolver
from keyward.sweeper import ExpirationSweeper

__version__ = "0.1.0"

__all__ = [
    "Actor",
    "AuditAction",
    "AuditEvent",
    "AuditQuery",
    "AuditRecorder",
    "AuditSink",
    "AuthorizationError",
    "AuthorizationGuard",
    "ConfigurationError",
    "ConflictError",
    "Credential",
    "CredentialConfig",
    "CredentialError",
    "CredentialLifecycleManager",
    "CredentialRepository",
    "CredentialScope",
    "CredentialStatus",
    "CredentialView",
    "ExpirationSweeper",
    "InternalError",
    "MemoryAuditSink",
    "MemoryCredentialRepository",
    "NotFoundError",
    "Operation",
    "SecretGenerator",
    "SecretHasher",
    "StatusResolver",
    "ValidationError",
    "load_config",
]
