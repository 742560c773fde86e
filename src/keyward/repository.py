"""Credential storage interface and an in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Dict, List, Optional, Set

from keyward.models import Credential, CredentialScope


class CredentialRepository(ABC):
    """Abstract base class for credential storage backends.

    State changes go through ``transaction``: it yields the current record
    for one credential id and guarantees that no other transaction on the
    same id runs until the block exits. Every ``save`` made inside the
    block, for that record or any other, is committed together when the
    block exits normally and discarded when it raises.
    """

    @abstractmethod
    async def save(self, credential: Credential) -> Credential:
        """Insert or update a credential."""
        pass

    @abstractmethod
    async def find_by_id(self, credential_id: str) -> Optional[Credential]:
        """Get a credential by ID."""
        pass

    @abstractmethod
    async def find_by_owner(self, owner_email: str) -> List[Credential]:
        """Get all credentials owned by a user."""
        pass

    @abstractmethod
    async def find_by_scope(self, scope: CredentialScope) -> List[Credential]:
        """Get all credentials of a scope."""
        pass

    @abstractmethod
    async def find_all(self) -> List[Credential]:
        """Get every credential."""
        pass

    async def find_active(self) -> List[Credential]:
        """Get credentials whose cached ``is_active`` flag is set."""
        return [credential for credential in await self.find_all() if credential.is_active]

    @abstractmethod
    def transaction(self, credential_id: str):
        """Async context manager scoping an atomic read-modify-write to one record."""
        pass


# Writes staged by the transaction running in the current task
_staged_writes: ContextVar[Optional[Dict[str, Credential]]] = ContextVar(
    "keyward_staged_writes", default=None
)


class MemoryCredentialRepository(CredentialRepository):
    """In-memory credential store for development and testing.

    Records are copied on the way in and out, so a caller holding a
    credential cannot change the stored state without ``save``. Saves
    inside a transaction are staged and applied only once the block has
    completed.
    """

    def __init__(self):
        self.credentials: Dict[str, Credential] = {}
        self.owner_index: Dict[str, Set[str]] = {}
        self._record_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def save(self, credential: Credential) -> Credential:
        stored = credential.model_copy(deep=True)

        staged = _staged_writes.get()
        if staged is not None:
            staged[stored.id] = stored
        else:
            self._write(stored)

        return stored.model_copy(deep=True)

    def _write(self, stored: Credential) -> None:
        self.credentials[stored.id] = stored
        if stored.owner_email is not None:
            self.owner_index.setdefault(stored.owner_email, set()).add(stored.id)

    async def find_by_id(self, credential_id: str) -> Optional[Credential]:
        credential = self.credentials.get(credential_id)
        return credential.model_copy(deep=True) if credential else None

    async def find_by_owner(self, owner_email: str) -> List[Credential]:
        credential_ids = self.owner_index.get(owner_email, set())
        return [
            self.credentials[credential_id].model_copy(deep=True)
            for credential_id in credential_ids
            if credential_id in self.credentials
        ]

    async def find_by_scope(self, scope: CredentialScope) -> List[Credential]:
        return [
            credential.model_copy(deep=True)
            for credential in self.credentials.values()
            if credential.scope == scope
        ]

    async def find_all(self) -> List[Credential]:
        return [credential.model_copy(deep=True) for credential in self.credentials.values()]

    @asynccontextmanager
    async def transaction(self, credential_id: str) -> AsyncIterator[Optional[Credential]]:
        lock = self._acquire_lock_slot(credential_id)
        try:
            async with lock:
                staged: Dict[str, Credential] = {}
                token = _staged_writes.set(staged)
                try:
                    yield await self.find_by_id(credential_id)
                finally:
                    _staged_writes.reset(token)

                for stored in staged.values():
                    self._write(stored)
        finally:
            self._release_lock_slot(credential_id)

    def _acquire_lock_slot(self, credential_id: str) -> asyncio.Lock:
        """Lock for ``credential_id``, kept only while someone holds or awaits it."""
        lock = self._record_locks.get(credential_id)
        if lock is None:
            lock = self._record_locks[credential_id] = asyncio.Lock()
        self._lock_users[credential_id] = self._lock_users.get(credential_id, 0) + 1
        return lock

    def _release_lock_slot(self, credential_id: str) -> None:
        self._lock_users[credential_id] -= 1
        if self._lock_users[credential_id] == 0:
            del self._lock_users[credential_id]
            del self._record_locks[credential_id]
