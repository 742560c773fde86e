"""Plaintext secret generation."""

import re
import secrets
from typing import Dict, Optional

from keyward.consts import BASE62_ALPHABET, SYSTEM_KEY_PREFIX, USER_KEY_PREFIX
from keyward.models import CredentialScope

SCOPE_PREFIXES: Dict[CredentialScope, str] = {
    CredentialScope.USER: USER_KEY_PREFIX,
    CredentialScope.SYSTEM: SYSTEM_KEY_PREFIX,
}


class SecretGenerator:
    """Produces unguessable secrets of the form ``<scope prefix><random>``.

    The random part is ``length`` characters drawn uniformly from the
    62-character alphabet with ``secrets.choice``. With the default length
    of 32 the output space is 62**32, so no uniqueness check is made.
    """

    def __init__(self, length: int = 32, prefix_length: int = 20):
        self.length = length
        self.prefix_length = prefix_length
        self._patterns = {
            scope: re.compile(rf"^{re.escape(prefix)}[0-9A-Za-z]{{{length}}}$")
            for scope, prefix in SCOPE_PREFIXES.items()
        }

    def generate(self, scope: CredentialScope) -> str:
        """Generate a new plaintext secret for the given scope."""
        random_part = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(self.length))
        return SCOPE_PREFIXES[scope] + random_part

    def prefix_of(self, plaintext: str) -> str:
        """Display-safe leading characters used for log correlation."""
        return plaintext[:self.prefix_length]

    def scope_of(self, plaintext: str) -> Optional[CredentialScope]:
        """Scope a well-formed secret was issued for, ``None`` otherwise."""
        if not plaintext:
            return None
        for scope, pattern in self._patterns.items():
            if pattern.match(plaintext):
                return scope
        return None

    def is_well_formed(self, plaintext: str) -> bool:
        """Cheap shape check to run before a bcrypt verification."""
        return self.scope_of(plaintext) is not None
