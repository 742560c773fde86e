USER_KEY_PREFIX = "idp_user_"
"""Prefix of every plaintext secret issued for a USER-scoped credential"""

SYSTEM_KEY_PREFIX = "idp_system_"
"""Prefix of every plaintext secret issued for a SYSTEM-scoped credential"""

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
"""Alphabet the random part of a secret is drawn from"""

SYSTEM_ACTOR_EMAIL = "system"
"""Identity recorded for changes made by the expiration sweeper"""

GRACE_PERIOD_REVOKE_REASON = "rotation grace period elapsed"
EXPIRATION_REASON = "automatic expiration"
