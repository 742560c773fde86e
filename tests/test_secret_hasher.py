"""Tests for bcrypt secret hashing."""

import pytest

from keyward.hashing import SecretHasher


class TestSecretHasher:
    """Test SecretHasher functionality."""

    @pytest.fixture
    def hasher(self):
        return SecretHasher(rounds=4)

    def test_hash_does_not_contain_plaintext(self, hasher):
        """The hash is a bcrypt string, not the secret."""
        secret = "idp_user_abcdefghijklmnopqrstuvwxyz012345"
        hashed = hasher.hash(secret)

        assert secret not in hashed
        assert hashed.startswith("$2")
        assert "$04$" in hashed

    def test_hash_is_salted(self, hasher):
        """Hashing the same secret twice yields different hashes."""
        secret = "idp_user_abcdefghijklmnopqrstuvwxyz012345"
        assert hasher.hash(secret) != hasher.hash(secret)

    def test_verify(self, hasher):
        """The right secret verifies, a wrong one does not."""
        secret = "idp_user_abcdefghijklmnopqrstuvwxyz012345"
        hashed = hasher.hash(secret)

        assert hasher.verify(secret, hashed) is True
        assert hasher.verify(secret[:-1] + "6", hashed) is False

    def test_verify_rejects_blank_and_malformed_input(self, hasher):
        """Blank inputs and malformed hashes fail closed."""
        hashed = hasher.hash("idp_user_secret")

        assert hasher.verify("", hashed) is False
        assert hasher.verify("idp_user_secret", "") is False
        assert hasher.verify("idp_user_secret", "not-a-bcrypt-hash") is False

    def test_rounds_are_configurable(self):
        """The work factor is embedded in the hash."""
        hashed = SecretHasher(rounds=5).hash("idp_user_secret")
        assert "$05$" in hashed

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_invalid_rounds(self, rounds):
        """Rounds outside bcrypt's range are rejected."""
        with pytest.raises(ValueError):
            SecretHasher(rounds=rounds)

    def test_empty_secret_cannot_be_hashed(self, hasher):
        with pytest.raises(ValueError):
            hasher.hash("")
