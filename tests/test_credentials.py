"""Tests for Argon2id hashing, the password policy and password generation."""

import string

import pytest
from argon2 import PasswordHasher

from lexguard.core.auth.credentials import (
    SPECIAL_CHARACTERS,
    CredentialHasher,
    PasswordScore,
)
from lexguard.core.auth.errors import HashingError, WeakPassword


class TestHashing:

    def test_hash_is_argon2id(self, hasher):
        encoded = hasher.hash("Str0ng!Pass")
        assert encoded.startswith("$argon2id$")
        assert "Str0ng!Pass" not in encoded

    def test_hash_is_salted(self, hasher):
        assert hasher.hash("Str0ng!Pass") != hasher.hash("Str0ng!Pass")

    def test_verify(self, hasher):
        encoded = hasher.hash("Str0ng!Pass")
        assert hasher.verify("Str0ng!Pass", encoded)
        assert not hasher.verify("str0ng!pass", encoded)

    def test_verify_never_raises_on_bad_input(self, hasher):
        assert not hasher.verify("Str0ng!Pass", "not-a-hash")
        assert not hasher.verify("", hasher.hash("Str0ng!Pass"))
        assert not hasher.verify("Str0ng!Pass", "")

    def test_empty_password_rejected(self, hasher):
        with pytest.raises(WeakPassword):
            hasher.hash("")

    def test_backend_failure_raises_hashing_error(self, hasher, monkeypatch):
        def broken(self, password, **kwargs):
            raise OSError("entropy source unavailable")

        monkeypatch.setattr(PasswordHasher, "hash", broken)
        with pytest.raises(HashingError):
            hasher.hash("Str0ng!Pass")

    def test_needs_rehash_after_parameter_change(self, hasher):
        encoded = hasher.hash("Str0ng!Pass")
        assert not hasher.needs_rehash(encoded)

        stronger = CredentialHasher(memory_cost=16, time_cost=1, parallelism=1)
        assert stronger.needs_rehash(encoded)
        assert stronger.verify("Str0ng!Pass", encoded)

    def test_dummy_verify_does_not_raise(self, hasher):
        hasher.dummy_verify("whatever")
        hasher.dummy_verify("")

    def test_parameters(self, hasher):
        params = hasher.parameters
        assert params["memory_cost"] == 8
        assert params["time_cost"] == 1
        assert params["parallelism"] == 1

    @pytest.mark.parametrize("kwargs", [
        {"parallelism": 0},
        {"memory_cost": 4, "parallelism": 1},
        {"time_cost": 0},
        {"hash_length": 8},
        {"salt_length": 4},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            CredentialHasher(**kwargs)


class TestPasswordStrength:

    def test_valid_password(self):
        result = CredentialHasher.strength("Str0ng!Pass")
        assert result.is_valid
        assert result.violations == ()

    def test_every_violation_reported(self):
        result = CredentialHasher.strength("abc")
        assert not result.is_valid
        assert result.violations == (
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
            "Password must contain at least one special character",
        )

    def test_special_set_is_fixed(self):
        # '?' is not in the accepted special set
        result = CredentialHasher.strength("Abcdefg1?")
        assert "Password must contain at least one special character" in result.violations

    def test_scores(self):
        assert CredentialHasher.strength("abc").score is PasswordScore.WEAK
        assert CredentialHasher.strength("abcdefG1").score is PasswordScore.MEDIUM
        assert CredentialHasher.strength("Str0ng!Pass").score is PasswordScore.STRONG
        assert CredentialHasher.strength("Str0ng!Pass-Long").score is PasswordScore.STRONG


class TestGeneratePassword:

    def test_generated_passwords_satisfy_policy(self):
        for _ in range(50):
            password = CredentialHasher.generate_secure_password()
            assert len(password) == 12
            assert CredentialHasher.strength(password).is_valid

    def test_alphabet(self):
        allowed = set(string.ascii_letters + string.digits + SPECIAL_CHARACTERS)
        password = CredentialHasher.generate_secure_password(32)
        assert set(password) <= allowed

    def test_minimum_length(self):
        assert len(CredentialHasher.generate_secure_password(8)) == 8
        with pytest.raises(ValueError):
            CredentialHasher.generate_secure_password(7)
