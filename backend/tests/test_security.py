from datetime import timedelta
from types import SimpleNamespace

import pytest

from eventskona.core.config import settings
from eventskona.core.errors import ConfigurationError
from eventskona.core.security import (
    TokenError,
    TokenKind,
    decode_token,
    extract_bearer_token,
    generate_access_token,
    generate_admin_access_token,
    generate_random_token,
    generate_refresh_token,
    get_password_hash,
    token_payload,
    validate_password_strength,
    verify_access_token,
    verify_admin_token,
    verify_password,
    verify_refresh_token,
)


PAYLOAD = {"sub": "42", "email": "ada@example.com", "role": "USER"}


class TestPasswords:
    def test_hash_round_trip(self):
        hashed = get_password_hash("Str0ng!Pass")
        assert hashed != "Str0ng!Pass"
        assert verify_password("Str0ng!Pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_equal_passwords_get_different_hashes(self):
        assert get_password_hash("Str0ng!Pass") != get_password_hash("Str0ng!Pass")

    def test_missing_or_malformed_hash_is_false(self):
        assert verify_password("Str0ng!Pass", None) is False
        assert verify_password("Str0ng!Pass", "") is False
        assert verify_password("Str0ng!Pass", "not-a-bcrypt-hash") is False

    @pytest.mark.parametrize("password", ["short", "Ab1!"])
    def test_too_short(self, password):
        check = validate_password_strength(password)
        assert not check.valid
        assert check.message == "Password must be at least 8 characters"

    @pytest.mark.parametrize("password", ["alllowercase1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"])
    def test_missing_character_class(self, password):
        check = validate_password_strength(password)
        assert not check.valid
        assert "uppercase" in check.message

    def test_character_outside_allowed_set(self):
        assert not validate_password_strength("Abcdef1! space").valid

    def test_strong_password(self):
        check = validate_password_strength("Abcdef1!")
        assert check.valid
        assert check.message is None


class TestTokens:
    def test_access_token_round_trip(self):
        token = generate_access_token(PAYLOAD)
        payload = verify_access_token(token)
        assert payload["sub"] == "42"
        assert payload["role"] == "USER"
        assert "exp" in payload and "iat" in payload

    def test_token_payload_from_user(self):
        user = SimpleNamespace(id=7, email="ada@example.com", role="ORGANIZER")
        assert token_payload(user) == {"sub": "7", "email": "ada@example.com", "role": "ORGANIZER"}

    def test_tokens_minted_together_differ(self):
        assert generate_refresh_token(PAYLOAD) != generate_refresh_token(PAYLOAD)

    def test_kinds_do_not_cross_verify(self):
        access = generate_access_token(PAYLOAD)
        refresh = generate_refresh_token(PAYLOAD)
        admin = generate_admin_access_token(PAYLOAD)

        assert verify_refresh_token(access) is None
        assert verify_admin_token(access) is None
        assert verify_access_token(refresh) is None
        assert verify_access_token(admin) is None
        assert verify_refresh_token(refresh) is not None
        assert verify_admin_token(admin) is not None

    def test_signature_mismatch_reason(self):
        result = decode_token(generate_refresh_token(PAYLOAD), TokenKind.ACCESS)
        assert not result.ok
        assert result.error is TokenError.SIGNATURE_MISMATCH

    def test_expired_reason(self):
        token = generate_access_token(PAYLOAD, expires_delta=timedelta(seconds=-10))
        result = decode_token(token, TokenKind.ACCESS)
        assert result.error is TokenError.EXPIRED
        assert verify_access_token(token) is None

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed_reason(self, token):
        result = decode_token(token, TokenKind.ACCESS)
        assert result.payload is None
        assert result.error is TokenError.MALFORMED

    def test_missing_subject_is_invalid_claims(self):
        token = generate_access_token({"email": "ada@example.com", "role": "USER"})
        assert decode_token(token, TokenKind.ACCESS).error is TokenError.INVALID_CLAIMS

    def test_missing_secret_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "JWT_SECRET", None)
        with pytest.raises(ConfigurationError):
            generate_access_token(PAYLOAD)
        with pytest.raises(ConfigurationError):
            verify_access_token("anything")


class TestOpaqueTokens:
    def test_random_token_is_64_hex_chars(self):
        token = generate_random_token()
        assert len(token) == 64
        int(token, 16)

    def test_random_tokens_are_unique(self):
        assert len({generate_random_token() for _ in range(20)}) == 20

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc.def", "abc.def"),
        ("Bearer ", None),
        ("Basic abc", None),
        ("abc.def", None),
        (None, None),
    ])
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected
