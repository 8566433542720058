"""Unit tests for auth/tokens.py -- JWT codec and bcrypt hashing.

Covers:
- Access and refresh tokens carry {sub, tokenVersion, jti} and decode only as their own type
- Expired, tampered, malformed, and wrong-key tokens decode to None
- Refresh-token hashes match only the exact token they were computed from,
  even for two tokens of the same user that share a long common prefix
- Password hashing and timing-equalized credential checks
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.models import User
from auth.tokens import (
    authenticate_credentials,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    hash_refresh_token,
    new_jti,
    sign_access,
    sign_refresh,
    verify_password,
    verify_refresh_token,
)
from core.config import get_settings

_USER_ID = "7f1c7d0e-0000-4000-8000-000000000001"


class TestJwtCodec:
    def test_access_token_round_trip_claims(self):
        jti = new_jti()
        payload = decode_access_token(sign_access(_USER_ID, 3, jti))
        assert payload is not None
        assert payload["sub"] == _USER_ID
        assert payload["tokenVersion"] == 3
        assert payload["jti"] == jti

    def test_refresh_token_decodes_as_refresh(self):
        jti = new_jti()
        payload = decode_refresh_token(sign_refresh(_USER_ID, 0, jti))
        assert payload is not None
        assert payload["jti"] == jti

    def test_refresh_token_is_not_an_access_token(self):
        assert decode_access_token(sign_refresh(_USER_ID, 0, new_jti())) is None

    def test_access_token_is_not_a_refresh_token(self):
        assert decode_refresh_token(sign_access(_USER_ID, 0, new_jti())) is None

    def test_access_expires_before_refresh(self):
        jti = new_jti()
        access = decode_access_token(sign_access(_USER_ID, 0, jti))
        refresh = decode_refresh_token(sign_refresh(_USER_ID, 0, jti))
        assert access["exp"] < refresh["exp"]

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode(
            {"sub": _USER_ID, "tokenVersion": 0, "jti": new_jti(), "type": "access", "exp": past},
            get_settings().secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_wrong_key_rejected(self):
        token = jwt.encode(
            {"sub": _USER_ID, "tokenVersion": 0, "jti": new_jti(), "type": "access"},
            "another-secret-key-that-is-long-enough-to-pass",
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_tampered_signature_rejected(self):
        head, _body, sig = sign_access(_USER_ID, 0, new_jti()).split(".")
        _head, other_body, _sig = sign_access(_USER_ID, 9, new_jti()).split(".")
        assert decode_access_token(f"{head}.{other_body}.{sig}") is None

    def test_malformed_token_rejected(self):
        assert decode_access_token("not-a-jwt") is None
        assert decode_refresh_token("") is None

    def test_missing_claim_rejected(self):
        token = jwt.encode(
            {"sub": _USER_ID, "type": "access"},
            get_settings().secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_new_jti_unique(self):
        assert len({new_jti() for _ in range(100)}) == 100


class TestRefreshHash:
    def test_matches_own_token(self):
        token = sign_refresh(_USER_ID, 0, new_jti())
        assert verify_refresh_token(token, hash_refresh_token(token))

    def test_rejects_sibling_token_with_shared_prefix(self):
        """Two tokens of the same user share well over 72 leading bytes."""
        first = sign_refresh(_USER_ID, 0, new_jti())
        second = sign_refresh(_USER_ID, 0, new_jti())
        assert first[:36] == second[:36]
        assert not verify_refresh_token(second, hash_refresh_token(first))

    def test_rejects_garbage_hash(self):
        assert not verify_refresh_token("anything", "not-a-bcrypt-hash")


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("pw123456")
        assert hashed != "pw123456"
        assert verify_password("pw123456", hashed)
        assert not verify_password("wrong-password", hashed)

    def test_authenticate_credentials(self, user_store):
        user_store.create_user(User(email="a@x.com", hashed_password=hash_password("pw123456")))
        assert authenticate_credentials(user_store, "a@x.com", "pw123456") is not None
        assert authenticate_credentials(user_store, "a@x.com", "nope-nope") is None
        assert authenticate_credentials(user_store, "ghost@x.com", "pw123456") is None
