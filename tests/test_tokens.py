"""Unit tests for the RS256 access token codec in auth/tokens.py.

Covers:
- mint/decode round trip preserves account claims; jti unique per token
- Expired tokens raise TokenExpired (a TokenInvalid subclass)
- Algorithm pinning: HS256 header (key-confusion downgrade) is rejected
- Wrong issuer, foreign signing key, tampered payload, garbage input
- Correctly signed tokens with missing or mistyped claims are TokenInvalid
- Refresh secret generation and hashing
"""

from __future__ import annotations

import hashlib
import time
from datetime import timedelta

import pytest
from jose import jwt

from auth.errors import TokenExpired, TokenInvalid
from auth.keys import KeyPair, generate_key_pair
from auth.models import Account
from auth.tokens import (
    ALGORITHM,
    TokenCodec,
    generate_jti,
    generate_refresh_token,
    hash_refresh_token,
)

ALICE = Account(id="3f1c0e7e-1111-4a2b-9c3d-000000000001", email="alice@example.com", hashed_password="x", role="user")


def _signed(key_pair: KeyPair, **overrides) -> str:
    """Sign an arbitrary payload with the real private key."""
    now = int(time.time())
    payload = {
        "sub": ALICE.id,
        "email": ALICE.email,
        "role": ALICE.role,
        "iss": "authgate-test",
        "jti": generate_jti(),
        "iat": now,
        "nbf": now,
        "exp": now + 600,
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, key_pair.private_pem, algorithm=ALGORITHM)


class TestMintAndDecode:
    def test_round_trip(self, codec: TokenCodec) -> None:
        claims = codec.decode(codec.mint(ALICE))
        assert claims.user_id == ALICE.id
        assert claims.email == ALICE.email
        assert claims.role == "user"
        assert claims.issuer == "authgate-test"
        assert len(claims.jti) == 32

    def test_expiry_matches_ttl(self, codec: TokenCodec) -> None:
        claims = codec.decode(codec.mint(ALICE))
        lifetime = (claims.expires_at - claims.issued_at).total_seconds()
        assert lifetime == pytest.approx(15 * 60, abs=1)
        assert claims.not_before == claims.issued_at

    def test_header_is_rs256(self, codec: TokenCodec) -> None:
        verified = codec.verify(codec.mint(ALICE))
        assert verified.header["alg"] == "RS256"

    def test_jti_unique_per_token(self, codec: TokenCodec) -> None:
        jtis = {codec.decode(codec.mint(ALICE)).jti for _ in range(5)}
        assert len(jtis) == 5

    def test_ttl_override(self, codec: TokenCodec) -> None:
        claims = codec.decode(codec.mint(ALICE, ttl=timedelta(seconds=30)))
        assert (claims.expires_at - claims.issued_at).total_seconds() == pytest.approx(30, abs=1)


class TestRejection:
    def test_expired_token(self, codec: TokenCodec) -> None:
        token = codec.mint(ALICE, ttl=timedelta(seconds=-5))
        with pytest.raises(TokenExpired):
            codec.decode(token)

    def test_sub_second_ttl_rejected_before_next_second(self, codec: TokenCodec) -> None:
        token = codec.mint(ALICE, ttl=timedelta(microseconds=1))
        time.sleep(0.01)
        with pytest.raises(TokenExpired):
            codec.decode(token)

    def test_expired_is_a_token_invalid(self, codec: TokenCodec) -> None:
        token = codec.mint(ALICE, ttl=timedelta(seconds=-5))
        with pytest.raises(TokenInvalid):
            codec.decode(token)

    def test_hs256_downgrade_rejected(self, codec: TokenCodec) -> None:
        """An HMAC-signed token is refused on its header alone, before any key is tried."""
        now = int(time.time())
        payload = {
            "sub": ALICE.id,
            "email": ALICE.email,
            "role": "admin",
            "iss": "authgate-test",
            "jti": generate_jti(),
            "iat": now,
            "nbf": now,
            "exp": now + 600,
        }
        forged = jwt.encode(payload, "not-the-rsa-key", algorithm="HS256")
        with pytest.raises(TokenInvalid, match="unexpected signing method"):
            codec.decode(forged)

    def test_wrong_issuer(self, codec: TokenCodec, key_pair: KeyPair) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(_signed(key_pair, iss="someone-else"))

    def test_foreign_key(self, codec: TokenCodec) -> None:
        other = TokenCodec(generate_key_pair(2048), issuer="authgate-test", access_ttl=timedelta(minutes=5))
        with pytest.raises(TokenInvalid):
            codec.decode(other.mint(ALICE))

    def test_tampered_payload(self, codec: TokenCodec) -> None:
        header, payload, signature = codec.mint(ALICE).split(".")
        tampered_payload = payload[:-2] + ("AA" if payload[-2:] != "AA" else "BB")
        with pytest.raises(TokenInvalid):
            codec.decode(".".join([header, tampered_payload, signature]))

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c", "Bearer x.y.z"])
    def test_garbage(self, codec: TokenCodec, garbage: str) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(garbage)

    def test_missing_jti(self, codec: TokenCodec, key_pair: KeyPair) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(_signed(key_pair, jti=None))

    def test_missing_email(self, codec: TokenCodec, key_pair: KeyPair) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(_signed(key_pair, email=None))

    def test_mistyped_role(self, codec: TokenCodec, key_pair: KeyPair) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(_signed(key_pair, role=42))

    def test_not_yet_valid(self, codec: TokenCodec, key_pair: KeyPair) -> None:
        with pytest.raises(TokenInvalid):
            codec.decode(_signed(key_pair, nbf=int(time.time()) + 3600))


class TestRefreshSecrets:
    def test_secret_is_urlsafe_and_long(self) -> None:
        secret = generate_refresh_token()
        assert len(secret) == 43
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")

    def test_secrets_are_unique(self) -> None:
        assert generate_refresh_token() != generate_refresh_token()

    def test_hash_is_sha256_hex(self) -> None:
        assert hash_refresh_token("abc") == hashlib.sha256(b"abc").hexdigest()
        assert len(hash_refresh_token(generate_refresh_token())) == 64
