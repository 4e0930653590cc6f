"""
auth/pkce.py -- PKCE (RFC 7636) code verifier and challenge helpers.

Only the verifier/challenge primitives live here. Authorization-server grant
flows are out of scope.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import string

METHOD_PLAIN = "plain"
METHOD_S256 = "S256"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128

# RFC 7636 "unreserved" characters minus "~", matching the base64url alphabet.
_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-_"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_challenge(verifier: str, method: str = METHOD_S256) -> str:
    """Derive the code_challenge for a verifier.

    "plain" returns the base64url encoding of the verifier itself. "S256" --
    and any unrecognized method, so a typo never downgrades to plain --
    returns base64url(SHA-256(verifier)).
    """
    if method == METHOD_PLAIN:
        return _b64url(verifier.encode("utf-8"))
    return _b64url(hashlib.sha256(verifier.encode("utf-8")).digest())


def validate_code_verifier(verifier: str, challenge: str, method: str = METHOD_S256) -> bool:
    expected = generate_code_challenge(verifier, method)
    return hmac.compare_digest(expected.encode("ascii"), challenge.encode("utf-8"))


def generate_code_verifier(length: int = 64) -> str:
    """Return a random verifier of exactly `length` URL-safe characters (43-128)."""
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"code verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH} characters"
        )
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))
