"""Unit tests for bcrypt password hashing in auth/passwords.py.

Covers:
- Hash/verify agreement and salting (two hashes of one password differ)
- Cost handling: <= 0 means the default, out-of-range costs are rejected
- 72-byte truncation applied identically on hash and verify
- Malformed stored hashes verify as a mismatch, never raise
"""

import bcrypt
import pytest

from auth.passwords import DEFAULT_COST, hash_password, verify_password


class TestHashPassword:
    def test_hash_verifies_against_original(self) -> None:
        hashed = hash_password("Secret123", cost=4)
        assert verify_password("Secret123", hashed)

    def test_wrong_password_rejected(self) -> None:
        hashed = hash_password("Secret123", cost=4)
        assert not verify_password("Secret124", hashed)

    def test_same_password_hashes_differently(self) -> None:
        """A fresh salt per call: equal inputs never produce equal hashes."""
        assert hash_password("Secret123", cost=4) != hash_password("Secret123", cost=4)

    def test_cost_is_encoded_in_hash(self) -> None:
        hashed = hash_password("pw", cost=5)
        assert hashed.startswith("$2b$05$")

    def test_non_positive_cost_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = []
        real_gensalt = bcrypt.gensalt

        def spy(rounds: int = 12, prefix: bytes = b"2b") -> bytes:
            seen.append(rounds)
            return real_gensalt(rounds=4, prefix=prefix)

        monkeypatch.setattr(bcrypt, "gensalt", spy)
        hash_password("pw", cost=0)
        hash_password("pw", cost=-3)
        assert seen == [DEFAULT_COST, DEFAULT_COST]

    @pytest.mark.parametrize("cost", [3, 32])
    def test_out_of_range_cost_raises(self, cost: int) -> None:
        with pytest.raises(ValueError):
            hash_password("pw", cost=cost)

    def test_empty_password_hashes(self) -> None:
        hashed = hash_password("", cost=4)
        assert verify_password("", hashed)
        assert not verify_password("x", hashed)


class TestVerifyPassword:
    def test_password_truncated_at_72_bytes(self) -> None:
        """Bytes past 72 are ignored on both sides, so long passwords never raise."""
        base = "a" * 72
        hashed = hash_password(base + "first-suffix", cost=4)
        assert verify_password(base + "other-suffix", hashed)
        assert verify_password(base, hashed)

    def test_malformed_hash_is_mismatch(self) -> None:
        assert verify_password("pw", "not-a-bcrypt-hash") is False

    def test_unicode_password(self) -> None:
        hashed = hash_password("pässwörd-日本", cost=4)
        assert verify_password("pässwörd-日本", hashed)
