"""Tests for the operator CLI in main.py.

Covers:
- keygen writes a loadable key pair to the given paths
- keygen refuses short moduli with exit code 1
- cleanup runs one sweep against the configured database
- no subcommand prints help and exits 2
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import main as cli
from auth.keys import load_key_pair
from auth.store import create_store_engine
from auth.token_store import RefreshTokenStore, RevocationLedger
from core.config import Settings


def test_keygen(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    priv, pub = tmp_path / "k" / "private.pem", tmp_path / "k" / "public.pem"
    assert cli.main(["keygen", "--private-key", str(priv), "--public-key", str(pub)]) == 0
    assert load_key_pair(priv, pub).private_key.key_size == 2048
    assert "Private key" in capsys.readouterr().out


def test_keygen_rejects_short_key(tmp_path: Path) -> None:
    priv, pub = tmp_path / "private.pem", tmp_path / "public.pem"
    assert cli.main(["keygen", "--private-key", str(priv), "--public-key", str(pub), "--bits", "1024"]) == 1
    assert not priv.exists()


def test_cleanup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = create_store_engine(db_url)
    now = datetime.now(timezone.utc)
    RefreshTokenStore(engine).save("user-1", "d" * 64, now - timedelta(days=1))
    RevocationLedger(engine).add("dead-jti", now - timedelta(minutes=1))
    engine.dispose()

    monkeypatch.setattr(cli, "get_settings", lambda: Settings(_env_file=None, database_url=db_url))
    assert cli.main(["cleanup"]) == 0
    out = capsys.readouterr().out
    assert "Deleted 1 expired refresh token(s)." in out
    assert "Deleted 1 expired blacklist" in out


def test_no_command_prints_help(capsys: pytest.CaptureFixture) -> None:
    assert cli.main([]) == 2
    assert "keygen" in capsys.readouterr().out
