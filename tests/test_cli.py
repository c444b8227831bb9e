"""
tests/test_cli.py -- Tests for the operator CLI in main.py.

Each test points the CLI at a throwaway SQLite file via --database-url and
inspects both the exit code and the durable state it leaves behind.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from auth.ledger import LockoutLedger
from auth.store import PrincipalStore
from auth.tokens import verify_secret
from main import main


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(db_url, *args):
    return main(["--database-url", db_url, *args])


def _open(db_url):
    return PrincipalStore(db_url)


class TestCreateAdmin:
    def test_creates_principal_with_hashed_secret(self, db_url, capsys):
        assert _run(db_url, "create-admin", "Ops@Example.com", "--secret", "long-enough-1") == 0
        assert "Created admin 'ops@example.com'" in capsys.readouterr().out

        store = _open(db_url)
        try:
            principal = store.get_by_identifier("ops@example.com")
            assert principal.role == "admin"
            assert principal.hashed_secret != "long-enough-1"
            assert verify_secret("long-enough-1", principal.hashed_secret)
        finally:
            store.close()

    def test_duplicate_is_rejected(self, db_url, capsys):
        assert _run(db_url, "create-admin", "ops@example.com", "--secret", "long-enough-1") == 0
        assert _run(db_url, "create-admin", "OPS@example.com", "--secret", "long-enough-2") == 1
        assert "already exists" in capsys.readouterr().out

    def test_short_secret_is_rejected(self, db_url, capsys):
        assert _run(db_url, "create-admin", "ops@example.com", "--secret", "short") == 1
        assert "at least 8 characters" in capsys.readouterr().out

    def test_prompted_secrets_must_match(self, db_url, capsys):
        with patch("main.getpass.getpass", side_effect=["long-enough-1", "long-enough-2"]):
            assert _run(db_url, "create-admin", "ops@example.com") == 1
        assert "do not match" in capsys.readouterr().out

    def test_prompted_secret(self, db_url):
        with patch("main.getpass.getpass", side_effect=["long-enough-1", "long-enough-1"]):
            assert _run(db_url, "create-admin", "ops@example.com") == 0

    def test_blank_identifier(self, db_url, capsys):
        assert _run(db_url, "create-admin", "   ", "--secret", "long-enough-1") == 1
        assert "must not be blank" in capsys.readouterr().out


class TestStatusAndUnlock:
    @pytest.fixture
    def locked(self, db_url):
        assert _run(db_url, "create-admin", "ops@example.com", "--secret", "long-enough-1") == 0
        store = _open(db_url)
        try:
            ledger = LockoutLedger(store)
            principal = store.get_by_identifier("ops@example.com")
            for _ in range(5):
                principal = ledger.record_failure(principal)
        finally:
            store.close()

    def test_status_shows_lock(self, db_url, locked, capsys):
        capsys.readouterr()
        assert _run(db_url, "status", "ops@example.com") == 0
        out = capsys.readouterr().out
        assert "Failed attempts: 5" in out
        assert "(30 min)" in out
        assert "Last login:      never" in out

    def test_unlock_clears_lock(self, db_url, locked, capsys):
        assert _run(db_url, "unlock", "ops@example.com") == 0
        capsys.readouterr()
        assert _run(db_url, "status", "ops@example.com") == 0
        out = capsys.readouterr().out
        assert "Failed attempts: 0" in out
        assert "Locked until:    -" in out

    @pytest.mark.parametrize("command", ["status", "unlock"])
    def test_unknown_principal(self, db_url, command, capsys):
        assert _run(db_url, command, "nobody@example.com") == 1
        assert "No principal named" in capsys.readouterr().out


def test_store_error_exits_2(db_url, capsys):
    with patch("main.PrincipalStore.get_by_identifier", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        assert _run(db_url, "status", "ops@example.com") == 2
    assert "Credential store error" in capsys.readouterr().out
