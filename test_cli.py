import hashlib
import os

import pytest

import admin_cli
import sha256_cli
from legacy import legacy_hexdigest


ROLES_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "roles.yaml")


def test_hash_message(capsys):
    assert sha256_cli.main(["abc"]) == 0
    out = capsys.readouterr().out
    assert out.strip() == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_hash_legacy_message(capsys):
    assert sha256_cli.main(["--legacy", "admin"]) == 0
    assert capsys.readouterr().out.strip() == legacy_hexdigest("admin")


def test_hash_file_in_chunks(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(sha256_cli, "CHUNK_SIZE", 100)
    data = os.urandom(1000)
    path = tmp_path / "blob.bin"
    path.write_bytes(data)

    assert sha256_cli.main(["-f", str(path)]) == 0
    assert capsys.readouterr().out.strip() == hashlib.sha256(data).hexdigest()


def test_missing_file(tmp_path, capsys):
    assert sha256_cli.main(["-f", str(tmp_path / "nope")]) == 1
    assert "ERROR" in capsys.readouterr().err


def test_file_and_message_conflict(tmp_path, capsys):
    assert sha256_cli.main(["-f", str(tmp_path / "x"), "abc"]) == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_no_arguments_prints_usage(capsys):
    assert sha256_cli.main([]) == 1
    assert "usage" in capsys.readouterr().err.lower()


def test_check_vectors(tmp_path, capsys):
    vectors = tmp_path / "vectors.yaml"
    vectors.write_text(
        "sha256:\n"
        "  - input: abc\n"
        '    digest: "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"\n'
        "legacy:\n"
        '  - input: ""\n'
        '    digest: "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"\n',
        encoding="utf-8",
    )
    assert sha256_cli.main(["--check", str(vectors)]) == 0
    out = capsys.readouterr().out
    assert out.count("[OK]") == 2
    assert "2 passed, 0 failed" in out


def test_check_reports_mismatch(tmp_path, capsys):
    vectors = tmp_path / "vectors.yaml"
    vectors.write_text(
        "sha256:\n"
        "  - input: abc\n"
        '    digest: "' + "0" * 64 + '"\n',
        encoding="utf-8",
    )
    assert sha256_cli.main(["--check", str(vectors)]) == 1
    out = capsys.readouterr().out
    assert "[FAIL]" in out
    assert "expected " + "0" * 64 in out


def test_check_missing_vectors_file(tmp_path, capsys):
    assert sha256_cli.main(["--check", str(tmp_path / "missing.yaml")]) == 1
    assert "cannot load vectors" in capsys.readouterr().err


@pytest.fixture
def db(tmp_path):
    path = str(tmp_path / "admin.db")
    assert admin_cli.main(["--db", path, "init", "--roles", ROLES_PATH]) == 0
    return path


def test_admin_add_and_login(db, capsys):
    assert admin_cli.main(["--db", db, "add", "alice", "--role", "operator", "--password", "pw"]) == 0
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "pw"]) == 0
    assert "Logged in as alice (operator)" in capsys.readouterr().out


def test_admin_login_page_permission(db, capsys):
    admin_cli.main(["--db", db, "add", "alice", "--role", "operator", "--password", "pw"])
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "pw", "--page", "orders.edit"]) == 0
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "pw", "--page", "finance.view"]) == 1
    out = capsys.readouterr().out
    assert "orders.edit: allowed" in out
    assert "finance.view: denied" in out


def test_admin_login_wrong_password(db, capsys):
    admin_cli.main(["--db", db, "add", "alice", "--role", "viewer", "--password", "pw"])
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "nope"]) == 1
    assert "Wrong password" in capsys.readouterr().err


def test_admin_password_prompt(db, capsys, monkeypatch):
    monkeypatch.setattr(admin_cli.getpass, "getpass", lambda prompt="": "prompted")
    assert admin_cli.main(["--db", db, "add", "bob", "--role", "viewer"]) == 0
    assert admin_cli.main(["--db", db, "login", "bob"]) == 0


def test_admin_disable_and_enable(db, capsys):
    admin_cli.main(["--db", db, "add", "alice", "--role", "viewer", "--password", "pw"])
    assert admin_cli.main(["--db", db, "disable", "alice"]) == 0
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "pw"]) == 1
    assert admin_cli.main(["--db", db, "enable", "alice"]) == 0
    assert admin_cli.main(["--db", db, "login", "alice", "--password", "pw"]) == 0


def test_admin_import_legacy(db, capsys):
    digest = legacy_hexdigest("старый")
    assert admin_cli.main(["--db", db, "import", "old", "--hash", digest, "--role", "finance"]) == 0
    assert admin_cli.main(["--db", db, "login", "old", "--password", "старый"]) == 0
    capsys.readouterr()

    assert admin_cli.main(["--db", db, "list"]) == 0
    line = [l for l in capsys.readouterr().out.splitlines() if "old" in l][0]
    assert "sha256" in line


def test_admin_perms_grant_revoke(db, capsys):
    assert admin_cli.main(["--db", db, "grant", "viewer", "orders.edit"]) == 0
    capsys.readouterr()
    admin_cli.main(["--db", db, "perms", "viewer"])
    assert "orders.edit" in capsys.readouterr().out

    assert admin_cli.main(["--db", db, "revoke", "viewer", "orders.edit"]) == 0
    capsys.readouterr()
    admin_cli.main(["--db", db, "perms", "viewer"])
    assert "orders.edit" not in capsys.readouterr().out

    admin_cli.main(["--db", db, "perms", "super_admin"])
    assert "all permissions" in capsys.readouterr().out


def test_admin_unknown_role(db, capsys):
    assert admin_cli.main(["--db", db, "add", "x", "--role", "ghost", "--password", "pw"]) == 1
    assert "Unknown role" in capsys.readouterr().err


def test_admin_audit(db, capsys):
    admin_cli.main(["--db", db, "add", "alice", "--role", "viewer", "--password", "pw"])
    admin_cli.main(["--db", db, "login", "alice", "--password", "pw"])
    capsys.readouterr()
    assert admin_cli.main(["--db", db, "audit", "--limit", "5"]) == 0
    out = capsys.readouterr().out
    assert "logout" in out
    assert "login" in out


def test_hash_message_with_lone_surrogate(capsys):
    assert sha256_cli.main(["\udcff"]) == 0
    assert capsys.readouterr().out.strip() == hashlib.sha256(b"\xed\xb3\xbf").hexdigest()
    assert sha256_cli.main(["--legacy", "\udcff"]) == 0
    assert capsys.readouterr().out.strip() == legacy_hexdigest("\udcff")


@pytest.mark.parametrize(
    "content",
    [
        "- abc\n",
        "sha256:\n  input: abc\n",
        "sha256:\n  - input: abc\n",
        'sha256:\n  - digest: "' + "0" * 64 + '"\n',
        'sha256:\n  - input: null\n    digest: "' + "0" * 64 + '"\n',
        'sha256:\n  - input: 12\n    digest: "' + "0" * 64 + '"\n',
        'legacy:\n  - input: abc\n    digest: "xyz"\n',
        'sha256:\n  - input: a\n    repeat: 0\n    digest: "' + "0" * 64 + '"\n',
        'sha256:\n  - input: a\n    repeat: "3"\n    digest: "' + "0" * 64 + '"\n',
    ],
)
def test_check_rejects_malformed_vectors(tmp_path, capsys, content):
    vectors = tmp_path / "vectors.yaml"
    vectors.write_text(content, encoding="utf-8")
    assert sha256_cli.main(["--check", str(vectors)]) == 1
    captured = capsys.readouterr()
    assert "cannot load vectors" in captured.err
    assert "[OK]" not in captured.out


def test_check_null_input_is_not_hashed_as_text(tmp_path, capsys):
    """A null input must not be checked as the string 'None'."""
    none_digest = hashlib.sha256(b"None").hexdigest()
    vectors = tmp_path / "vectors.yaml"
    vectors.write_text(
        'sha256:\n  - input: null\n    digest: "' + none_digest + '"\n', encoding="utf-8"
    )
    assert sha256_cli.main(["--check", str(vectors)]) == 1
    assert "needs a string 'input'" in capsys.readouterr().err



@pytest.mark.parametrize("content", ["- admin\n", "roles:\n  ops: users.view\n"])
def test_admin_init_rejects_malformed_roles(tmp_path, capsys, content):
    roles = tmp_path / "roles.yaml"
    roles.write_text(content, encoding="utf-8")
    path = str(tmp_path / "admin.db")
    assert admin_cli.main(["--db", path, "init", "--roles", str(roles)]) == 1
    assert "ERROR" in capsys.readouterr().err
