"""Admin accounts, password checks and role permissions on top of SQLite.

Passwords are stored as the hex digest from `digest.hexdigest`. Accounts
carried over from the dashboard keep their original digest under the
``legacy`` scheme (see `legacy.py`) until their first successful login,
which rewrites the hash as standard SHA-256.

SQLite Schema:
    - admin_users: id, username, display_name, role, status, password_hash,
      hash_scheme, created_by, created_at, updated_at, last_login_at
    - roles: role
    - role_permissions: role, page_path, can_access
    - admin_audit_logs: id, admin_id, action, details (JSON), created_at
"""

from __future__ import annotations

import hmac
import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import yaml

from digest import hexdigest
from legacy import legacy_hexdigest


SUPER_ROLE = "super_admin"
STATUSES = ("active", "inactive", "suspended")

HASH_SCHEMES: Dict[str, Callable[[str], str]] = {
    "sha256": hexdigest,
    "legacy": legacy_hexdigest,
}
DEFAULT_SCHEME = "sha256"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS admin_users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        display_name TEXT,
        role TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        password_hash TEXT NOT NULL,
        hash_scheme TEXT NOT NULL DEFAULT 'sha256',
        created_by TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_login_at TEXT
    );

    CREATE TABLE IF NOT EXISTS roles (
        role TEXT PRIMARY KEY
    );

    CREATE TABLE IF NOT EXISTS role_permissions (
        role TEXT NOT NULL,
        page_path TEXT NOT NULL,
        can_access INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (role, page_path)
    );

    CREATE TABLE IF NOT EXISTS admin_audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        admin_id TEXT,
        action TEXT NOT NULL,
        details TEXT,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_audit_admin ON admin_audit_logs(admin_id);
"""


class AdminAuthError(Exception):
    """Base class for account and login failures."""


class UnknownAdminError(AdminAuthError):
    pass


class AccountDisabledError(AdminAuthError):
    pass


class InvalidPasswordError(AdminAuthError):
    pass


class DuplicateAdminError(AdminAuthError):
    pass


class UnknownRoleError(AdminAuthError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def hash_password(password: str, scheme: str = DEFAULT_SCHEME) -> str:
    """Return the stored form of `password` under `scheme`."""
    try:
        return HASH_SCHEMES[scheme](password)
    except KeyError:
        raise ValueError(f"Unknown hash scheme: {scheme!r}") from None


def verify_password(password: str, stored_hash: str, scheme: str = DEFAULT_SCHEME) -> bool:
    """Check `password` against a stored hex digest in constant time.

    A stored value that is not 64 hex digits never matches.
    """
    stored = stored_hash.strip().lower()
    if len(stored) != 64 or not all(c in "0123456789abcdef" for c in stored):
        return False
    candidate = hash_password(password, scheme)
    return hmac.compare_digest(candidate.encode("ascii"), stored.encode("ascii"))


@dataclass
class AdminUser:
    """A logged-in admin together with the page paths their role may open."""

    id: str
    username: str
    display_name: Optional[str]
    role: str
    permissions: List[str] = field(default_factory=list)
    super_role: str = SUPER_ROLE

    def has_permission(self, page_path: str) -> bool:
        if self.role == self.super_role:
            return True
        return page_path in self.permissions


def has_permission(admin: Optional[AdminUser], page_path: str) -> bool:
    """Permission check that also covers "nobody is logged in"."""
    if admin is None:
        return False
    return admin.has_permission(page_path)


class AdminStore:
    """Admin accounts, roles and the audit trail in one SQLite database."""

    def __init__(self, path: str = ":memory:", super_role: str = SUPER_ROLE):
        self.path = path
        self.super_role = super_role
        self.conn = sqlite3.connect(path)
        self.conn.row_factory = sqlite3.Row
        self.create_schema()

    def __enter__(self) -> "AdminStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def create_schema(self) -> None:
        self.conn.executescript(_SCHEMA)
        self.conn.execute("INSERT OR IGNORE INTO roles VALUES (?)", (self.super_role,))
        self.conn.commit()

    # ------------------------------------------------------------------
    # Roles and permissions
    # ------------------------------------------------------------------

    def seed_roles(self, path: str) -> int:
        """Load a role table from YAML; returns the number of grants written.

        The file looks like ``roles.yaml``: a ``roles`` mapping of role name
        to a list of permission ids. Existing grants are kept; listed ones
        are (re-)enabled.
        """
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ValueError(f"{path} must contain a mapping, got {type(config).__name__}")

        roles = config.get("roles") or {}
        if not isinstance(roles, dict):
            raise ValueError(f"'roles' in {path} must be a mapping, got {type(roles).__name__}")

        for role, permissions in roles.items():
            if not isinstance(role, str):
                raise ValueError(f"Role names in {path} must be strings, got {role!r}")
            if permissions is not None and (
                not isinstance(permissions, list)
                or not all(isinstance(p, str) for p in permissions)
            ):
                raise ValueError(f"Permissions of role '{role}' in {path} must be a list of strings")

        rows = []
        for role, permissions in roles.items():
            self.conn.execute("INSERT OR IGNORE INTO roles VALUES (?)", (role,))
            for page_path in permissions or []:
                rows.append((role, page_path))

        self.conn.executemany(
            "INSERT INTO role_permissions (role, page_path, can_access) VALUES (?, ?, 1) "
            "ON CONFLICT(role, page_path) DO UPDATE SET can_access = 1",
            rows,
        )
        self.conn.commit()
        return len(rows)

    def roles(self) -> List[str]:
        cursor = self.conn.execute("SELECT role FROM roles ORDER BY role")
        return [row["role"] for row in cursor]

    def _require_role(self, role: str) -> None:
        row = self.conn.execute("SELECT 1 FROM roles WHERE role = ?", (role,)).fetchone()
        if row is None:
            raise UnknownRoleError(f"Unknown role: {role}")

    def permissions_for(self, role: str) -> List[str]:
        cursor = self.conn.execute(
            "SELECT page_path FROM role_permissions "
            "WHERE role = ? AND can_access = 1 ORDER BY page_path",
            (role,),
        )
        return [row["page_path"] for row in cursor]

    def grant(self, role: str, page_path: str) -> None:
        self._require_role(role)
        self.conn.execute(
            "INSERT INTO role_permissions (role, page_path, can_access) VALUES (?, ?, 1) "
            "ON CONFLICT(role, page_path) DO UPDATE SET can_access = 1",
            (role, page_path),
        )
        self.conn.commit()

    def revoke(self, role: str, page_path: str) -> None:
        self._require_role(role)
        self.conn.execute(
            "UPDATE role_permissions SET can_access = 0 WHERE role = ? AND page_path = ?",
            (role, page_path),
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _insert_admin(
        self,
        username: str,
        password_hash: str,
        scheme: str,
        role: str,
        display_name: Optional[str],
        status: str,
        created_by: Optional[str],
    ) -> str:
        self._require_role(role)
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}; expected one of {STATUSES}")

        admin_id = str(uuid.uuid4())
        now = _now()
        try:
            self.conn.execute(
                "INSERT INTO admin_users (id, username, display_name, role, status, "
                "password_hash, hash_scheme, created_by, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (admin_id, username, display_name, role, status,
                 password_hash, scheme, created_by, now, now),
            )
        except sqlite3.IntegrityError:
            raise DuplicateAdminError(f"Admin already exists: {username}") from None
        self._audit(created_by, "create_admin", {"username": username, "role": role})
        self.conn.commit()
        return admin_id

    def create_admin(
        self,
        username: str,
        password: str,
        role: str,
        display_name: Optional[str] = None,
        status: str = "active",
        created_by: Optional[str] = None,
    ) -> str:
        """Create an account and return its id. An empty password is refused."""
        if not password:
            raise ValueError("A password is required for new admins")
        return self._insert_admin(
            username, hash_password(password), DEFAULT_SCHEME, role, display_name, status, created_by
        )

    def import_admin(
        self,
        username: str,
        password_hash: str,
        role: str,
        scheme: str = "legacy",
        display_name: Optional[str] = None,
        status: str = "active",
    ) -> str:
        """Store an account whose password digest was computed elsewhere."""
        if scheme not in HASH_SCHEMES:
            raise ValueError(f"Unknown hash scheme: {scheme!r}")
        password_hash = password_hash.strip().lower()
        if len(password_hash) != 64 or any(c not in "0123456789abcdef" for c in password_hash):
            raise ValueError("password_hash must be 64 hex characters")
        return self._insert_admin(username, password_hash, scheme, role, display_name, status, None)

    def get_admin(self, username: str) -> Dict:
        row = self.conn.execute(
            "SELECT * FROM admin_users WHERE username = ?", (username,)
        ).fetchone()
        if row is None:
            raise UnknownAdminError(f"Username does not exist: {username}")
        return dict(row)

    def list_admins(self) -> List[Dict]:
        cursor = self.conn.execute(
            "SELECT id, username, display_name, role, status, hash_scheme, last_login_at "
            "FROM admin_users ORDER BY created_at, username"
        )
        return [dict(row) for row in cursor]

    def set_password(self, username: str, password: str) -> None:
        if not password:
            raise ValueError("Password must not be empty")
        admin = self.get_admin(username)
        self.conn.execute(
            "UPDATE admin_users SET password_hash = ?, hash_scheme = ?, updated_at = ? WHERE id = ?",
            (hash_password(password), DEFAULT_SCHEME, _now(), admin["id"]),
        )
        self._audit(admin["id"], "set_password")
        self.conn.commit()

    def set_status(self, username: str, status: str) -> None:
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}; expected one of {STATUSES}")
        admin = self.get_admin(username)
        self.conn.execute(
            "UPDATE admin_users SET status = ?, updated_at = ? WHERE id = ?",
            (status, _now(), admin["id"]),
        )
        self._audit(admin["id"], "set_status", {"status": status})
        self.conn.commit()

    def set_role(self, username: str, role: str) -> None:
        self._require_role(role)
        admin = self.get_admin(username)
        self.conn.execute(
            "UPDATE admin_users SET role = ?, updated_at = ? WHERE id = ?",
            (role, _now(), admin["id"]),
        )
        self._audit(admin["id"], "set_role", {"role": role})
        self.conn.commit()

    def delete_admin(self, username: str) -> None:
        admin = self.get_admin(username)
        self.conn.execute("DELETE FROM admin_users WHERE id = ?", (admin["id"],))
        self._audit(None, "delete_admin", {"username": username})
        self.conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _load_user(self, row: Dict) -> AdminUser:
        return AdminUser(
            id=row["id"],
            username=row["username"],
            display_name=row["display_name"],
            role=row["role"],
            permissions=self.permissions_for(row["role"]),
            super_role=self.super_role,
        )

    def login(self, username: str, password: str) -> AdminUser:
        """Verify credentials and return the admin with permissions loaded.

        A digest stored under the legacy scheme is replaced by a standard
        one once the password has been confirmed.
        """
        try:
            admin = self.get_admin(username)
        except UnknownAdminError:
            self._audit(None, "login_failed", {"username": username, "reason": "unknown"})
            self.conn.commit()
            raise

        if admin["status"] != "active":
            self._audit(admin["id"], "login_failed", {"username": username, "reason": "disabled"})
            self.conn.commit()
            raise AccountDisabledError(f"Account is disabled: {username}")

        if not verify_password(password, admin["password_hash"], admin["hash_scheme"]):
            self._audit(admin["id"], "login_failed", {"username": username, "reason": "password"})
            self.conn.commit()
            raise InvalidPasswordError(f"Wrong password for {username}")

        now = _now()
        if admin["hash_scheme"] != DEFAULT_SCHEME:
            self.conn.execute(
                "UPDATE admin_users SET password_hash = ?, hash_scheme = ?, updated_at = ? WHERE id = ?",
                (hash_password(password), DEFAULT_SCHEME, now, admin["id"]),
            )
            self._audit(admin["id"], "rehash", {"from": admin["hash_scheme"], "to": DEFAULT_SCHEME})

        self.conn.execute(
            "UPDATE admin_users SET last_login_at = ? WHERE id = ?", (now, admin["id"])
        )
        self._audit(admin["id"], "login", {"username": username})
        self.conn.commit()
        return self._load_user(admin)

    def logout(self, admin: Optional[AdminUser]) -> None:
        if admin is None:
            return
        self._audit(admin.id, "logout")
        self.conn.commit()

    def restore(self, admin_id: str) -> Optional[AdminUser]:
        """Rebuild a session from a saved admin id.

        Returns None if the account no longer exists or is not active.
        """
        row = self.conn.execute("SELECT * FROM admin_users WHERE id = ?", (admin_id,)).fetchone()
        if row is None or row["status"] != "active":
            return None
        return self._load_user(dict(row))

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def _audit(self, admin_id: Optional[str], action: str, details: Optional[Dict] = None) -> None:
        self.conn.execute(
            "INSERT INTO admin_audit_logs (admin_id, action, details, created_at) VALUES (?, ?, ?, ?)",
            (admin_id, action, json.dumps(details, ensure_ascii=False) if details else None, _now()),
        )

    def audit_log(self, limit: int = 50) -> List[Dict]:
        """Newest entries first, with `details` decoded."""
        cursor = self.conn.execute(
            "SELECT * FROM admin_audit_logs ORDER BY id DESC LIMIT ?", (limit,)
        )
        entries = []
        for row in cursor:
            entry = dict(row)
            entry["details"] = json.loads(entry["details"]) if entry["details"] else None
            entries.append(entry)
        return entries
