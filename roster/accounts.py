"""
Accounts, approval and bearer sessions.

The first account ever registered (or one using ROSTER_ADMIN_EMAIL) becomes
an approved admin. Everyone else registers as a pending user and cannot sign
in until an admin approves them.

Token Format:
  - User-visible: rst_<64-char-hex>
  - Storage: SHA-256 hash only (never plaintext)

Example:
    service = AccountService()
    account = service.register("Ana", "ana@example.com", "s3cret")
    account, token = service.login("ana@example.com", "s3cret")
    service.authenticate(token)
"""

import hashlib
import hmac
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path

from roster import config
from roster import db as db_module
from roster.errors import (
    InputQualityError,
    InvalidCredentialsError,
    NotFoundError,
    PendingApprovalError,
    PermissionDeniedError,
    StorageError,
)
from roster.models import Account, new_id, now_iso

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_USER = "user"

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str, iterations: int | None = None) -> str:
    """Salted PBKDF2-SHA256, stored as pbkdf2_sha256$<iterations>$<salt>$<hash>."""
    iterations = iterations or config.PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=row["role"],
        is_approved=bool(row["is_approved"]),
        created_at=row["created_at"],
    )


class AccountService:
    """Registration, login, sessions and admin approval."""

    TOKEN_PREFIX = "rst_"

    def __init__(
        self,
        db_path: str | Path | None = None,
        admin_email: str | None = None,
        session_ttl_hours: int | None = None,
        password_iterations: int | None = None,
    ):
        self.db_path = Path(db_path) if db_path else db_module.get_db_path()
        self.admin_email = (admin_email if admin_email is not None else config.ADMIN_EMAIL).lower()
        self.session_ttl = timedelta(hours=session_ttl_hours or config.SESSION_TTL_HOURS)
        self.password_iterations = password_iterations
        db_module.init_db(self.db_path)

    @contextmanager
    def _get_conn(self):
        try:
            with db_module.get_connection(self.db_path) as conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise StorageError(f"Account storage failed: {e}") from e

    # ==================== Registration / sessions ====================

    def register(self, name: str, email: str, password: str) -> Account:
        """
        Create an account.

        Raises:
            InputQualityError: missing name/e-mail, short password, or e-mail already registered
        """
        name = " ".join((name or "").split())
        email = (email or "").strip().lower()
        if not name:
            raise InputQualityError("Name is required")
        if "@" not in email:
            raise InputQualityError(f"Invalid e-mail address: {email!r}")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise InputQualityError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        password_hash = hash_password(password, self.password_iterations)
        now = now_iso()
        try:
            with self._get_conn() as conn:
                # BEGIN IMMEDIATE so two first registrations cannot both become admin.
                conn.execute("BEGIN IMMEDIATE")
                is_first = conn.execute("SELECT COUNT(*) FROM accounts").fetchone()[0] == 0
                is_admin = is_first or (self.admin_email and email == self.admin_email)
                account = Account(
                    id=new_id(),
                    email=email,
                    name=name,
                    role=ROLE_ADMIN if is_admin else ROLE_USER,
                    is_approved=bool(is_admin),
                    created_at=now,
                )
                conn.execute(
                    """
                    INSERT INTO accounts
                        (id, email, name, role, is_approved, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account.id,
                        account.email,
                        account.name,
                        account.role,
                        int(account.is_approved),
                        password_hash,
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise InputQualityError(f"E-mail already registered: {email}") from e

        logger.info(
            f"Registered account {account.id} ({account.role}, "
            f"{'approved' if account.is_approved else 'pending approval'})"
        )
        return account

    def login(self, email: str, password: str) -> tuple[Account, str]:
        """
        Verify credentials and open a session.

        Returns:
            (account, token): token is returned only once; only its hash is stored

        Raises:
            InvalidCredentialsError: unknown e-mail or wrong password
            PendingApprovalError: credentials valid but the account is not approved
        """
        email = (email or "").strip().lower()
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE email = ?", (email,)).fetchone()

        if row is None or not verify_password(password or "", row["password_hash"]):
            logger.info("Login rejected: invalid credentials")
            raise InvalidCredentialsError("Invalid e-mail or password")

        account = _account_from_row(row)
        if not account.is_approved:
            logger.info(f"Login rejected: account {account.id} pending approval")
            raise PendingApprovalError("Your account is pending approval by an administrator")

        token = f"{self.TOKEN_PREFIX}{secrets.token_hex(32)}"
        created = datetime.now(UTC)
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO sessions (token_hash, account_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (
                    _hash_token(token),
                    account.id,
                    created.isoformat(),
                    (created + self.session_ttl).isoformat(),
                ),
            )
        logger.info(f"Account {account.id} signed in")
        return account, token

    def authenticate(self, token: str) -> Account:
        """
        Resolve a bearer token to its account.

        Approval is re-checked on every call, so suspending an account locks
        out its open sessions immediately.

        Raises:
            InvalidCredentialsError: unknown or expired token, or account gone
            PendingApprovalError: account suspended / not approved
        """
        if not token:
            raise InvalidCredentialsError("Missing session token")

        with self._get_conn() as conn:
            row = conn.execute(
                """
                SELECT a.*, s.expires_at AS session_expires_at
                FROM sessions s JOIN accounts a ON a.id = s.account_id
                WHERE s.token_hash = ?
                """,
                (_hash_token(token),),
            ).fetchone()

        if row is None:
            raise InvalidCredentialsError("Invalid session token")
        if datetime.fromisoformat(row["session_expires_at"]) <= datetime.now(UTC):
            self.logout(token)
            raise InvalidCredentialsError("Session expired")

        account = _account_from_row(row)
        if not account.is_approved:
            raise PendingApprovalError("Your account is pending approval by an administrator")
        return account

    def logout(self, token: str) -> bool:
        with self._get_conn() as conn:
            result = conn.execute(
                "DELETE FROM sessions WHERE token_hash = ?", (_hash_token(token),)
            )
            return result.rowcount > 0

    def purge_expired_sessions(self) -> int:
        with self._get_conn() as conn:
            result = conn.execute(
                "DELETE FROM sessions WHERE expires_at <= ?", (datetime.now(UTC).isoformat(),)
            )
        if result.rowcount:
            logger.info(f"Purged {result.rowcount} expired sessions")
        return result.rowcount

    # ==================== Administration ====================

    def get_account(self, account_id: str) -> Account:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            raise NotFoundError("account", account_id)
        return _account_from_row(row)

    def _require_admin(self, actor: Account) -> None:
        current = self.get_account(actor.id)
        if not (current.is_admin and current.is_approved):
            logger.warning(f"Account {actor.id} attempted an admin operation")
            raise PermissionDeniedError("Administrator access required")

    def list_accounts(self, actor: Account) -> list[Account]:
        """All accounts, pending ones first, then by registration time."""
        self._require_admin(actor)
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts ORDER BY is_approved, created_at, email"
            ).fetchall()
        return [_account_from_row(r) for r in rows]

    def _set_approved(self, actor: Account, account_id: str, approved: bool) -> Account:
        self._require_admin(actor)
        with self._get_conn() as conn:
            result = conn.execute(
                "UPDATE accounts SET is_approved = ?, updated_at = ? WHERE id = ?",
                (int(approved), now_iso(), account_id),
            )
        if result.rowcount == 0:
            raise NotFoundError("account", account_id)
        logger.info(
            f"Account {account_id} {'approved' if approved else 'suspended'} by {actor.id}"
        )
        return self.get_account(account_id)

    def approve(self, actor: Account, account_id: str) -> Account:
        return self._set_approved(actor, account_id, True)

    def suspend(self, actor: Account, account_id: str) -> Account:
        if account_id == actor.id:
            raise PermissionDeniedError("Administrators cannot suspend themselves")
        return self._set_approved(actor, account_id, False)

    def delete(self, actor: Account, account_id: str) -> None:
        """Delete an account and revoke its sessions. Its directory data is left in place."""
        self._require_admin(actor)
        if account_id == actor.id:
            raise PermissionDeniedError("Administrators cannot delete themselves")
        with self._get_conn() as conn:
            conn.execute("DELETE FROM sessions WHERE account_id = ?", (account_id,))
            result = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        if result.rowcount == 0:
            raise NotFoundError("account", account_id)
        logger.warning(f"Account {account_id} deleted by {actor.id}")
