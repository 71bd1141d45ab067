"""
CSRF token management.

Tokens live in an injected key-value TokenStore with expiry: an
in-memory store for tests and single-process use, and an SQLite store
when tokens must survive restarts. The manager never touches ambient
session state.
"""

import hmac
import logging
import secrets
import sqlite3
import threading
import time
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

# Default token lifetime: 2 hours
DEFAULT_TOKEN_TTL_SECONDS = 2 * 60 * 60


class CsrfTokenException(RuntimeError):
    """Raised when a submission carries a missing, expired or wrong token."""

    def __init__(self, token_id: str, message: str = "Invalid CSRF token"):
        self.token_id = token_id
        self.message = message
        super().__init__(f"{message} for '{token_id}'")


class TokenStore(Protocol):
    """Key-value storage with per-key expiry."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> bool: ...

    def expire(self, key: str, ttl_seconds: int) -> bool: ...

    def cleanup_expired(self) -> int: ...


class InMemoryTokenStore:
    """In-memory token store.

    Thread-safe for basic use.
    """

    def __init__(self):
        self._values: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        """Return the value, or None if missing or expired."""
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and time.time() >= expires_at:
                del self._values[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._values[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        with self._lock:
            return self._values.pop(key, None) is not None

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            if self.get(key) is None:
                return False
            value, _ = self._values[key]
            self._values[key] = (value, time.time() + ttl_seconds)
            return True

    def cleanup_expired(self) -> int:
        """Remove all expired keys. Returns the count of removed keys."""
        now = time.time()
        with self._lock:
            expired = [
                key for key, (_, expires_at) in self._values.items()
                if expires_at is not None and now >= expires_at
            ]
            for key in expired:
                del self._values[key]
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._values)


class SQLiteTokenStore:
    """SQLite-backed durable token store.

    Useful when tokens need to survive backend restarts without
    introducing external infrastructure.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.RLock()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS csrf_tokens (
                    token_key TEXT PRIMARY KEY,
                    token_value TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )
            conn.commit()

    def get(self, key: str) -> str | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT token_value, expires_at FROM csrf_tokens WHERE token_key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and time.time() >= float(row["expires_at"]):
                conn.execute("DELETE FROM csrf_tokens WHERE token_key = ?", (key,))
                conn.commit()
                return None
            return str(row["token_value"])

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO csrf_tokens (token_key, token_value, expires_at)
                VALUES (?, ?, ?)
                """,
                (key, value, expires_at),
            )
            conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM csrf_tokens WHERE token_key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "UPDATE csrf_tokens SET expires_at = ? WHERE token_key = ?",
                (time.time() + ttl_seconds, key),
            )
            conn.commit()
            return cursor.rowcount > 0

    def cleanup_expired(self) -> int:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM csrf_tokens WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (time.time(),),
            )
            conn.commit()
            return cursor.rowcount

    def count(self) -> int:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS c FROM csrf_tokens").fetchone()
            return int(row["c"]) if row else 0


class CsrfTokenManager:
    """Issues and checks per-form CSRF tokens.

    Args:
        store: Where tokens are kept; an InMemoryTokenStore by default.
        ttl_seconds: Token lifetime.
        namespace: Prefix for store keys.
    """

    def __init__(
        self,
        store: TokenStore | None = None,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        namespace: str = "csrf",
    ):
        self.store = store if store is not None else InMemoryTokenStore()
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace

    def _key(self, token_id: str) -> str:
        return f"{self.namespace}/{token_id}"

    def generate_token(self, token_id: str) -> str:
        """Return the current token for ``token_id``, creating one if needed."""
        existing = self.store.get(self._key(token_id))
        if existing:
            return existing
        return self.refresh_token(token_id)

    def refresh_token(self, token_id: str) -> str:
        """Replace the token for ``token_id`` with a new random one."""
        token = secrets.token_hex(32)
        self.store.set(self._key(token_id), token, self.ttl_seconds)
        logger.debug("Issued CSRF token for '%s'", token_id)
        return token

    def get_token(self, token_id: str) -> str | None:
        return self.store.get(self._key(token_id))

    def has_token(self, token_id: str) -> bool:
        return self.get_token(token_id) is not None

    def remove_token(self, token_id: str) -> bool:
        return self.store.delete(self._key(token_id))

    def is_token_valid(self, token_id: str, token: str | None) -> bool:
        """Constant-time comparison against the stored, unexpired token."""
        if not token or not isinstance(token, str):
            return False
        expected = self.store.get(self._key(token_id))
        if expected is None:
            return False
        # compare_digest rejects non-ASCII str; submitted tokens can hold anything
        return hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8", "surrogatepass"))

    def validate_token(self, token_id: str, token: str | None) -> None:
        """Raise CsrfTokenException unless the token is valid."""
        if not self.is_token_valid(token_id, token):
            logger.warning("Rejected CSRF token for '%s'", token_id)
            raise CsrfTokenException(token_id)

    def clean_expired(self) -> int:
        return self.store.cleanup_expired()
