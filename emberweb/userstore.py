"""User accounts for login and registration, in memory or in SQLite."""

from __future__ import annotations

import sqlite3
import threading
from typing import Dict, Iterator, Optional, Tuple

from emberweb import log

DEFAULT_DB_PATH = "resources/users.db"


def _read_accounts(path: str) -> Iterator[Tuple[str, str]]:
    """Yield (name, password) pairs; blank lines and '#' comments are skipped."""
    with open(path, encoding="utf-8") as handle:
        for raw in handle:
            line = raw.rstrip("\n")
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) < 2:
                continue
            yield fields[0], fields[1]


class UserStore:
    """Thread-safe in-memory table of user names and passwords."""

    def __init__(self) -> None:
        self._users: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load_from_file(self, path: Optional[str]) -> int:
        """Load ``username password`` lines from ``path``; return how many were read."""
        if path is None:
            return 0
        count = 0
        try:
            for name, pwd in _read_accounts(path):
                with self._lock:
                    self._users[name] = pwd
                count += 1
        except OSError:
            log.warn("UserStore: cannot open %s, starting with empty user table.", path)
            return 0
        log.info("UserStore: loaded %d user(s) from %s", count, path)
        return count

    def verify(self, name: str, password: str, is_login: bool) -> bool:
        """Log in (check the password) or register (add a new name)."""
        if not name or not password:
            return False
        with self._lock:
            if is_login:
                stored = self._users.get(name)
                if stored is None:
                    log.debug("UserStore: login failed, user '%s' not found.", name)
                    return False
                if stored != password:
                    log.debug("UserStore: login failed, wrong password for '%s'.", name)
                    return False
                log.debug("UserStore: user '%s' logged in.", name)
                return True
            if name in self._users:
                log.debug("UserStore: register failed, '%s' already exists.", name)
                return False
            self._users[name] = password
            log.debug("UserStore: user '%s' registered (in-memory).", name)
            return True


class SqliteUserStore:
    """User table kept in an SQLite database file."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            db_path, check_same_thread=False
        )
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS users("
                "  username TEXT PRIMARY KEY,"
                "  password TEXT NOT NULL"
                ");"
            )

    def load_from_file(self, path: Optional[str]) -> int:
        """Import accounts from ``path``, keeping existing ones; return lines imported."""
        with self._lock:
            conn = self._require_conn()
            if path is None:
                log.info("UserStore(sqlite): opened %s, no conf to import.", self._db_path)
                return 0
            count = 0
            try:
                with conn:
                    for name, pwd in _read_accounts(path):
                        conn.execute(
                            "INSERT OR IGNORE INTO users(username,password) VALUES(?,?);",
                            (name, pwd),
                        )
                        count += 1
            except OSError:
                log.warn("UserStore(sqlite): cannot open %s, skip import.", path)
                return 0
            log.info("UserStore(sqlite): imported %d user(s) from %s", count, path)
            return count

    def verify(self, name: str, password: str, is_login: bool) -> bool:
        """Log in (check the password) or register (insert a new name)."""
        if not name or not password:
            return False
        with self._lock:
            if self._conn is None:
                log.error("UserStore(sqlite): database not open.")
                return False
            conn = self._conn
            if is_login:
                row = conn.execute(
                    "SELECT password FROM users WHERE username=? LIMIT 1;", (name,)
                ).fetchone()
                ok = row is not None and row[0] == password
                log.debug("UserStore(sqlite): login '%s' -> %s", name, "ok" if ok else "fail")
                return ok
            with conn:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO users(username,password) VALUES(?,?);",
                    (name, password),
                )
            changed = cursor.rowcount > 0
            log.debug(
                "UserStore(sqlite): register '%s' -> %s", name, "ok" if changed else "exists"
            )
            return changed

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("database is closed")
        return self._conn