"""
State Storage Module

Provides the abstract state store the ledger mutates and implementations
for in-memory (default, testing) and SQLite (persistence). Amounts are
stored as decimal strings where the backend cannot hold a uint256.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple, Union
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager


AllowanceKey = Tuple[str, str]


class StateStore(ABC):
    """Abstract interface for ledger state backends"""

    @abstractmethod
    def get_balance(self, account: str) -> int:
        """Balance of an account, zero if absent"""
        pass

    @abstractmethod
    def set_balance(self, account: str, amount: int) -> None:
        pass

    @abstractmethod
    def get_allowance(self, owner: str, spender: str) -> int:
        """Allowance for an (owner, spender) pair, zero if absent"""
        pass

    @abstractmethod
    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        pass

    @abstractmethod
    def iter_balances(self) -> Iterator[Tuple[str, int]]:
        """Iterate over all non-zero balances"""
        pass

    @abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for all-or-nothing state changes

        Blocks nest: an inner block that fails undoes only its own writes,
        and nothing is durable until the outermost block exits cleanly.
        """
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStateStore(StateStore):
    """In-memory state store with snapshot rollback"""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[AllowanceKey, int] = {}
        self._meta: Dict[str, str] = {}
        self._snapshots: List[tuple] = []  # one per open atomic block
        self._lock = threading.RLock()

    def get_balance(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def set_balance(self, account: str, amount: int) -> None:
        with self._lock:
            # Absent equals zero
            if amount == 0:
                self._balances.pop(account, None)
            else:
                self._balances[account] = amount

    def get_allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        with self._lock:
            if amount == 0:
                self._allowances.pop((owner, spender), None)
            else:
                self._allowances[(owner, spender)] = amount

    def iter_balances(self) -> Iterator[Tuple[str, int]]:
        with self._lock:
            items = list(self._balances.items())
        return iter(items)

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._meta[key] = value

    def begin_transaction(self) -> None:
        """Snapshot current state"""
        with self._lock:
            self._snapshots.append((dict(self._balances), dict(self._allowances), dict(self._meta)))

    def commit(self) -> None:
        """Drop the innermost snapshot, keeping its writes"""
        with self._lock:
            if self._snapshots:
                self._snapshots.pop()

    def rollback(self) -> None:
        """Restore the snapshot taken at the matching begin_transaction"""
        with self._lock:
            if self._snapshots:
                self._balances, self._allowances, self._meta = self._snapshots.pop()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStateStore(StateStore):
    """SQLite state store for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # DEFERRED isolation lets us control transaction boundaries
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0  # open atomic blocks

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create tables if missing"""
        with self._lock:
            # uint256 exceeds SQLite INTEGER, amounts are decimal TEXT
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS balances (
                    account TEXT PRIMARY KEY,
                    amount TEXT NOT NULL
                )
            """)
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS allowances (
                    owner TEXT NOT NULL,
                    spender TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    PRIMARY KEY (owner, spender)
                )
            """)
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self._connection.commit()

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            self._connection.execute(sql, params)
            # Only commit if not in transaction
            if self._depth == 0:
                self._connection.commit()

    def get_balance(self, account: str) -> int:
        with self._lock:
            row = self._connection.execute(
                "SELECT amount FROM balances WHERE account = ?", (account,)
            ).fetchone()
            return int(row['amount']) if row else 0

    def set_balance(self, account: str, amount: int) -> None:
        if amount == 0:
            self._write("DELETE FROM balances WHERE account = ?", (account,))
        else:
            self._write(
                "INSERT OR REPLACE INTO balances (account, amount) VALUES (?, ?)",
                (account, str(amount))
            )

    def get_allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            row = self._connection.execute(
                "SELECT amount FROM allowances WHERE owner = ? AND spender = ?",
                (owner, spender)
            ).fetchone()
            return int(row['amount']) if row else 0

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        if amount == 0:
            self._write(
                "DELETE FROM allowances WHERE owner = ? AND spender = ?",
                (owner, spender)
            )
        else:
            self._write(
                "INSERT OR REPLACE INTO allowances (owner, spender, amount) VALUES (?, ?, ?)",
                (owner, spender, str(amount))
            )

    def iter_balances(self) -> Iterator[Tuple[str, int]]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT account, amount FROM balances ORDER BY account"
            ).fetchall()
        return iter([(row['account'], int(row['amount'])) for row in rows])

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._connection.execute(
                "SELECT value FROM meta WHERE key = ?", (key,)
            ).fetchone()
            return row['value'] if row else None

    def set_meta(self, key: str, value: str) -> None:
        self._write("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def begin_transaction(self) -> None:
        """Start a transaction, or a savepoint when one is already open"""
        with self._lock:
            if self._depth == 0:
                if not self._connection.in_transaction:
                    self._connection.execute("BEGIN")
            else:
                self._connection.execute(f"SAVEPOINT sp_{self._depth}")
            self._depth += 1

    def commit(self) -> None:
        """Commit the transaction or release the innermost savepoint"""
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                self._connection.commit()
            else:
                self._connection.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    def rollback(self) -> None:
        """Roll back the transaction or the innermost savepoint"""
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                self._connection.rollback()
            else:
                self._connection.execute(f"ROLLBACK TO SAVEPOINT sp_{self._depth}")
                self._connection.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(backend: str = "memory", database_path: Union[str, Path] = ":memory:") -> StateStore:
    """
    Build a state store by backend name

    Args:
        backend: "memory" or "sqlite"
        database_path: SQLite database file, ignored for memory

    Raises:
        ValueError: If backend is unknown
    """
    if backend == "memory":
        return InMemoryStateStore()
    if backend == "sqlite":
        return SQLiteStateStore(database_path)
    raise ValueError(f"Unknown storage backend: {backend}")
