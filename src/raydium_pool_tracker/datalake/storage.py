"""Persistence layer for reconciled pool records."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Tuple

from .schemas import Pool


class PoolStore(Protocol):
    """Interface describing pool storage backends keyed by pool address."""

    def get(self, address: str) -> Optional[Pool]:
        ...

    def upsert(self, pool: Pool) -> None:
        ...

    def list_active(self) -> List[Pool]:
        ...

    def mark_inactive(self, address: str) -> bool:
        ...


CREATE_POOL_TABLE = """
CREATE TABLE IF NOT EXISTS raydium_pools (
    address TEXT PRIMARY KEY,
    token_a_mint TEXT,
    token_b_mint TEXT,
    price TEXT,
    liquidity_a TEXT,
    liquidity_b TEXT,
    volume_24h TEXT NOT NULL DEFAULT '0',
    last_update TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);
"""

CREATE_POOL_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_raydium_pools_active ON raydium_pools (active, last_update)",
    "CREATE INDEX IF NOT EXISTS idx_raydium_pools_token_a ON raydium_pools (token_a_mint)",
    "CREATE INDEX IF NOT EXISTS idx_raydium_pools_token_b ON raydium_pools (token_b_mint)",
)

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER NOT NULL
);
"""

SCHEMA_VERSION = 2

_POOL_COLUMNS = (
    "address, token_a_mint, token_b_mint, price, liquidity_a, liquidity_b, "
    "volume_24h, last_update, active"
)


def _dec(value: Optional[str]) -> Optional[Decimal]:
    return None if value is None else Decimal(value)


def _text(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _row_to_pool(row: Tuple) -> Pool:
    return Pool(
        address=row[0],
        token_a_mint=row[1],
        token_b_mint=row[2],
        price=_dec(row[3]),
        liquidity_a=_dec(row[4]),
        liquidity_b=_dec(row[5]),
        volume_24h=_dec(row[6]) or Decimal(0),
        last_update=datetime.fromisoformat(row[7]),
        active=bool(row[8]),
    )


class SQLitePoolStore:
    """SQLite-backed pool store; numeric fields are stored as decimal text."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = Path(database_path).resolve()
        self._initialize()

    @property
    def database_path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute(CREATE_POOL_TABLE)
            con.execute(CREATE_SCHEMA_VERSION_TABLE)
            self._apply_migrations(con)
            con.commit()

    def _apply_migrations(self, con: sqlite3.Connection) -> None:
        current = self._get_schema_version(con)
        if current == 0:
            self._set_schema_version(con, 1)
            current = 1
        if current < 2:
            self._migrate_to_v2(con)
            current = 2
        if current != SCHEMA_VERSION:
            self._set_schema_version(con, SCHEMA_VERSION)

    def _get_schema_version(self, con: sqlite3.Connection) -> int:
        cur = con.execute("SELECT version FROM schema_migrations ORDER BY ROWID DESC LIMIT 1")
        row = cur.fetchone()
        if row is None:
            return 0
        try:
            return int(row[0])
        except (TypeError, ValueError):  # pragma: no cover
            return 0

    def _set_schema_version(self, con: sqlite3.Connection, version: int) -> None:
        con.execute("DELETE FROM schema_migrations")
        con.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))

    def _migrate_to_v2(self, con: sqlite3.Connection) -> None:
        for statement in CREATE_POOL_INDEXES:
            con.execute(statement)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path)
        try:
            yield con
        finally:
            con.close()

    def get(self, address: str) -> Optional[Pool]:
        with self._connect() as con:
            cur = con.execute(
                f"SELECT {_POOL_COLUMNS} FROM raydium_pools WHERE address = ?",
                (address,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return _row_to_pool(row)

    def upsert(self, pool: Pool) -> None:
        """Insert or update a pool. An existing inactive row is never reactivated."""

        with self._connect() as con:
            con.execute(
                f"""
                INSERT INTO raydium_pools ({_POOL_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    token_a_mint = excluded.token_a_mint,
                    token_b_mint = excluded.token_b_mint,
                    price = excluded.price,
                    liquidity_a = excluded.liquidity_a,
                    liquidity_b = excluded.liquidity_b,
                    volume_24h = excluded.volume_24h,
                    last_update = excluded.last_update,
                    active = MIN(raydium_pools.active, excluded.active)
                """,
                (
                    pool.address,
                    pool.token_a_mint,
                    pool.token_b_mint,
                    _text(pool.price),
                    _text(pool.liquidity_a),
                    _text(pool.liquidity_b),
                    _text(pool.volume_24h) or "0",
                    pool.last_update.isoformat(),
                    1 if pool.active else 0,
                ),
            )
            con.commit()

    def list_active(self) -> List[Pool]:
        with self._connect() as con:
            cur = con.execute(
                f"SELECT {_POOL_COLUMNS} FROM raydium_pools WHERE active = 1 ORDER BY last_update DESC"
            )
            rows = cur.fetchall()
        return [_row_to_pool(row) for row in rows]

    def list_recent_active(self, since: datetime) -> List[Pool]:
        """Return active pools updated strictly after ``since``."""

        return [pool for pool in self.list_active() if pool.last_update > since]

    def list_by_token(self, mint: str) -> List[Pool]:
        with self._connect() as con:
            cur = con.execute(
                f"""
                SELECT {_POOL_COLUMNS} FROM raydium_pools
                WHERE token_a_mint = ? OR token_b_mint = ?
                ORDER BY last_update DESC
                """,
                (mint, mint),
            )
            rows = cur.fetchall()
        return [_row_to_pool(row) for row in rows]

    def mark_inactive(self, address: str) -> bool:
        """Deactivate a pool; returns False when no such pool exists."""

        with self._connect() as con:
            cur = con.execute(
                "UPDATE raydium_pools SET active = 0 WHERE address = ?",
                (address,),
            )
            con.commit()
            return cur.rowcount > 0


__all__ = ["PoolStore", "SQLitePoolStore"]
