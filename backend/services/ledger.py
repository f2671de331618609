"""Ledger store access.

Every balance or match mutation goes through a ``LedgerTx`` obtained from
``Ledger.transaction()``. Rows read with ``get_player``/``get_match`` are
locked until the transaction ends, so a check made on them still holds when
the write lands.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, TypeVar

import asyncpg

from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLAYER_COLUMNS = "id, balance, trophies, xp, wins, last_played"
MATCH_COLUMNS  = "id, uid, bet, status, winner, payout, start_time, completed_at"
RANKABLE       = ("trophies", "wins", "xp", "balance")


class TransientConflict(Exception):
    """The store aborted the transaction because of a concurrent writer."""


class StoreUnavailable(Exception):
    """The store could not commit the transaction within the retry budget."""


class Ledger(ABC):
    """Base class: subclasses provide ``transaction()``."""

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a ``LedgerTx``."""

    async def run(self, fn: Callable[["LedgerTx"], Awaitable[T]],
                  attempts: Optional[int] = None) -> T:
        attempts = attempts or settings.TX_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                async with self.transaction() as tx:
                    return await fn(tx)
            except TransientConflict as e:
                if attempt == attempts:
                    logger.error("transaction gave up after %d attempts: %s", attempts, e)
                    raise StoreUnavailable(str(e)) from e
                logger.warning("transaction conflict (attempt %d/%d): %s", attempt, attempts, e)
                await asyncio.sleep(0.01 * attempt)


class LedgerTx(ABC):
    """Operations available inside one ledger transaction."""

    @abstractmethod
    async def get_player(self, uid: str, lock: bool = True) -> Optional[dict]: ...
    @abstractmethod
    async def increment_player(self, uid: str, balance: int = 0, trophies: int = 0,
                               xp: int = 0, wins: int = 0, touch: bool = False) -> dict: ...
    @abstractmethod
    async def create_match(self, match_id: str, uid: str, bet: int) -> None: ...
    @abstractmethod
    async def get_match(self, match_id: str, lock: bool = True) -> Optional[dict]: ...
    @abstractmethod
    async def settle_match(self, match_id: str, status: str, payout: int) -> None: ...
    @abstractmethod
    async def set_winner(self, match_id: str, winner: str) -> None: ...
    @abstractmethod
    async def stale_matches(self, ttl_seconds: int, limit: int = 100) -> list: ...
    @abstractmethod
    async def log(self, uid: str, type: str, amount: int, description: str,
                  match_id: Optional[str] = None) -> None: ...
    @abstractmethod
    async def recent_transactions(self, uid: str, limit: int) -> list: ...
    @abstractmethod
    async def top_players(self, field: str, limit: int) -> list: ...


class PostgresTx(LedgerTx):
    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get_player(self, uid, lock=True):
        sql = f"SELECT {PLAYER_COLUMNS} FROM players WHERE id=$1"
        row = await self.conn.fetchrow(sql + (" FOR UPDATE" if lock else ""), uid)
        return dict(row) if row else None

    async def increment_player(self, uid, balance=0, trophies=0, xp=0, wins=0, touch=False):
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO players(id, balance, trophies, xp, wins, last_played)
            VALUES($1, $2, $3, $4, $5, CASE WHEN $6 THEN NOW() END)
            ON CONFLICT (id) DO UPDATE SET
                balance     = players.balance  + EXCLUDED.balance,
                trophies    = players.trophies + EXCLUDED.trophies,
                xp          = players.xp       + EXCLUDED.xp,
                wins        = players.wins     + EXCLUDED.wins,
                last_played = COALESCE(EXCLUDED.last_played, players.last_played)
            RETURNING {PLAYER_COLUMNS}
            """,
            uid, balance, trophies, xp, wins, touch
        )
        return dict(row)

    async def create_match(self, match_id, uid, bet):
        await self.conn.execute(
            "INSERT INTO matches(id, uid, bet, status) VALUES($1, $2, $3, 'active')",
            match_id, uid, bet
        )

    async def get_match(self, match_id, lock=True):
        sql = f"SELECT {MATCH_COLUMNS} FROM matches WHERE id=$1"
        row = await self.conn.fetchrow(sql + (" FOR UPDATE" if lock else ""), match_id)
        return dict(row) if row else None

    async def settle_match(self, match_id, status, payout):
        await self.conn.execute(
            "UPDATE matches SET status=$2, payout=$3, completed_at=NOW() WHERE id=$1",
            match_id, status, payout
        )

    async def set_winner(self, match_id, winner):
        await self.conn.execute("UPDATE matches SET winner=$2 WHERE id=$1", match_id, winner)

    async def stale_matches(self, ttl_seconds, limit=100):
        rows = await self.conn.fetch(
            f"""
            SELECT {MATCH_COLUMNS} FROM matches
            WHERE status='active' AND start_time < NOW() - make_interval(secs => $1)
            ORDER BY start_time
            LIMIT $2
            FOR UPDATE SKIP LOCKED
            """,
            float(ttl_seconds), limit
        )
        return [dict(r) for r in rows]

    async def log(self, uid, type, amount, description, match_id=None):
        await self.conn.execute(
            "INSERT INTO transactions(player_id, type, amount, description, match_id) "
            "VALUES($1, $2, $3, $4, $5)",
            uid, type, amount, description, match_id
        )

    async def recent_transactions(self, uid, limit):
        rows = await self.conn.fetch(
            "SELECT type, amount, description, match_id, created_at FROM transactions "
            "WHERE player_id=$1 ORDER BY created_at DESC, id DESC LIMIT $2",
            uid, limit
        )
        return [dict(r) for r in rows]

    async def top_players(self, field, limit):
        if field not in RANKABLE:
            raise ValueError(f"cannot rank by {field}")
        rows = await self.conn.fetch(
            f"SELECT id AS uid, {field} AS value, wins FROM players ORDER BY {field} DESC LIMIT $1",
            limit
        )
        return [dict(r) for r in rows]


class PostgresLedger(Ledger):
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            try:
                async with conn.transaction():
                    yield PostgresTx(conn)
            except (asyncpg.exceptions.SerializationError,
                    asyncpg.exceptions.DeadlockDetectedError) as e:
                raise TransientConflict(str(e)) from e
