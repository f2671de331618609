import asyncpg
from config import settings
from services.ledger import Ledger, PostgresLedger

_pool: asyncpg.Pool = None

async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(settings.DATABASE_URL, min_size=2, max_size=10)
    return _pool

async def get_ledger() -> Ledger:
    return PostgresLedger(await get_pool())

async def close_pool():
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None

async def create_tables():
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS players (
                id          VARCHAR(64) PRIMARY KEY,
                balance     BIGINT DEFAULT 0 CHECK (balance >= 0),
                trophies    INT DEFAULT 0,
                xp          INT DEFAULT 0,
                wins        INT DEFAULT 0,
                last_played TIMESTAMPTZ,
                created_at  TIMESTAMPTZ DEFAULT NOW()
            );
            CREATE TABLE IF NOT EXISTS matches (
                id           VARCHAR(64) PRIMARY KEY,
                uid          VARCHAR(64) REFERENCES players(id),
                bet          BIGINT CHECK (bet > 0),
                status       VARCHAR(16) DEFAULT 'active',
                winner       VARCHAR(64),
                payout       BIGINT,
                start_time   TIMESTAMPTZ DEFAULT NOW(),
                completed_at TIMESTAMPTZ
            );
            CREATE INDEX IF NOT EXISTS matches_active_idx
                ON matches(start_time) WHERE status = 'active';
            CREATE TABLE IF NOT EXISTS transactions (
                id          SERIAL PRIMARY KEY,
                player_id   VARCHAR(64) REFERENCES players(id),
                type        VARCHAR(32),
                amount      BIGINT,
                description VARCHAR(128),
                match_id    VARCHAR(64),
                created_at  TIMESTAMPTZ DEFAULT NOW()
            );
        ''')
