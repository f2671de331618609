import logging
from fastapi import HTTPException
from redis.asyncio import Redis
from config import settings

logger = logging.getLogger(__name__)

async def enforce_rate_limit(redis: Redis, uid: str):
    """Fixed one-minute window per authenticated player."""
    key   = f"rl:{uid}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, 60)
    if count > settings.RATE_LIMIT_PER_MINUTE:
        logger.warning("rate limit hit: uid=%s", uid)
        raise HTTPException(429, {"error": "rate_limited", "message": "Too many requests"})

async def claim_cooldown(redis: Redis, name: str, uid: str, seconds: int):
    if not await redis.set(f"cd:{name}:{uid}", "1", nx=True, ex=seconds):
        raise HTTPException(429, {"error": f"{name}_cooldown", "message": "Please wait before trying again"})
