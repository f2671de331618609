from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import Field
from redis.asyncio import Redis
from config import settings
from database import get_ledger
from middleware.rate_limit import claim_cooldown, enforce_rate_limit
from middleware.tg_auth import authenticate, get_current_user_id, require_referee
from redis_client import get_redis
from routes.schemas import WireModel
from services.ledger import Ledger
from services import wager_service

router = APIRouter()

class AmountRequest(WireModel):
    uid: str
    amount: int
    init_data: str = Field("", alias="initData")

class AdRewardRequest(WireModel):
    uid: str
    init_data: str = Field("", alias="initData")

class RecordWinRequest(WireModel):
    uid: str
    balls_pocketed: int = Field(0, alias="ballsPocketed")
    game_mode: Optional[str] = Field(None, alias="gameMode")
    init_data: str = Field("", alias="initData")

# Server-side failure path only; players cannot credit themselves
@router.post("/refund", dependencies=[Depends(require_referee)])
async def refund(body: AmountRequest, ledger: Ledger = Depends(get_ledger)):
    await wager_service.refund(ledger, body.uid, body.amount)
    return {"success": True}

@router.post("/deduct-balance")
async def deduct_balance(body: AmountRequest, request: Request,
                         ledger: Ledger = Depends(get_ledger), redis: Redis = Depends(get_redis)):
    uid = authenticate(request, body.init_data, body.uid)
    await enforce_rate_limit(redis, uid)
    balance = await wager_service.deduct(ledger, uid, body.amount)
    return {"success": True, "newBalance": balance}

@router.post("/ad-reward")
async def ad_reward(body: AdRewardRequest, request: Request,
                    ledger: Ledger = Depends(get_ledger), redis: Redis = Depends(get_redis)):
    uid = authenticate(request, body.init_data, body.uid)
    await enforce_rate_limit(redis, uid)
    await claim_cooldown(redis, "ad_reward", uid, settings.AD_REWARD_COOLDOWN_SECONDS)
    balance = await wager_service.credit_ad_reward(ledger, uid)
    return {"success": True, "newBalance": balance}

@router.post("/record-win")
async def record_win(body: RecordWinRequest, request: Request,
                     ledger: Ledger = Depends(get_ledger), redis: Redis = Depends(get_redis)):
    uid = authenticate(request, body.init_data, body.uid)
    await enforce_rate_limit(redis, uid)
    reward, xp = await wager_service.record_balls(ledger, uid, body.balls_pocketed, body.game_mode)
    return {"success": True, "reward": reward, "xp": xp}

@router.get("/player/profile")
async def profile(uid: str = Depends(get_current_user_id), ledger: Ledger = Depends(get_ledger)):
    async with ledger.transaction() as tx:
        player = await tx.get_player(uid, lock=False)
    if not player:
        raise HTTPException(404, {"error": "player_not_found", "message": "User not found"})
    return {
        "success":  True,
        "uid":      player["id"],
        "balance":  player["balance"],
        "trophies": player["trophies"],
        "xp":       player["xp"],
        "wins":     player["wins"],
    }

@router.get("/player/transactions")
async def transactions(limit: int = Query(10, ge=1, le=50),
                       uid: str = Depends(get_current_user_id),
                       ledger: Ledger = Depends(get_ledger)):
    async with ledger.transaction() as tx:
        rows = await tx.recent_transactions(uid, limit)
    return {"success": True, "transactions": rows}
