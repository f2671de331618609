from fastapi import APIRouter, Depends, Request
from pydantic import Field
from redis.asyncio import Redis
from database import get_ledger
from middleware.rate_limit import enforce_rate_limit
from middleware.tg_auth import authenticate, require_referee
from redis_client import get_redis
from routes.schemas import WireModel
from services.ledger import Ledger
from services.wager_service import start_match, validate_win, declare_result

router = APIRouter()

class StartMatchRequest(WireModel):
    uid: str
    bet_amount: int = Field(alias="betAmount")
    init_data: str = Field("", alias="initData")

class ValidateWinRequest(WireModel):
    uid: str
    match_id: str = Field(alias="matchId")
    init_data: str = Field("", alias="initData")

class DeclareResultRequest(WireModel):
    match_id: str = Field(alias="matchId")
    winner: str

@router.post("/start-match")
async def start_match_route(body: StartMatchRequest, request: Request,
                            ledger: Ledger = Depends(get_ledger), redis: Redis = Depends(get_redis)):
    uid = authenticate(request, body.init_data, body.uid)
    await enforce_rate_limit(redis, uid)
    match_id = await start_match(ledger, uid, body.bet_amount)
    return {"success": True, "matchId": match_id}

@router.post("/validate-win")
async def validate_win_route(body: ValidateWinRequest, request: Request,
                             ledger: Ledger = Depends(get_ledger), redis: Redis = Depends(get_redis)):
    uid = authenticate(request, body.init_data, body.uid)
    await enforce_rate_limit(redis, uid)
    result = await validate_win(ledger, uid, body.match_id)
    return {
        "success":  True,
        "isWinner": result.is_winner,
        "data": {"winnings": result.winnings, "trophies": result.trophies, "xp": result.xp},
    }

@router.post("/declare-result", dependencies=[Depends(require_referee)])
async def declare_result_route(body: DeclareResultRequest, ledger: Ledger = Depends(get_ledger)):
    await declare_result(ledger, body.match_id, body.winner)
    return {"success": True}
