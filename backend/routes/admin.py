from typing import Optional
from fastapi import APIRouter, Depends, Query
from database import get_ledger
from middleware.tg_auth import require_referee
from services.ledger import Ledger
from services.wager_service import expire_stale_matches

router = APIRouter(dependencies=[Depends(require_referee)])

@router.post("/expire-matches")
async def expire_matches(ttl: Optional[int] = Query(None, ge=0), ledger: Ledger = Depends(get_ledger)):
    expired = await expire_stale_matches(ledger, ttl)
    return {"success": True, "expired": expired}
