from fastapi import APIRouter, Depends, Query
from database import get_ledger
from services.ledger import Ledger

router = APIRouter()

@router.get("/leaderboard")
async def leaderboard(type: str = Query("trophies", pattern="^(trophies|wins|xp)$"),
                      ledger: Ledger = Depends(get_ledger)):
    async with ledger.transaction() as tx:
        rows = await tx.top_players(type, 10)
    return {"success": True, "players": rows}
