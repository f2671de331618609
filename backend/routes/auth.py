from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from database import get_ledger
from middleware.tg_auth import verify_telegram_init_data, issue_session_token
from routes.schemas import WireModel
from services.ledger import Ledger

router = APIRouter()

class TelegramAuthRequest(WireModel):
    init_data: str = Field("", alias="initData")

@router.post("/telegram")
async def auth_telegram(body: TelegramAuthRequest, ledger: Ledger = Depends(get_ledger)):
    user_data = verify_telegram_init_data(body.init_data)
    if not user_data or 'id' not in user_data:
        raise HTTPException(401, {"error": "unauthorized", "message": "Telegram signature check failed"})

    uid = str(user_data['id'])
    async with ledger.transaction() as tx:
        is_new = await tx.get_player(uid, lock=False) is None
        player = await tx.increment_player(uid, touch=True)

    return {
        "success": True,
        "token":   issue_session_token(uid),
        "uid":     uid,
        "isNew":   is_new,
        "balance": player["balance"],
    }
