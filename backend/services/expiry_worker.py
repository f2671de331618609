import asyncio
import logging

from config import settings
from database import get_ledger
from services.wager_service import expire_stale_matches

logger = logging.getLogger(__name__)

async def expiry_loop():
    ledger = await get_ledger()

    while True:
        try:
            await expire_stale_matches(ledger)
            await asyncio.sleep(settings.EXPIRY_SWEEP_SECONDS)
        except asyncio.CancelledError:
            break
        except Exception:
            logger.exception("expiry sweep failed")
            await asyncio.sleep(settings.EXPIRY_SWEEP_SECONDS)
