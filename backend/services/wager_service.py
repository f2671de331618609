"""Match wagers and player credits.

Each public coroutine is one ledger transaction: either every write it makes
commits, or none does.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Tuple

from config import settings
from services.ledger import Ledger, LedgerTx

logger = logging.getLogger(__name__)

ACTIVE, COMPLETED, EXPIRED = "active", "completed", "expired"
PRACTICE_MODES = ("ai", "practice")


class WagerError(Exception):
    code = "wager_error"
    message = "Request rejected"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidAmount(WagerError):
    code = "invalid_amount"
    message = "Amount must be a positive whole number"


class PlayerNotFound(WagerError):
    code = "player_not_found"
    message = "User not found"


class InsufficientFunds(WagerError):
    code = "insufficient_funds"
    message = "Not enough balance"


class MatchNotFound(WagerError):
    code = "match_not_found"
    message = "Invalid match"


class MatchNotActive(WagerError):
    code = "match_not_active"
    message = "Match is no longer active"


class ResultPending(WagerError):
    code = "result_pending"
    message = "Match result has not been declared yet"


@dataclass
class Settlement:
    winnings: int
    trophies: int
    xp: int
    is_winner: bool


def calc_payout(bet: int) -> int:
    return int((Decimal(bet) * Decimal(str(settings.WIN_MULTIPLIER))).to_integral_value(ROUND_FLOOR))


def _check_amount(amount, low: int = 1, high: int = None):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < low:
        raise InvalidAmount()
    if high is not None and amount > high:
        raise InvalidAmount(f"Amount must not exceed {high}")


async def _debit(tx: LedgerTx, uid: str, amount: int) -> int:
    player = await tx.get_player(uid)
    if not player:
        raise PlayerNotFound()
    if player["balance"] < amount:
        raise InsufficientFunds()
    row = await tx.increment_player(uid, balance=-amount)
    return row["balance"]


async def start_match(ledger: Ledger, uid: str, bet: int) -> str:
    _check_amount(bet, settings.MIN_BET, settings.MAX_BET)
    match_id = str(uuid.uuid4())

    async def _tx(tx: LedgerTx):
        await _debit(tx, uid, bet)
        await tx.create_match(match_id, uid, bet)
        await tx.log(uid, "bet", -bet, "Match wager", match_id)

    await ledger.run(_tx)
    logger.info("match %s started: uid=%s bet=%d", match_id, uid, bet)
    return match_id


async def validate_win(ledger: Ledger, uid: str, match_id: str) -> Settlement:
    """Settle an active match for its owner.

    The winner is the referee-declared one when present. Without a declared
    result the owner is paid, unless REQUIRE_DECLARED_RESULT is set.
    """
    async def _tx(tx: LedgerTx) -> Settlement:
        match = await tx.get_match(match_id)
        if not match or match["uid"] != uid:
            raise MatchNotFound()
        if match["status"] != ACTIVE:
            raise MatchNotActive()

        winner = match["winner"]
        if winner is None:
            if settings.REQUIRE_DECLARED_RESULT:
                raise ResultPending()
            winner = uid

        if winner == uid:
            result = Settlement(calc_payout(match["bet"]), settings.WIN_TROPHIES, settings.WIN_XP, True)
        else:
            result = Settlement(0, settings.LOSS_TROPHIES, settings.LOSS_XP, False)

        await tx.increment_player(
            uid,
            balance=result.winnings,
            trophies=result.trophies,
            xp=result.xp,
            wins=1 if result.is_winner else 0,
            touch=True,
        )
        await tx.settle_match(match_id, COMPLETED, result.winnings)
        if result.winnings:
            await tx.log(uid, "win", result.winnings, "Match winnings", match_id)
        return result

    result = await ledger.run(_tx)
    logger.info("match %s settled: uid=%s winner=%s payout=%d",
                match_id, uid, result.is_winner, result.winnings)
    return result


async def declare_result(ledger: Ledger, match_id: str, winner: str) -> None:
    async def _tx(tx: LedgerTx):
        match = await tx.get_match(match_id)
        if not match:
            raise MatchNotFound()
        if match["status"] != ACTIVE or match["winner"] is not None:
            raise MatchNotActive("Match result is already final")
        if winner != match["uid"] and await tx.get_player(winner, lock=False) is None:
            raise PlayerNotFound("Winner is not a known player")
        await tx.set_winner(match_id, winner)

    await ledger.run(_tx)
    logger.info("match %s result declared: winner=%s", match_id, winner)


async def refund(ledger: Ledger, uid: str, amount: int) -> None:
    """Credit ``amount`` back to a player. Callers must be server-trusted."""
    _check_amount(amount, low=0)

    async def _tx(tx: LedgerTx):
        await tx.increment_player(uid, balance=amount)
        if amount:
            await tx.log(uid, "refund", amount, "Refund")

    await ledger.run(_tx)
    logger.info("refunded %d to %s", amount, uid)


async def deduct(ledger: Ledger, uid: str, amount: int) -> int:
    _check_amount(amount)

    async def _tx(tx: LedgerTx) -> int:
        balance = await _debit(tx, uid, amount)
        await tx.log(uid, "deduct", -amount, "Balance deduction")
        return balance

    return await ledger.run(_tx)


async def credit_ad_reward(ledger: Ledger, uid: str) -> int:
    async def _tx(tx: LedgerTx) -> int:
        row = await tx.increment_player(uid, balance=settings.AD_REWARD)
        await tx.log(uid, "ad_reward", settings.AD_REWARD, "Ad reward")
        return row["balance"]

    return await ledger.run(_tx)


def ball_rewards(balls: int, game_mode: str = None) -> Tuple[int, int]:
    if game_mode and any(m in game_mode for m in PRACTICE_MODES):
        return balls * settings.PRACTICE_BALL_REWARD, balls * settings.PRACTICE_BALL_XP
    return balls * settings.BALL_REWARD, balls * settings.BALL_XP


async def record_balls(ledger: Ledger, uid: str, balls: int, game_mode: str = None) -> Tuple[int, int]:
    _check_amount(balls, low=0, high=settings.MAX_BALLS_PER_GAME)
    reward, xp = ball_rewards(balls, game_mode)

    async def _tx(tx: LedgerTx):
        await tx.increment_player(uid, balance=reward, xp=xp, touch=True)
        if reward:
            await tx.log(uid, "ball_reward", reward, f"Pocketed {balls} · {game_mode or 'pvp'}")

    await ledger.run(_tx)
    return reward, xp


async def expire_stale_matches(ledger: Ledger, ttl_seconds: int = None) -> int:
    """Refund and close matches that stayed active longer than the TTL."""
    ttl = settings.MATCH_TTL_SECONDS if ttl_seconds is None else ttl_seconds

    async def _tx(tx: LedgerTx) -> int:
        stale = await tx.stale_matches(ttl)
        for match in stale:
            await tx.increment_player(match["uid"], balance=match["bet"])
            await tx.settle_match(match["id"], EXPIRED, 0)
            await tx.log(match["uid"], "expire", match["bet"], "Expired match refund", match["id"])
        return len(stale)

    count = await ledger.run(_tx)
    if count:
        logger.info("expired %d stale matches", count)
    return count
