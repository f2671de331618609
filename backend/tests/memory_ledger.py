"""In-process ledger used by the tests.

Transactions are serialized by one lock and work on a copy of the state that
replaces the committed state only when the block exits cleanly.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from services.ledger import Ledger, LedgerTx, TransientConflict, RANKABLE


def _now():
    return datetime.now(timezone.utc)


class MemoryTx(LedgerTx):
    def __init__(self, state: dict):
        self.players = state["players"]
        self.matches = state["matches"]
        self.log_rows = state["log"]

    async def get_player(self, uid, lock=True):
        await asyncio.sleep(0)
        player = self.players.get(uid)
        return dict(player) if player else None

    async def increment_player(self, uid, balance=0, trophies=0, xp=0, wins=0, touch=False):
        player = self.players.setdefault(
            uid, {"id": uid, "balance": 0, "trophies": 0, "xp": 0, "wins": 0, "last_played": None}
        )
        player["balance"] += balance
        player["trophies"] += trophies
        player["xp"] += xp
        player["wins"] += wins
        if touch:
            player["last_played"] = _now()
        if player["balance"] < 0:
            raise AssertionError(f"balance of {uid} went negative")
        return dict(player)

    async def create_match(self, match_id, uid, bet):
        assert match_id not in self.matches
        self.matches[match_id] = {
            "id": match_id, "uid": uid, "bet": bet, "status": "active", "winner": None,
            "payout": None, "start_time": _now(), "completed_at": None,
        }

    async def get_match(self, match_id, lock=True):
        await asyncio.sleep(0)
        match = self.matches.get(match_id)
        return dict(match) if match else None

    async def settle_match(self, match_id, status, payout):
        self.matches[match_id].update(status=status, payout=payout, completed_at=_now())

    async def set_winner(self, match_id, winner):
        self.matches[match_id]["winner"] = winner

    async def stale_matches(self, ttl_seconds, limit=100):
        cutoff = _now() - timedelta(seconds=ttl_seconds)
        stale = [m for m in self.matches.values()
                 if m["status"] == "active" and m["start_time"] < cutoff]
        return [dict(m) for m in sorted(stale, key=lambda m: m["start_time"])[:limit]]

    async def log(self, uid, type, amount, description, match_id=None):
        self.log_rows.append({"player_id": uid, "type": type, "amount": amount,
                              "description": description, "match_id": match_id,
                              "created_at": _now()})

    async def recent_transactions(self, uid, limit):
        rows = [r for r in self.log_rows if r["player_id"] == uid]
        return [{k: v for k, v in r.items() if k != "player_id"} for r in reversed(rows)][:limit]

    async def top_players(self, field, limit):
        assert field in RANKABLE
        ranked = sorted(self.players.values(), key=lambda p: p[field], reverse=True)
        return [{"uid": p["id"], "value": p[field], "wins": p["wins"]} for p in ranked[:limit]]


class MemoryLedger(Ledger):
    def __init__(self):
        self.state = {"players": {}, "matches": {}, "log": []}
        self.lock = asyncio.Lock()
        self.transactions_started = 0
        self.conflicts = 0

    def seed_player(self, uid, balance=0, **fields):
        self.state["players"][uid] = {
            "id": uid, "balance": balance, "trophies": 0, "xp": 0, "wins": 0,
            "last_played": None, **fields,
        }

    def player(self, uid):
        return self.state["players"].get(uid)

    def match(self, match_id):
        return self.state["matches"].get(match_id)

    def age_match(self, match_id, seconds):
        self.state["matches"][match_id]["start_time"] -= timedelta(seconds=seconds)

    @asynccontextmanager
    async def transaction(self):
        async with self.lock:
            self.transactions_started += 1
            working = copy.deepcopy(self.state)
            yield MemoryTx(working)
            if self.conflicts:
                self.conflicts -= 1
                raise TransientConflict("simulated write conflict")
            self.state = working
