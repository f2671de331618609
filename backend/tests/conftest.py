# Ensure backend is at sys.path[0] when pytest runs (from repo root or from backend dir)
import sys
from pathlib import Path

_tests_dir = Path(__file__).resolve().parent
_backend = _tests_dir.parent
for _p in (str(_backend), str(_tests_dir)):
    if _p not in sys.path:
        sys.path.insert(0, _p)

import hashlib
import hmac
import json
import time
from urllib.parse import urlencode

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt

from config import settings
from database import get_ledger
from main import app
from memory_ledger import MemoryLedger
from memory_redis import MemoryRedis
from redis_client import get_redis

BOT_TOKEN = "123456:TEST-token"


def sign_init_data(user_id, bot_token=BOT_TOKEN, auth_date=None, **extra):
    """Build initData the way the Telegram client does."""
    fields = {
        "auth_date": str(int(time.time()) if auth_date is None else auth_date),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps({"id": user_id, "first_name": "Test"}, separators=(",", ":")),
        **extra,
    }
    data_check = "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    fields["hash"] = hmac.new(secret, data_check.encode(), hashlib.sha256).hexdigest()
    return urlencode(fields)


def referee_token():
    return jwt.encode({"sub": "referee", "role": "referee", "exp": int(time.time()) + 60},
                      settings.SECRET_KEY, algorithm="HS256")


@pytest.fixture(autouse=True)
def bot_token(monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", BOT_TOKEN)
    monkeypatch.setattr(settings, "DEV_MODE", False)
    monkeypatch.setattr(settings, "REQUIRE_DECLARED_RESULT", False)
    return BOT_TOKEN


@pytest.fixture
def ledger():
    return MemoryLedger()


class Api:
    def __init__(self, ledger, redis):
        self.ledger = ledger
        self.redis = redis

    async def request(self, method, path, **kwargs):
        async def override_ledger():
            return self.ledger

        async def override_redis():
            return self.redis

        app.dependency_overrides[get_ledger] = override_ledger
        app.dependency_overrides[get_redis] = override_redis
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                return await client.request(method, path, **kwargs)
        finally:
            app.dependency_overrides.pop(get_ledger, None)
            app.dependency_overrides.pop(get_redis, None)

    async def post(self, path, json=None, **kwargs):
        return await self.request("POST", path, json=json, **kwargs)

    async def get(self, path, **kwargs):
        return await self.request("GET", path, **kwargs)


@pytest.fixture
def redis():
    return MemoryRedis()


@pytest.fixture
def api(ledger, redis):
    return Api(ledger, redis)


def referee_headers():
    return {"Authorization": f"Bearer {referee_token()}"}
