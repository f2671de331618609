import hmac, hashlib, json, logging, time
from typing import Optional
from urllib.parse import parse_qsl
from fastapi import Request, HTTPException
from jose import jwt, JWTError
from config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

def verify_telegram_init_data(init_data: str) -> dict | None:
    """Check a Telegram WebApp initData string and return its ``user`` object.

    Returns None when the bot token is unset, the hash is missing or wrong,
    or ``auth_date`` is older than INIT_DATA_MAX_AGE seconds.
    """
    if not init_data or not settings.TELEGRAM_BOT_TOKEN:
        return None
    vals = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = vals.pop('hash', None)
    if not received_hash:
        return None
    data_check = '\n'.join(f'{k}={v}' for k, v in sorted(vals.items()))
    secret_key = hmac.new(b'WebAppData', settings.TELEGRAM_BOT_TOKEN.encode(), hashlib.sha256).digest()
    computed   = hmac.new(secret_key, data_check.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(computed, received_hash):
        return None
    if settings.INIT_DATA_MAX_AGE:
        try:
            auth_date = int(vals.get('auth_date', 0))
        except ValueError:
            return None
        if time.time() - auth_date > settings.INIT_DATA_MAX_AGE:
            return None
    try:
        return json.loads(vals.get('user') or '{}')
    except ValueError:
        return None

def issue_session_token(uid: str) -> str:
    return jwt.encode(
        {"sub": uid, "exp": int(time.time()) + settings.SESSION_TTL_SECONDS},
        settings.SECRET_KEY, algorithm=ALGORITHM
    )

def _bearer_claims(request: Request) -> Optional[dict]:
    auth = request.headers.get('Authorization', '')
    if not auth.startswith('Bearer '):
        return None
    try:
        return jwt.decode(auth[7:], settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

def _unauthorized(message: str) -> HTTPException:
    return HTTPException(status_code=401, detail={"error": "unauthorized", "message": message})

def authenticate(request: Request, init_data: Optional[str], uid: Optional[str] = None) -> str:
    """Resolve the calling player, rejecting with 401 before any store access.

    Sources in order: signed initData, a session token, X-User-Id in DEV_MODE.
    A signed identity that differs from ``uid`` is rejected.
    """
    signed_uid = None
    if init_data:
        user = verify_telegram_init_data(init_data)
        if user is None:
            logger.warning("rejected initData for uid=%s", uid)
            raise _unauthorized("Telegram signature check failed")
        if 'id' in user:
            signed_uid = str(user['id'])
    else:
        claims = _bearer_claims(request)
        if claims and claims.get('sub'):
            signed_uid = str(claims['sub'])
        elif settings.DEV_MODE and request.headers.get('X-User-Id'):
            signed_uid = request.headers['X-User-Id']
        else:
            raise _unauthorized("Authorization required")

    if uid is None:
        if signed_uid is None:
            raise _unauthorized("Authorization required")
        return signed_uid
    if signed_uid is not None and signed_uid != str(uid):
        logger.warning("uid mismatch: body=%s signed=%s", uid, signed_uid)
        raise _unauthorized("uid does not match the signed user")
    return str(uid)

async def get_current_user_id(request: Request) -> str:
    return authenticate(request, request.headers.get('X-Tg-Init-Data'))

async def require_referee(request: Request) -> dict:
    claims = _bearer_claims(request)
    if not claims or claims.get('role') != 'referee':
        raise _unauthorized("Referee token required")
    return claims
