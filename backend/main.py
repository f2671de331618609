import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import create_tables, close_pool
from redis_client import get_redis, close_redis
from config import settings
from logging_setup import setup_logging
from routes import admin, auth, match, player, stats
from services.expiry_worker import expiry_loop
from services.ledger import StoreUnavailable
from services.wager_service import WagerError

setup_logging(settings)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.check_production_safe()
    await create_tables()
    redis = await get_redis()
    await redis.ping()
    task = asyncio.create_task(expiry_loop())
    logger.info("Pinoy Pool API started")
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    await close_redis()
    await close_pool()
    logger.info("Pinoy Pool API stopped")

app = FastAPI(title="Pinoy Pool API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error, "message": message}, status_code=status_code)

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        return _error(exc.status_code, exc.detail.get("error", "error"), exc.detail.get("message", ""))
    return _error(exc.status_code, "error", str(exc.detail))

@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    fields = ", ".join(".".join(str(p) for p in e["loc"][1:]) for e in exc.errors())
    return _error(400, "invalid_request", f"Missing or malformed fields: {fields}")

@app.exception_handler(WagerError)
async def wager_error(request: Request, exc: WagerError):
    return _error(400, exc.code, exc.message)

@app.exception_handler(StoreUnavailable)
async def store_unavailable(request: Request, exc: StoreUnavailable):
    return _error(500, "internal_error", "Store is busy, try again")

@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Server error")

app.include_router(auth.router,   prefix="/auth",  tags=["auth"])
app.include_router(match.router,                   tags=["match"])
app.include_router(player.router,                  tags=["player"])
app.include_router(stats.router,  prefix="/stats", tags=["stats"])
app.include_router(admin.router,  prefix="/admin", tags=["admin"])

@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Pinoy Pool Server is LIVE! 🎱"

@app.get("/health")
async def health():
    return {"status": "ok"}
