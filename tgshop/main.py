import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from tgshop.api.admin import router as admin_router
from tgshop.api.orders import router as orders_router
from tgshop.api.payment import pages_router as payment_pages_router
from tgshop.api.payment import router as payment_router
from tgshop.api.products import router as products_router
from tgshop.core.config import is_tinkoff_configured, settings
from tgshop.core.database import check_db, init_db
from tgshop.core.rate_limit import limiter
from tgshop.logging import setup_logging

setup_logging(level=logging.INFO)
log = logging.getLogger("tgshop")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("Tinkoff terminal configured: %s", "yes" if is_tinkoff_configured() else "NO (set TINKOFF_TERMINAL_KEY / TINKOFF_PASSWORD)")
    if not settings.bot_token:
        log.warning("BOT_TOKEN is not set; order notifications are disabled")
    if not settings.admin_chat_id:
        log.warning("ADMIN_CHAT_ID is not set; orders will not be relayed to the operator")
    yield


app = FastAPI(
    title="Telegram Shop API",
    description="Telegram Mini-App storefront: catalog, orders and T-Bank payments",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s detail=%s", request.url.path, exc.detail)
    return _error_response(request, 429, "Too many requests. Please wait a minute.")


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning("Request validation error (422): path=%s method=%s detail=%s", request.url.path, request.method, errs)
    first = errs[0] if errs else {}
    body = {"error": first.get("msg") or "Invalid request.", "status_code": 422, "detail": jsonable_errors(errs)}
    rid = getattr(request.state, "request_id", None)
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=422, content=body)


def jsonable_errors(errs: list) -> list:
    # ctx may carry exception instances that JSON cannot encode
    return [{k: v for k, v in e.items() if k != "ctx"} for e in errs]


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=exc)
    return _error_response(request, 500, "Unexpected server error.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(payment_router)
app.include_router(payment_pages_router)
app.include_router(admin_router)


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "ok" if check_db() else "error",
        "tinkoff_configured": is_tinkoff_configured(),
    }
