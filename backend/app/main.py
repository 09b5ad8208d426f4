import hmac
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from starlette.middleware.base import BaseHTTPMiddleware
from app.api.routes import router
from app.config import settings
from app.modules.errors import ConvoyServiceError
from app.schemas.error import ErrorResponse

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

PUBLIC_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and load the overlay catalogue at startup."""
    from app.database import init_db
    from app.modules.map_overlay import load_overlay_catalogue

    if settings.AUTO_CREATE_TABLES:
        init_db()
    load_overlay_catalogue()
    yield


app = FastAPI(
    title="ConvoyTrack",
    description="Convoy logistics tracking: convoys, their vehicles, and route map overlays.",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS origins from settings (comma-separated env var)
cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Bearer token check. If CONVOYTRACK_API_TOKEN is unset, all requests pass."""

    async def dispatch(self, request: Request, call_next):
        token = settings.CONVOYTRACK_API_TOKEN
        if token is not None and request.method != "OPTIONS" and request.url.path not in PUBLIC_PATHS:
            scheme, _, supplied = request.headers.get("Authorization", "").partition(" ")
            if scheme.lower() != "bearer" or not hmac.compare_digest(supplied.strip().encode(), token.encode()):
                return JSONResponse(
                    status_code=401,
                    content=ErrorResponse(
                        detail="Invalid or missing bearer token", code="authentication_error"
                    ).model_dump(),
                    headers={"WWW-Authenticate": "Bearer"},
                )
        return await call_next(request)


app.add_middleware(BearerTokenMiddleware)

# Rate limiting: one default limit per client address
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(router, prefix="/api")


# ── Structured error handlers ─────────────────────────────────────────────────

@app.exception_handler(ConvoyServiceError)
async def convoy_error_handler(request: Request, exc: ConvoyServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=exc.detail, code=exc.code).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(detail="; ".join(problems), code="validation_error").model_dump(),
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(
            detail=str(exc.orig) if exc.orig else str(exc), code="conflict"
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s:\n%s", request.method, request.url.path, traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": "Internal server error", "detail": "An unexpected error occurred."})


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": settings.VERSION}
