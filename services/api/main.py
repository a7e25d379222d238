"""
Survey Export Service - Backend API
FastAPI app serving watermarked survey exports and live-viewer overlays.

Run server:
uvicorn main:app --host 0.0.0.0 --port 8000
"""

import contextvars
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.blob import HttpBlobStore, LocalBlobStore
from core.auth import authenticate, extract_token, resolve_identity
from core.errors import LicenseInactive, QueryError, Unauthorized
from models import IdentityContext
from settings import Settings, get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar("request_id", default=None)

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STORAGE_BACKEND = settings.storage_backend.lower()
BLOB_BACKEND = settings.blob_backend.lower()

# ============================================================================
# ADAPTERS (built on first use)
# ============================================================================

_store = None
_blob_store = None


def _build_store(s: Settings):
    if STORAGE_BACKEND == "sqlite":
        from adapters.sqlite import SqliteAdapter
        return SqliteAdapter.from_url(s.db_url)
    if STORAGE_BACKEND == "json":
        from adapters.json import JsonAdapter
        return JsonAdapter(s.json_data_dir)
    raise ValueError(f"Unknown STORAGE_BACKEND: {STORAGE_BACKEND}")


def _build_blob_store(s: Settings):
    if BLOB_BACKEND == "local":
        return LocalBlobStore(s.blob_root)
    if BLOB_BACKEND == "http":
        return HttpBlobStore(s.blob_base_url, api_key=s.blob_api_key or None, timeout=s.blob_timeout_s)
    raise ValueError(f"Unknown BLOB_BACKEND: {BLOB_BACKEND}")


# ---- DI helpers (used by routers/*) ----

def get_settings_dep() -> Settings:
    return get_settings()


def get_store():
    global _store
    if _store is None:
        _store = _build_store(get_settings())
        logger.info(f"Storage adapter initialized: {STORAGE_BACKEND}")
    return _store


def get_blob_store():
    global _blob_store
    if _blob_store is None:
        _blob_store = _build_blob_store(get_settings())
        logger.info(f"Blob store initialized: {BLOB_BACKEND}")
    return _blob_store


def get_session_claims(
    request: Request,
    authorization: Optional[str] = Header(None),
    s: Settings = Depends(get_settings_dep),
) -> Dict[str, Any]:
    token = extract_token(authorization, request.cookies.get(s.session_cookie_name))
    try:
        return authenticate(token, secret=s.jwt_secret, algorithm=s.jwt_algorithm)
    except Unauthorized:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_optional_claims(
    request: Request,
    authorization: Optional[str] = Header(None),
    s: Settings = Depends(get_settings_dep),
) -> Optional[Dict[str, Any]]:
    token = extract_token(authorization, request.cookies.get(s.session_cookie_name))
    try:
        return authenticate(token, secret=s.jwt_secret, algorithm=s.jwt_algorithm)
    except Unauthorized:
        return None


def get_identity(
    claims: Dict[str, Any] = Depends(get_session_claims),
    store=Depends(get_store),
    s: Settings = Depends(get_settings_dep),
) -> IdentityContext:
    try:
        return resolve_identity(claims, store, enforce_license=s.enforce_license)
    except LicenseInactive as e:
        logger.warning(f"Forbidden: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="License inactive")
    except QueryError as e:
        logger.error(f"Profile lookup failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Profile lookup failed")


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Survey Export Service API",
    description="Watermarked survey exports and live viewer overlays",
    version="1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def request_tracing_middleware(request, call_next):
    """Add request_id and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    started = time.time()

    response = await call_next(request)

    latency = time.time() - started
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(latency * 1000, 2),
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


ALLOWED_ORIGINS = settings.get_origins_list()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/healthz")
async def healthz():
    """
    Liveness probe. Is the process alive and responding?
    """
    return {"status": "ok", "timestamp": time.time(), "version": "1.0"}


@app.get("/readyz")
async def readyz(store=Depends(get_store)):
    """
    Readiness probe. Returns 503 if the relational store can't be reached.
    """
    try:
        store.ping()
        return {"status": "ready", "backend": STORAGE_BACKEND, "timestamp": time.time()}
    except Exception as e:
        logger.error(f"Readiness check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "backend": STORAGE_BACKEND,
                "error": str(e),
                "timestamp": time.time(),
            },
        )


# ========== Routers ==========
from routers import surveys as surveys_router  # noqa: E402
from routers import viewer as viewer_router  # noqa: E402
from routers import security as security_router  # noqa: E402

app.include_router(surveys_router.router)
app.include_router(viewer_router.router)
app.include_router(security_router.router)


@app.on_event("startup")
async def startup_event():
    logger.info("Survey Export Service starting up...")
    logger.info(f"Storage Backend: {STORAGE_BACKEND.upper()}, Blob Backend: {BLOB_BACKEND.upper()}")
    logger.info(f"Allowed origins: {ALLOWED_ORIGINS}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Survey Export Service shutting down...")
    engine = getattr(_store, "engine", None)
    if engine is not None:
        engine.dispose()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
