# civicsync/main.py
from __future__ import annotations
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civicsync.core.config import settings
from civicsync.core.errors import CivicSyncError
from civicsync.routes import auth as auth_routes
from civicsync.routes import issues, profile
from civicsync.services.registry import get_registry

logging.basicConfig(stream=sys.stderr, level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # only if a request ever built the registry (and its Firestore client)
    if get_registry.cache_info().currsize:
        get_registry().close_all()


app = FastAPI(title="CivicSync", lifespan=lifespan)

app.include_router(auth_routes.router, prefix="/api")
app.include_router(issues.router,      prefix="/api")
app.include_router(profile.router,     prefix="/api")

_origins = ["http://localhost:3000", "http://localhost:5173"]
if settings.ui_origin and settings.ui_origin != "*" and settings.ui_origin not in _origins:
    _origins.append(settings.ui_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CivicSyncError)
async def civic_error_handler(request: Request, exc: CivicSyncError):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/api/healthz")
def healthz():
    return {"ok": True}

@app.get("/")
def root():
    return {"ok": True, "service": "civicsync"}
