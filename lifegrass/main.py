import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import LifeGrassError, StorageUnavailable
from .llm_client import TextServiceClient
from .routers import admin, ai, auth, data
from .services.credentials import CredentialStore
from .services.storage import BlobStore, build_blob_store
from .services.tokens import TokenStrategy
from .services.user_state import UserStateRepository
from .settings.config import Settings, settings as default_settings

logging.basicConfig(level=default_settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await app.state.repository.store.init()
    except StorageUnavailable:
        # keep serving; data endpoints answer 503 until storage is back
        logger.exception("Object storage initialisation failed")
    if app.state.text_service.kind is None:
        logger.warning("AI text service is not configured; comments use the local fallback")
    yield


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid input"


def create_app(
    settings: Optional[Settings] = None,
    *,
    blob_store: Optional[BlobStore] = None,
    text_service: Optional[TextServiceClient] = None,
) -> FastAPI:
    cfg = settings or default_settings

    tokens = TokenStrategy(cfg.require_token_secret(), lifetime=timedelta(days=cfg.TOKEN_TTL_DAYS))
    repository = UserStateRepository(blob_store or build_blob_store(cfg), prefix=cfg.STORAGE_PREFIX)

    app = FastAPI(title="LifeGrass API", lifespan=lifespan)
    app.state.settings = cfg
    app.state.tokens = tokens
    app.state.repository = repository
    app.state.credentials = CredentialStore(repository, tokens)
    app.state.text_service = text_service or TextServiceClient(cfg)

    # The admin UI is served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.ADMIN_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ----------------------
    # Route Includes
    # ----------------------
    app.include_router(auth.router)
    app.include_router(data.router)
    app.include_router(admin.router)
    app.include_router(ai.router)

    @app.exception_handler(LifeGrassError)
    async def _lifegrass_error_handler(request: Request, exc: LifeGrassError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _validation_message(exc)}, status_code=400)

    return app


app = create_app()
