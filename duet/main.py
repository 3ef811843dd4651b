# duet/main.py

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from duet.api.v1.api import api_router
from duet.core.config import Settings, get_settings
from duet.core.errors import ConcurrencyError, DuetError, StoreError
from duet.core.logging_config import configure_logging
from duet.core.security import TokenService
from duet.db.init_db import init_db, seed_initial_data
from duet.db.session import build_engine, build_session_factory
from duet.services.auth_service import SessionGateway
from duet.services.identity_store import IdentityStore
from duet.services.pairing_service import PairingCoordinator

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DuetError)
    async def handle_duet_error(request: Request, exc: DuetError):
        headers = None
        if isinstance(exc, StoreError):
            logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.internal_message)
        if isinstance(exc, ConcurrencyError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Unhandled database error on %s %s", request.method, request.url.path, exc_info=exc)
        error = StoreError()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    # ---------- CORE SERVICES ----------
    # Fails fast (ConfigurationError) when SECRET_KEY is missing or weak.
    tokens = TokenService.from_settings(settings)

    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    init_db(engine)

    store = IdentityStore()
    gateway = SessionGateway.from_settings(settings, store, tokens)
    coordinator = PairingCoordinator.from_settings(settings, store)

    with session_factory() as db:
        seed_initial_data(db, settings, store, gateway.hasher)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.identity_store = store
    app.state.gateway = gateway
    app.state.coordinator = coordinator

    # ---------- CORS ----------
    origins = settings.backend_cors_origins or ([] if settings.is_production else DEV_ORIGINS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # ---------- ROUTERS ----------
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    logger.info("%s %s started (%s)", settings.PROJECT_NAME, settings.VERSION, settings.environment)
    return app


app = create_application()
