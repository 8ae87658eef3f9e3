# =====================================================================
# SECTION START: IMPORTS
# =====================================================================

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

import db
import models  # noqa: F401
from config import LOG_LEVEL, SWEEP_ENABLED
from notifier import EmailTransport, build_transport
from providers.base import FareSearchProvider
from providers.factory import build_provider
from routers import admin, sweep, watches
from scheduler import SweepScheduler
from services.sweep_service import SweepCoordinator
from services.trigger_service import TriggerEngine
from services.watch_repository import WatchRepository

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

# =====================================================================
# SECTION END: IMPORTS
# =====================================================================


# =====================================================================
# SECTION START: VALIDATION ERRORS
# Watch endpoints answer malformed input with 400, everything else keeps 422.
# =====================================================================

async def validation_error_handler(request: Request, exc: RequestValidationError):
    if not request.url.path.startswith("/watch"):
        return await request_validation_exception_handler(request, exc)

    details = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})

    return JSONResponse(status_code=400, content={"detail": {"error": "Validation failed", "details": details}})

# =====================================================================
# SECTION END: VALIDATION ERRORS
# =====================================================================


# =====================================================================
# SECTION START: FastAPI APP AND CORS
# =====================================================================

def create_app(
    engine=None,
    provider: Optional[FareSearchProvider] = None,
    transport: Optional[EmailTransport] = None,
    enable_scheduler: bool = SWEEP_ENABLED,
    today: Callable[[], date] = date.today,
    sleep: Optional[Callable[[float], None]] = None,
) -> FastAPI:
    bind = engine or db.engine
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=bind) if engine else db.SessionLocal

    repo = WatchRepository(session_factory)
    trigger_engine = TriggerEngine(
        repo,
        provider or build_provider(),
        transport or build_transport(),
        today=today,
    )
    coordinator_kwargs = {"sleep": sleep} if sleep is not None else {}
    coordinator = SweepCoordinator(repo, trigger_engine, **coordinator_kwargs)
    sweep_scheduler = SweepScheduler(coordinator) if enable_scheduler else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.Base.metadata.create_all(bind=bind)
        if sweep_scheduler is not None:
            sweep_scheduler.start()
        logger.info(f"[startup] ready scheduler={'on' if sweep_scheduler else 'off'}")
        yield
        if sweep_scheduler is not None:
            sweep_scheduler.shutdown()

    app = FastAPI(title="Price Watch", lifespan=lifespan)

    app.state.session_factory = session_factory
    app.state.repo = repo
    app.state.engine = trigger_engine
    app.state.coordinator = coordinator
    app.state.scheduler = sweep_scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # /watch/run must be registered ahead of /watch/{watch_id}
    app.include_router(admin.router)
    app.include_router(sweep.router)
    app.include_router(watches.router)

    return app


app = create_app()

# =====================================================================
# SECTION END: FastAPI APP AND CORS
# =====================================================================
