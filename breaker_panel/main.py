from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

# Load config first so all downstream imports see correct envs.
from breaker_panel.core.settings import settings
from breaker_panel.core.logging_config import configure_logging
from breaker_panel.core.exceptions import BreakerPanelError, ConflictError, EntityNotFoundError
from breaker_panel.db import init_db
from breaker_panel.routers import breakers as breakers_router
from breaker_panel.routers import circuits as circuits_router
from breaker_panel.routers import panels as panels_router
from breaker_panel.routers import plans as plans_router
from breaker_panel.routers import rooms as rooms_router

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    settings.OUT.mkdir(parents=True, exist_ok=True)
    logger.info("Breaker panel helper ready (%d routes)", len(app.routes))
    yield
    logger.info("Breaker panel helper shutting down")


app = FastAPI(title="Breaker Panel Helper", lifespan=lifespan)

app.include_router(panels_router.router, prefix=API_PREFIX)
app.include_router(breakers_router.router, prefix=API_PREFIX)
app.include_router(rooms_router.router, prefix=API_PREFIX)
app.include_router(circuits_router.router, prefix=API_PREFIX)
app.include_router(plans_router.router, prefix=API_PREFIX)

# CORS (single block)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.STATIC.is_dir():
    app.mount("/static", StaticFiles(directory=str(settings.STATIC), html=True), name="static")


def status_for(exc: BreakerPanelError) -> int:
    if isinstance(exc, EntityNotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    # planner refusals, bad references, positions outside the panel
    return 400


@app.exception_handler(BreakerPanelError)
async def breaker_panel_error_handler(request: Request, exc: BreakerPanelError):
    status = status_for(exc)
    if status == 409:
        logger.warning("%s %s -> 409: %s", request.method, request.url.path, exc)
    content = {"detail": str(exc), "type": type(exc).__name__}
    for attr in ("required", "available", "panel_id", "position", "slot_position"):
        if getattr(exc, attr, None) is not None:
            content[attr] = getattr(exc, attr)
    return JSONResponse(status_code=status, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.debug(tb_str)
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


@app.get("/health")
def health():
    return {"status": "ok"}
