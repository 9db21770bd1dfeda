"""
Order Hub — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from orderhub.api import admin_orders, health, orders, realtime
from orderhub.core.config import get_settings
from orderhub.core.errors import InvalidTransition, NotFound, OrderHubError
from orderhub.db.database import Base, engine
from orderhub.middleware.auth import AdminAuthMiddleware
from orderhub.realtime.channel import close_channel

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    await close_channel()
    await engine.dispose()


app = FastAPI(
    title="Order Hub",
    description="Order lifecycle store with realtime fan-out to operator consoles and customer trackers.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AdminAuthMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


# ── Domain error → HTTP ──────────────────────────────────────
_STATUS_BY_ERROR: dict[type[OrderHubError], int] = {
    InvalidTransition: 409,
    NotFound: 404,
}


async def order_hub_error_handler(request: Request, exc: OrderHubError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        500,
    )
    if status_code >= 500:
        logger.error("Unhandled order hub error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.kind})


app.add_exception_handler(OrderHubError, order_hub_error_handler)

app.include_router(orders.router)
app.include_router(admin_orders.router)
app.include_router(realtime.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
