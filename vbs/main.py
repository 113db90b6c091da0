import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vbs.cache import cache
from vbs.config import settings
from vbs.exceptions import register_exception_handlers
from vbs.middleware import TimingMiddleware
from vbs.routers import (
    abonnements,
    admin,
    avis,
    catalog,
    commandes,
    demandes,
    files,
    paiements,
    prestataires,
    users,
)

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Cache unavailable, serving without Redis: %s", exc)
    yield
    # Shutdown
    await cache.disconnect()


_configure_logging()

app = FastAPI(
    title="VBS API",
    description="Local services marketplace: providers, requests, orders, reviews and subscriptions",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.APP_ENV == "development" else None,
    redoc_url="/redoc" if settings.APP_ENV == "development" else None,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(catalog.router)
app.include_router(users.router)
app.include_router(prestataires.router)
app.include_router(demandes.router)
app.include_router(commandes.router)
app.include_router(avis.router)
app.include_router(abonnements.router)
app.include_router(paiements.router)
app.include_router(paiements.webhooks_router)
app.include_router(files.router)
app.include_router(admin.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
