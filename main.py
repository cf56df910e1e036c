from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging
from lendcircle.core.database import Base, async_engine, close_redis
from lendcircle.core.config import settings
from lendcircle.modules.loans.router import router as loans_router
from lendcircle.modules.funding.router import router as funding_router
from lendcircle.modules.repayments.router import router as repayments_router
from lendcircle.modules.borrowers.router import router as borrowers_router
from lendcircle.modules.currency.router import router as currency_router
from lendcircle.modules.currency.cache import get_rate_cache

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    async with async_engine.begin() as conn:
        # Create all tables (for development - use Alembic in production)
        await conn.run_sync(Base.metadata.create_all)

    refresh_task = None
    if settings.EXCHANGE_RATE_REFRESH_ENABLED:
        refresh_task = asyncio.create_task(
            get_rate_cache().run_periodic_refresh(settings.refresh_bases_list)
        )
        logger.info(f"Exchange rate refresh started for {settings.refresh_bases_list}")

    yield

    # Shutdown
    if refresh_task is not None:
        refresh_task.cancel()
        try:
            await refresh_task
        except asyncio.CancelledError:
            pass
    await close_redis()
    await async_engine.dispose()


app = FastAPI(
    title="LendCircle API",
    description="Peer-to-peer loan funding",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(loans_router)
app.include_router(funding_router)
app.include_router(repayments_router)
app.include_router(borrowers_router)
app.include_router(currency_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Welcome to LendCircle API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
