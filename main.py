from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from tradevault.core.database import Base, async_engine, close_redis
from tradevault.core.config import settings
from tradevault.core.exceptions import register_exception_handlers
from tradevault.core.logging import configure_logging
from tradevault.modules.users.router import router as users_router
from tradevault.modules.wallet.router import router as wallet_router
from tradevault.modules.loans.router import router as loans_router
from tradevault.modules.credit.router import router as credit_router
from tradevault.modules.kyc.router import router as kyc_router
from tradevault.modules.mining.router import router as mining_router
from tradevault.modules.trades.router import router as trades_router
from tradevault.modules.notifications.router import router as notifications_router
from tradevault.modules.admin.router import router as admin_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    configure_logging()
    async with async_engine.begin() as conn:
        # Create all tables (no migrations yet)
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT})")

    yield

    # Shutdown
    await close_redis()
    await async_engine.dispose()


app = FastAPI(
    title="TradeVault API",
    description="Crypto lending, wallet and staking back-office",
    version="1.0.0",
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

register_exception_handlers(app)

# Include routers
app.include_router(users_router)
app.include_router(wallet_router)
app.include_router(loans_router)
app.include_router(credit_router)
app.include_router(kyc_router)
app.include_router(mining_router)
app.include_router(trades_router)
app.include_router(notifications_router)
app.include_router(admin_router)


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
        "message": "Welcome to TradeVault API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
