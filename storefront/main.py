import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from storefront.presentation.api import router
from storefront.database import engine
from storefront.infrastructure.db_schema import metadata
from storefront.infrastructure.background import dispatcher
from storefront.infrastructure.http_clients import RazorpayPaymentGateway, HTTPNotificationsClient
from storefront.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    # 1. Tables (migrations are run with alembic in deployed environments)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Tables ready")

    # 2. Process-scoped collaborators
    if not settings.payments_configured:
        logger.warning("Razorpay credentials not configured, online payments disabled")
    app.state.payment_gateway = RazorpayPaymentGateway(
        settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET, base_url=settings.RAZORPAY_BASE_URL
    )
    app.state.notifications = HTTPNotificationsClient(settings.NOTIFICATIONS_BASE_URL, settings.API_TOKEN)
    app.state.dispatcher = dispatcher

    yield

    logger.info("Shutting down, waiting for pending notifications...")
    await dispatcher.drain()
    await engine.dispose()


app = FastAPI(
    title="Storefront Order Service",
    description="Checkout, promo codes and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Storefront order service is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
