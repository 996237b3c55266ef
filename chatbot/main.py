"""
FastAPI Application Entry Point

Restaurant Chat Ordering Assistant
Supports both the mock payment gateway (development) and Stripe (production).

Endpoints:
    - POST /api/chat/init: Open or reopen a device conversation
    - POST /api/chat/message: Process one chat turn
    - GET /api/orders: Order history for a device
    - GET /api/orders/{order_id}: Single order with items
    - POST /api/payment/initialize: Start hosted checkout for an order
    - GET /api/payment/verify/{reference}: Confirm a payment with the gateway
    - POST /api/payment/webhook: Gateway webhook
    - GET /health: System health check

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Header
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import redis

from chatbot import database
from chatbot.core.config import get_settings, setup_logging
from chatbot.core.exceptions import OrderingError, PaymentError, StorageError
from chatbot.database import get_db
from chatbot.schemas import (
    ChatInitRequest,
    ChatInitResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    ErrorResponse,
    HealthResponse,
    OrderListResponse,
    OrderResponse,
    PaymentInitializeRequest,
    PaymentInitializeResponse,
    PaymentVerifyResponse,
    WebhookAck,
)
from chatbot.seed import seed_menu
from chatbot.services.checkout import PaymentCoordinator
from chatbot.services.conversation import ConversationService
from chatbot.services.ledger import OrderLedger
from chatbot.services.payment import get_payment_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await database.init_db()
    logger.info("✅ Database initialized")

    if settings.seed_menu_on_startup:
        async with database.async_session_maker() as db:
            await seed_menu(db)

    payment_service = get_payment_service()
    logger.info(f"✅ Payment Service: {payment_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await database.engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Menu-driven chat ordering backend: per-device conversations, "
        "carts, scheduled orders and hosted payment checkout."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The chat widget is served from arbitrary hosts
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_conversation_service(db: AsyncSession = Depends(get_db)) -> ConversationService:
    return ConversationService(db)


def get_payment_coordinator(db: AsyncSession = Depends(get_db)) -> PaymentCoordinator:
    return PaymentCoordinator(db)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    payment_service = get_payment_service()
    payment_status = "healthy" if await payment_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, payment_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        payment_service=payment_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================

@app.post(
    "/api/chat/init",
    response_model=ChatInitResponse,
    tags=["Chat"],
    summary="Start Conversation",
)
async def chat_init(
    payload: Optional[ChatInitRequest] = None,
    service: ConversationService = Depends(get_conversation_service),
) -> ChatInitResponse:
    """
    Create or fetch the device's session and return the main menu.

    A device id is generated when the client does not send one; the
    client must store it and send it with every message.
    """
    device_id = payload.device_id if payload else None
    session, greeting = await service.start(device_id)

    return ChatInitResponse(
        device_id=session.device_id,
        message=greeting,
        state=session.state,
    )


@app.post(
    "/api/chat/message",
    response_model=ChatMessageResponse,
    response_model_exclude_none=True,
    responses={503: {"model": ErrorResponse}},
    tags=["Chat"],
    summary="Process Chat Turn",
)
async def chat_message(
    payload: ChatMessageRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ChatMessageResponse:
    """
    Interpret one message against the device's current state.

    When the turn places an order the response also carries orderId,
    amount and requiresPayment=true; the client then calls
    /api/payment/initialize.
    """
    outcome = await service.handle_message(payload.device_id, payload.message)

    response = ChatMessageResponse(message=outcome.reply, state=outcome.next_state)
    if outcome.payment:
        response.order_id = outcome.payment.order_id
        response.amount = outcome.payment.amount
        response.requires_payment = outcome.payment.requires_payment
    return response


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="Order History",
)
async def list_orders(
    device_id: str = Query(..., alias="deviceId", min_length=1),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Placed orders for a device, newest first."""
    orders = await OrderLedger(db).history(device_id)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await OrderLedger(db).by_id(order_id)
    return OrderResponse.model_validate(order)


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/payment/initialize",
    response_model=PaymentInitializeResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    tags=["Payment"],
)
async def initialize_payment(
    payload: PaymentInitializeRequest,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentInitializeResponse:
    """Start a hosted checkout for a pending order."""
    result = await coordinator.initialize(
        order_id=payload.order_id,
        email=payload.email,
        device_id=payload.device_id,
    )
    return PaymentInitializeResponse(
        success=True,
        authorization_url=result.authorization_url,
        access_code=result.access_code,
        reference=result.reference,
    )


@app.get(
    "/api/payment/verify/{reference}",
    response_model=PaymentVerifyResponse,
    response_model_exclude_none=True,
    tags=["Payment"],
)
async def verify_payment(
    reference: str,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentVerifyResponse:
    """
    Confirm a payment after the customer returns from checkout.

    On success the order is marked paid and a device still waiting in
    payment_pending goes back to the main menu. Calling this again for
    the same reference is harmless.
    """
    verification, confirmation = await coordinator.verify(reference)

    if confirmation is None:
        return PaymentVerifyResponse(
            success=False,
            message=verification.error_message or "Payment verification failed",
            status=verification.status,
            reference=reference,
        )

    return PaymentVerifyResponse(
        success=True,
        message="Payment verified successfully",
        status=confirmation.order.payment_status.value,
        order_id=confirmation.order.id,
        amount=confirmation.order.total_amount,
        reference=reference,
    )


@app.post(
    "/api/payment/webhook",
    response_model=WebhookAck,
    tags=["Payment"],
)
async def payment_webhook(
    request: Request,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
) -> WebhookAck:
    """
    Gateway webhook. The payment service verifies the signature; settled
    charges mark their order paid.
    """
    body = await request.body()

    try:
        confirmation = await coordinator.handle_webhook(body, stripe_signature)
    except PaymentError as e:
        logger.warning(f"Webhook rejected: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    if confirmation and confirmation.newly_paid:
        logger.info(f"Payment confirmed for order #{confirmation.order.id}")

    return WebhookAck(received=True)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Map domain failures to status codes."""
    if isinstance(exc, StorageError):
        logger.error(f"Storage failure on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            retryable=isinstance(exc, StorageError),
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
