"""
Pydantic Schemas for Request/Response Validation

Wire names are camelCase (deviceId, orderId, requiresPayment) to match the
chat widget; Python attributes stay snake_case.

Author: Khalil Bannouri
Version: 1.0.0
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chatbot.models import ConversationState, OrderStatus, PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# CHAT SCHEMAS
# =============================================================================

class ChatInitRequest(CamelModel):
    """Open a conversation. Omit deviceId on a brand new client."""
    device_id: Optional[str] = Field(None, max_length=255, examples=["3f1c0e0a-7a43-4a8e-9a55-5b0c2d1e9f10"])


class ChatInitResponse(CamelModel):
    device_id: str
    message: str
    state: ConversationState


class ChatMessageRequest(CamelModel):
    """One turn of the conversation."""
    device_id: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., max_length=500, examples=["1", "99", "2025-12-24 18:30"])

    @field_validator("message", mode="before")
    @classmethod
    def coerce_number(cls, v):
        # Widgets sometimes post the menu choice as a JSON number
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ChatMessageResponse(CamelModel):
    """
    Reply for one turn. The payment fields are only present right after
    an order was placed.
    """
    message: str
    state: ConversationState
    order_id: Optional[int] = None
    amount: Optional[Decimal] = None
    requires_payment: Optional[bool] = None


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItemResponse(CamelModel):
    menu_item_id: Optional[int]
    item_name: str
    quantity: int
    price: Decimal


class OrderResponse(CamelModel):
    """A placed order with its item snapshot."""
    id: int
    device_id: str
    total_amount: Decimal
    payment_status: PaymentStatus
    payment_reference: Optional[str]
    scheduled_for: Optional[datetime]
    status: OrderStatus
    created_at: datetime
    paid_at: Optional[datetime]
    items: List[OrderItemResponse]


class OrderListResponse(CamelModel):
    total: int
    orders: List[OrderResponse]


# =============================================================================
# PAYMENT SCHEMAS
# =============================================================================

class PaymentInitializeRequest(CamelModel):
    order_id: int = Field(..., ge=1)
    email: str = Field(..., max_length=255, examples=["ada@example.com"])
    device_id: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not re.match(r'^[\w\.\+-]+@[\w\.-]+\.\w+$', v):
            raise ValueError('Invalid email format')
        return v


class PaymentInitializeResponse(CamelModel):
    success: bool
    authorization_url: str
    access_code: Optional[str] = None
    reference: str


class PaymentVerifyResponse(CamelModel):
    success: bool
    message: str
    status: Optional[str] = None
    order_id: Optional[int] = None
    amount: Optional[Decimal] = None
    reference: Optional[str] = None


class WebhookAck(CamelModel):
    received: bool = True


# =============================================================================
# SYSTEM SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    retryable: bool = False


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    payment_service: str
    timestamp: datetime
