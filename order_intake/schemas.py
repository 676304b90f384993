"""
Pydantic Schemas for Request/Response Validation

Shapes of the public ordering endpoint. Client-supplied prices (extra
prices, delivery cost estimate) are accepted for compatibility with older
clients but are advisory only; nothing here is trusted for pricing.
"""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_intake.models import ServiceType


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class ExtraRequest(BaseModel):
    """Paid extra on a line. ``price`` is what the client displayed, nothing more."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Cheddar"])
    price: Optional[float] = Field(None, examples=[800])
    quantity: Optional[int] = Field(default=1, le=20, examples=[1])


class InclusionRequest(BaseModel):
    """Included (free) component chosen by the customer."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Pickles"])
    quantity: Optional[int] = Field(default=1, le=20)


class OrderLineCreate(BaseModel):
    """Single cart line."""
    item_id: str = Field(..., min_length=1, examples=["burger-classic"])
    promotion_line_id: Optional[str] = Field(None, examples=["promo-line-burger"])
    line_kind: Optional[str] = Field(None, pattern="^(base|promo)$")
    exclude_promotions: bool = Field(
        default=False,
        description="Buy at base price even when a promotion is running",
    )
    name: Optional[str] = Field(None, max_length=150)
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    extras: List[ExtraRequest] = Field(default_factory=list, max_length=20)
    inclusions: List[InclusionRequest] = Field(default_factory=list, max_length=20)
    removals: List[Annotated[str, Field(max_length=255)]] = Field(default_factory=list, max_length=20)
    note: Optional[str] = Field(None, max_length=300)

    @property
    def label(self) -> str:
        return self.name or self.item_id


class OrderCreate(BaseModel):
    """Request schema for the public ordering channel."""

    branch_id: str = Field(..., min_length=1, examples=["branch-centro"])
    service_type: ServiceType = Field(..., examples=["delivery"])

    # Customer Info (may be backfilled from the caller's profile)
    customer_name: Optional[str] = Field(None, max_length=100, examples=["Ana Pérez"])
    customer_phone: Optional[str] = Field(None, max_length=30, examples=["351-555-0101"])
    customer_email: Optional[str] = Field(None, max_length=255, examples=["ana@example.com"])
    customer_notes: Optional[str] = Field(None, max_length=500)

    payment_method: str = Field(..., min_length=1, examples=["cash", "mercadopago"])

    # Delivery
    delivery_address: Optional[str] = Field(None, max_length=255)
    delivery_floor: Optional[str] = Field(None, max_length=50)
    delivery_reference: Optional[str] = Field(None, max_length=255)
    delivery_zone_id: Optional[str] = Field(None)
    delivery_lat: Optional[float] = Field(None, ge=-90, le=90)
    delivery_lng: Optional[float] = Field(None, ge=-180, le=180)
    delivery_cost_estimate: Optional[float] = Field(None, ge=0)
    delivery_distance_km: Optional[float] = Field(None, ge=0)

    idempotency_key: Optional[str] = Field(None, min_length=8, max_length=100)

    lines: List[OrderLineCreate] = Field(default_factory=list, max_length=50)

    @field_validator("customer_email")
    @classmethod
    def blank_email_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def has_coordinates(self) -> bool:
        return self.delivery_lat is not None and self.delivery_lng is not None


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderCreateResponse(BaseModel):
    """Canonical response after an order is accepted."""
    order_id: str
    tracking_code: str
    order_number: int
    status: str
    estimated_minutes: Optional[int] = None


class OrderTrackingResponse(BaseModel):
    """Public view of an order, keyed by its tracking code."""
    model_config = ConfigDict(from_attributes=True)

    order_number: int
    status: str
    payment_state: str
    service_type: str
    total: float
    estimated_minutes: Optional[int] = None
    promised_at: Optional[datetime] = None
    created_at: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    kind: Optional[str] = None
    minimum: Optional[float] = None
    retryable: Optional[bool] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    order_store: str
    geo_service: str
    timestamp: datetime
