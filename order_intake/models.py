"""
SQLAlchemy Database Models

Tables read by the intake pipeline (branch configuration, catalog, promotions,
delivery zones, customer profiles) and the three tables it writes
(orders, order_lines, order_line_modifiers), plus the per-branch order
sequence counter.

The intake pipeline only ever touches one table per call, so no
relationship() loaders are declared.
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Date,
    DateTime,
    Text,
    Enum,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from order_intake.database import Base


def _values(enum_cls):
    return [member.value for member in enum_cls]


class ServiceType(str, enum.Enum):
    """How the customer receives the order."""
    PICKUP = "pickup"
    DELIVERY = "delivery"
    DINE_IN = "dine_in"


class OrderStatus(str, enum.Enum):
    """Initial statuses assigned at intake; later transitions belong elsewhere."""
    AWAITING_PAYMENT = "awaiting_payment"
    PENDING_CONFIRMATION = "pending_confirmation"
    IN_PREPARATION = "in_preparation"


class PaymentState(str, enum.Enum):
    PENDING = "pending"
    PENDING_ON_DELIVERY = "pending_on_delivery"


class ModifierKind(str, enum.Enum):
    EXTRA = "extra"
    INCLUSION = "inclusion"
    REMOVAL = "removal"


class StoreStatus(str, enum.Enum):
    OPEN = "open"
    PAUSED = "paused"
    CLOSED = "closed"


# =============================================================================
# READ SIDE
# =============================================================================

class BranchConfigRow(Base):
    """Public ordering configuration of a branch."""
    __tablename__ = "branch_configs"

    branch_id = Column(String(36), primary_key=True)
    channel_active = Column(Boolean, nullable=False, default=True)
    store_status = Column(
        Enum(StoreStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=StoreStatus.OPEN,
    )
    pause_message = Column(String(255), nullable=True)
    pickup_enabled = Column(Boolean, nullable=False, default=True)
    delivery_enabled = Column(Boolean, nullable=False, default=True)
    auto_accept = Column(Boolean, nullable=False, default=False)
    delivery_cost = Column(Float, nullable=True)
    delivery_minimum = Column(Float, nullable=True)
    pickup_prep_minutes = Column(Integer, nullable=True)
    delivery_prep_minutes = Column(Integer, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)


class CatalogItemRow(Base):
    __tablename__ = "catalog_items"

    id = Column(String(36), primary_key=True)
    name = Column(String(150), nullable=False)
    base_price = Column(Float, nullable=False)
    category_id = Column(String(36), nullable=True)
    station = Column(String(50), nullable=True)
    available_in_channel = Column(Boolean, nullable=False, default=True)


class CatalogExtraRow(Base):
    """Extra an item can be ordered with, at its catalog price."""
    __tablename__ = "catalog_extras"
    __table_args__ = (UniqueConstraint("item_id", "name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(36), ForeignKey("catalog_items.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False, default=0.0)


class PromotionRow(Base):
    __tablename__ = "promotions"

    id = Column(String(36), primary_key=True)
    name = Column(String(150), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    channels = Column(JSON, nullable=False, default=list)
    starts_on = Column(Date, nullable=True)
    ends_on = Column(Date, nullable=True)


class PromotionItemRow(Base):
    """A promotional price for one catalog item inside a promotion."""
    __tablename__ = "promotion_items"

    id = Column(String(36), primary_key=True)
    promotion_id = Column(String(36), ForeignKey("promotions.id"), nullable=False, index=True)
    item_id = Column(String(36), ForeignKey("catalog_items.id"), nullable=False, index=True)
    promo_price = Column(Float, nullable=False)


class DeliveryZoneRow(Base):
    __tablename__ = "delivery_zones"

    id = Column(String(36), primary_key=True)
    branch_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    cost = Column(Float, nullable=False, default=0.0)
    minimum_order = Column(Float, nullable=True)
    estimated_minutes = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class CustomerProfileRow(Base):
    """Registered customer, looked up by an opaque session token."""
    __tablename__ = "customer_profiles"

    user_id = Column(String(36), primary_key=True)
    session_token = Column(String(128), nullable=True, unique=True, index=True)
    full_name = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)


class BranchOrderSequenceRow(Base):
    """Last order number issued per branch; only ever incremented in place."""
    __tablename__ = "branch_order_sequences"

    branch_id = Column(String(36), primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)


class PrepTimeRow(Base):
    """Queue-aware preparation estimate maintained by the kitchen collaborator."""
    __tablename__ = "branch_prep_times"

    branch_id = Column(String(36), primary_key=True)
    service_type = Column(String(20), primary_key=True)
    prep_minutes = Column(Integer, nullable=False)


# =============================================================================
# WRITE SIDE
# =============================================================================

class OrderRow(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("branch_id", "order_number"),
        UniqueConstraint("branch_id", "idempotency_key"),
    )

    id = Column(String(36), primary_key=True)
    branch_id = Column(String(36), nullable=False, index=True)
    order_number = Column(Integer, nullable=False)
    status = Column(
        Enum(OrderStatus, native_enum=False, values_callable=_values),
        nullable=False,
        index=True,
    )
    channel = Column(String(30), nullable=False)
    service_type = Column(
        Enum(ServiceType, native_enum=False, values_callable=_values),
        nullable=False,
    )

    # Pricing
    subtotal = Column(Float, nullable=False)
    delivery_cost = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)

    # Payment
    payment_method = Column(String(30), nullable=False)
    payment_state = Column(
        Enum(PaymentState, native_enum=False, values_callable=_values),
        nullable=False,
    )

    # Customer snapshot
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(30), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_user_id = Column(String(36), nullable=True, index=True)
    customer_notes = Column(Text, nullable=True)

    # Delivery
    delivery_address = Column(String(255), nullable=True)
    delivery_floor = Column(String(50), nullable=True)
    delivery_reference = Column(String(255), nullable=True)
    delivery_zone_id = Column(String(36), nullable=True)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)
    delivery_distance_km = Column(Float, nullable=True)

    tracking_code = Column(String(36), nullable=False, unique=True, index=True)
    idempotency_key = Column(String(100), nullable=True)
    # Child rows expected once the write has finished
    line_count = Column(Integer, nullable=False, default=0)
    modifier_count = Column(Integer, nullable=False, default=0)
    estimated_minutes = Column(Integer, nullable=True)
    promised_at = Column(DateTime(timezone=True), nullable=True)
    prep_started_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Order #{self.order_number} branch={self.branch_id} - {self.status.value}>"


class OrderLineRow(Base):
    __tablename__ = "order_lines"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    item_id = Column(String(36), nullable=False)
    name = Column(String(150), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    extras_total = Column(Float, nullable=False, default=0.0)
    subtotal = Column(Float, nullable=False)
    station = Column(String(50), nullable=False)
    category_id = Column(String(36), nullable=True)
    promotion_id = Column(String(36), nullable=True)
    promotion_line_id = Column(String(36), nullable=True)
    note = Column(Text, nullable=True)


class OrderLineModifierRow(Base):
    __tablename__ = "order_line_modifiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_line_id = Column(String(36), ForeignKey("order_lines.id"), nullable=False, index=True)
    kind = Column(
        Enum(ModifierKind, native_enum=False, values_callable=_values),
        nullable=False,
    )
    description = Column(String(255), nullable=False)
    extra_price = Column(Float, nullable=True)
