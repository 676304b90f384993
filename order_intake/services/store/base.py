"""
Order Store Abstract Base Class

Defines the storage contract the intake pipeline runs against. The backend
behind it only offers independent single-table calls, so every method here
reads or writes exactly one table, and there is no transaction spanning
calls. The one concurrency-safe primitive is ``next_order_number``, an
atomic per-branch increment performed by the storage layer itself.

Implementations:
    - MemoryOrderStore: in-process tables (development, tests)
    - SqlOrderStore: async SQLAlchemy (staging, production)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from order_intake.core.errors import StoreError
from order_intake.models import (
    ModifierKind,
    OrderStatus,
    PaymentState,
    ServiceType,
    StoreStatus,
)


# =============================================================================
# READ RECORDS
# =============================================================================

@dataclass(frozen=True)
class CatalogItem:
    """Authoritative catalog entry; immutable for the duration of a request."""
    id: str
    name: str
    base_price: float
    category_id: Optional[str] = None
    station: Optional[str] = None
    available_in_channel: bool = True


@dataclass(frozen=True)
class CatalogExtra:
    item_id: str
    name: str
    price: float


@dataclass(frozen=True)
class ActivePromotion:
    """
    Promotional price for one catalog item, tagged with the owning
    promotion's switch, validity window and channel list.

    Attributes:
        id: Promotion line identifier (what a cart line references)
        item_id: Catalog item the price applies to
        price: Promotional unit price
        promotion_id: Owning promotion
        active: Owning promotion's on/off switch
        channels: Allowed channels; empty means every channel
        starts_on: First valid day (inclusive), open when None
        ends_on: Last valid day (inclusive), open when None
    """
    id: str
    item_id: str
    price: float
    promotion_id: str
    active: bool = True
    channels: tuple[str, ...] = ()
    starts_on: Optional[date] = None
    ends_on: Optional[date] = None

    def is_eligible(self, channel: str, today: date) -> bool:
        if not self.active:
            return False
        if self.channels and channel not in self.channels:
            return False
        if self.starts_on is not None and today < self.starts_on:
            return False
        if self.ends_on is not None and today > self.ends_on:
            return False
        return True


@dataclass(frozen=True)
class DeliveryZone:
    id: str
    branch_id: str
    cost: float
    minimum_order: Optional[float] = None
    estimated_minutes: Optional[int] = None
    is_active: bool = True
    name: Optional[str] = None


@dataclass(frozen=True)
class BranchConfig:
    """Public-channel configuration of one branch."""
    branch_id: str
    channel_active: bool = True
    store_status: StoreStatus = StoreStatus.OPEN
    pause_message: Optional[str] = None
    pickup_enabled: bool = True
    delivery_enabled: bool = True
    auto_accept: bool = False
    delivery_cost: Optional[float] = None
    delivery_minimum: Optional[float] = None
    pickup_prep_minutes: Optional[int] = None
    delivery_prep_minutes: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class CustomerProfile:
    user_id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None


# =============================================================================
# WRITE RECORDS
# =============================================================================

@dataclass
class OrderRecord:
    id: str
    branch_id: str
    order_number: int
    status: OrderStatus
    channel: str
    service_type: ServiceType
    subtotal: float
    delivery_cost: float
    total: float
    payment_method: str
    payment_state: PaymentState
    customer_name: str
    customer_phone: str
    tracking_code: str
    created_at: datetime
    customer_email: Optional[str] = None
    customer_user_id: Optional[str] = None
    customer_notes: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_floor: Optional[str] = None
    delivery_reference: Optional[str] = None
    delivery_zone_id: Optional[str] = None
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    delivery_distance_km: Optional[float] = None
    idempotency_key: Optional[str] = None
    line_count: int = 0
    modifier_count: int = 0
    estimated_minutes: Optional[int] = None
    promised_at: Optional[datetime] = None
    prep_started_at: Optional[datetime] = None


@dataclass
class OrderLineRecord:
    id: str
    order_id: str
    position: int
    item_id: str
    name: str
    quantity: int
    unit_price: float
    extras_total: float
    subtotal: float
    station: str
    category_id: Optional[str] = None
    promotion_id: Optional[str] = None
    promotion_line_id: Optional[str] = None
    note: Optional[str] = None


@dataclass
class ModifierRecord:
    order_line_id: str
    kind: ModifierKind
    description: str
    extra_price: Optional[float] = None


@dataclass
class StoreCounts:
    """Row counts for one order, used to prove nothing partial survived."""
    orders: int = 0
    lines: int = 0
    modifiers: int = 0
    line_ids: list[str] = field(default_factory=list)


# =============================================================================
# STORE CONTRACT
# =============================================================================

class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    Reads return plain records; writes take records. No method may span
    more than one table, and none may hold a lock across a network call.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the storage backend (e.g. "memory", "sql")."""
        pass

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_branch_config(self, branch_id: str) -> Optional[BranchConfig]:
        pass

    @abstractmethod
    async def fetch_catalog_items(self, item_ids: Iterable[str]) -> list[CatalogItem]:
        pass

    @abstractmethod
    async def fetch_catalog_extras(self, item_ids: Iterable[str]) -> list[CatalogExtra]:
        pass

    @abstractmethod
    async def fetch_promotions(self, item_ids: Iterable[str]) -> list[ActivePromotion]:
        """
        Return every promotion line for the given items, unfiltered.

        Channel and date eligibility is decided by the caller with
        ``ActivePromotion.is_eligible``.
        """
        pass

    @abstractmethod
    async def get_delivery_zone(self, zone_id: str) -> Optional[DeliveryZone]:
        pass

    @abstractmethod
    async def get_customer_by_token(self, token: str) -> Optional[CustomerProfile]:
        pass

    @abstractmethod
    async def get_dynamic_prep_minutes(
        self,
        branch_id: str,
        service_type: ServiceType,
    ) -> Optional[int]:
        """Queue-aware preparation estimate, or None when not tracked."""
        pass

    @abstractmethod
    async def find_order_by_idempotency_key(
        self,
        branch_id: str,
        key: str,
    ) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    async def get_order_by_tracking_code(self, tracking_code: str) -> Optional[OrderRecord]:
        pass

    # -------------------------------------------------------------------------
    # Sequence
    # -------------------------------------------------------------------------

    @abstractmethod
    async def next_order_number(self, branch_id: str) -> int:
        """
        Atomically increment and return the branch's order counter.

        The first call for a branch returns 1. Must never be implemented as
        a read followed by a separate write.
        """
        pass

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_order(self, order: OrderRecord) -> None:
        pass

    @abstractmethod
    async def insert_order_line(self, line: OrderLineRecord) -> None:
        pass

    @abstractmethod
    async def insert_line_modifiers(self, modifiers: list[ModifierRecord]) -> None:
        """Insert all modifiers of one order line in a single call."""
        pass

    @abstractmethod
    async def delete_line_modifiers(self, line_ids: list[str]) -> None:
        pass

    @abstractmethod
    async def delete_order_lines(self, order_id: str) -> None:
        pass

    @abstractmethod
    async def delete_order(self, order_id: str) -> None:
        pass

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @abstractmethod
    async def count_order_rows(self, order_id: str) -> StoreCounts:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
