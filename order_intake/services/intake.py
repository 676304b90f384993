"""
Intake Orchestrator

Runs one public-channel order submission through the pipeline:

    Validating → ResolvingCatalog → Pricing → QuotingDelivery →
    Sequencing → Classifying → Writing → Done

Any typed failure moves the run to Rejected and is re-raised with the state
it happened in. Nothing is retried here; retrying is the caller's decision.

Cancellation is honoured up to the Writing state. Once the first row is
written the writer is shielded so it always finishes, either with the whole
order persisted or with its compensation done.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from order_intake.core.config import get_settings
from order_intake.core.errors import (
    ChannelDisabled,
    IdempotencyConflict,
    IntakeError,
    NotFound,
    ValidationFailed,
    WriteFailed,
)
from order_intake.core.timeouts import bounded_read
from order_intake.models import ServiceType, StoreStatus
from order_intake.schemas import OrderCreate, OrderCreateResponse
from order_intake.services.catalog import CatalogResolver
from order_intake.services.delivery import DeliveryCostResolver, DeliveryQuote
from order_intake.services.geo.base import BaseGeoService
from order_intake.services.lifecycle import classify
from order_intake.services.pricing import money, price_order
from order_intake.services.sequence import SequenceAllocator
from order_intake.services.store.base import (
    BaseOrderStore,
    BranchConfig,
    CustomerProfile,
    OrderRecord,
)
from order_intake.services.writer import OrderWriter, build_line_rows

logger = logging.getLogger(__name__)


class IntakeState(str, Enum):
    VALIDATING = "validating"
    RESOLVING_CATALOG = "resolving_catalog"
    PRICING = "pricing"
    QUOTING_DELIVERY = "quoting_delivery"
    SEQUENCING = "sequencing"
    CLASSIFYING = "classifying"
    WRITING = "writing"
    DONE = "done"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IntakeResult:
    order_id: str
    tracking_code: str
    order_number: int
    status: str
    estimated_minutes: Optional[int]
    replayed: bool = False

    @classmethod
    def from_order(cls, order: OrderRecord, replayed: bool = False) -> "IntakeResult":
        return cls(
            order_id=order.id,
            tracking_code=order.tracking_code,
            order_number=order.order_number,
            status=order.status.value,
            estimated_minutes=order.estimated_minutes,
            replayed=replayed,
        )

    def to_response(self) -> OrderCreateResponse:
        return OrderCreateResponse(
            order_id=self.order_id,
            tracking_code=self.tracking_code,
            order_number=self.order_number,
            status=self.status,
            estimated_minutes=self.estimated_minutes,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _consume_write_outcome(write: asyncio.Future) -> None:
    """Retrieve the writer's outcome even when the request was cancelled mid-write."""
    if not write.cancelled() and write.exception() is not None:
        logger.debug(f"Shielded write finished with {write.exception()!r}")


class OrderIntake:
    """
    Orchestrates catalog, pricing, delivery, numbering, classification and
    writing for a single order request. Stateless between calls.
    """

    def __init__(
        self,
        store: BaseOrderStore,
        geo_service: BaseGeoService,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = get_settings()
        self.store = store
        self.clock = clock
        self.catalog = CatalogResolver(store)
        self.delivery = DeliveryCostResolver(store, geo_service)
        self.sequence = SequenceAllocator(store)
        self.writer = OrderWriter(store)

    async def submit(
        self,
        request: OrderCreate,
        customer_token: Optional[str] = None,
    ) -> IntakeResult:
        """
        Accept or reject one order.

        Args:
            request: Cart and customer data as sent by the client
            customer_token: Bearer token of a signed-in customer, if any

        Raises:
            IntakeError: Any rejection, carrying the state it happened in
        """
        state = IntakeState.VALIDATING
        try:
            profile = await self._lookup_customer(customer_token)
            request = self._backfill_customer(request, profile)
            self._validate_request(request)
            branch = await self._load_branch(request)

            if request.idempotency_key:
                existing = await self._find_replay(request)
                if existing is not None:
                    return existing

            state = self._transition(state, IntakeState.RESOLVING_CATALOG)
            now = self.clock()
            catalog = await self.catalog.resolve(
                (line.item_id for line in request.lines),
                today=now.date(),
            )
            for item in catalog.items.values():
                if not item.available_in_channel:
                    raise ValidationFailed(
                        f'"{item.name}" is not available for online orders',
                        item_id=item.id,
                    )

            state = self._transition(state, IntakeState.PRICING)
            resolved_lines, subtotal = price_order(request.lines, catalog)

            state = self._transition(state, IntakeState.QUOTING_DELIVERY)
            quote = await self.delivery.resolve(request, branch, subtotal)
            total = money(subtotal + quote.amount)

            state = self._transition(state, IntakeState.SEQUENCING)
            order_number = await self.sequence.allocate(branch.branch_id)

            state = self._transition(state, IntakeState.CLASSIFYING)
            classification = classify(request.payment_method, branch.auto_accept)
            estimated_minutes = await self._estimate_minutes(request, branch, quote)

            order = OrderRecord(
                id=str(uuid.uuid4()),
                branch_id=branch.branch_id,
                order_number=order_number,
                status=classification.status,
                channel=self.settings.order_channel,
                service_type=request.service_type,
                subtotal=subtotal,
                delivery_cost=quote.amount,
                total=total,
                payment_method=request.payment_method.strip().lower(),
                payment_state=classification.payment_state,
                customer_name=request.customer_name.strip(),
                customer_phone=request.customer_phone.strip(),
                customer_email=request.customer_email,
                customer_user_id=profile.user_id if profile else None,
                customer_notes=request.customer_notes,
                delivery_address=request.delivery_address,
                delivery_floor=request.delivery_floor,
                delivery_reference=request.delivery_reference,
                delivery_zone_id=quote.zone_id,
                delivery_lat=request.delivery_lat,
                delivery_lng=request.delivery_lng,
                delivery_distance_km=quote.distance_km,
                tracking_code=str(uuid.uuid4()),
                idempotency_key=request.idempotency_key,
                estimated_minutes=estimated_minutes,
                promised_at=now + timedelta(minutes=estimated_minutes) if estimated_minutes else None,
                prep_started_at=now if classification.starts_preparation else None,
                created_at=now,
            )
            rows = build_line_rows(order.id, resolved_lines, self.settings.default_station)
            order.line_count = len(rows)
            order.modifier_count = sum(len(modifiers) for _, modifiers in rows)

            state = self._transition(state, IntakeState.WRITING)
            write = asyncio.ensure_future(self.writer.write(order, rows))
            write.add_done_callback(_consume_write_outcome)
            try:
                await asyncio.shield(write)
            except WriteFailed as e:
                if request.idempotency_key and await self._key_taken(request, order.id):
                    raise IdempotencyConflict(
                        "An order with this idempotency key is already being processed",
                        idempotency_key=request.idempotency_key,
                    ) from e
                raise

            state = self._transition(state, IntakeState.DONE)
            logger.info(
                f"Order #{order.order_number} accepted for branch {order.branch_id} "
                f"({order.service_type.value}, {order.status.value}, total={order.total}"
                f"{', delivery quote degraded' if quote.degraded else ''})"
            )
            return IntakeResult.from_order(order)

        except IntakeError as e:
            e.state = state.value
            logger.warning(
                f"Order rejected in {state.value} for branch {request.branch_id}: "
                f"{e.kind} - {e.message}"
            )
            self._transition(state, IntakeState.REJECTED)
            raise

    @staticmethod
    def _transition(current: IntakeState, target: IntakeState) -> IntakeState:
        logger.debug(f"Intake: {current.value} → {target.value}")
        return target

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def _lookup_customer(self, token: Optional[str]) -> Optional[CustomerProfile]:
        """Profile of the signed-in caller; lookup problems only cost the backfill."""
        if not token:
            return None
        try:
            return await bounded_read(
                self.store.get_customer_by_token(token),
                self.settings.catalog_timeout_seconds,
                "customer profiles",
            )
        except IntakeError as e:
            logger.warning(f"Customer profile lookup skipped: {e.message}")
            return None

    @staticmethod
    def _backfill_customer(
        request: OrderCreate,
        profile: Optional[CustomerProfile],
    ) -> OrderCreate:
        """Fill a missing name or phone from the profile; explicit input always wins."""
        if profile is None:
            return request
        updates = {}
        if not (request.customer_name or "").strip() and profile.full_name:
            updates["customer_name"] = profile.full_name
        if not (request.customer_phone or "").strip() and profile.phone:
            updates["customer_phone"] = profile.phone
        return request.model_copy(update=updates) if updates else request

    @staticmethod
    def _validate_request(request: OrderCreate) -> None:
        if not request.branch_id.strip():
            raise ValidationFailed("branch_id is required")
        if not (request.customer_name or "").strip():
            raise ValidationFailed("customer_name is required")
        if not (request.customer_phone or "").strip():
            raise ValidationFailed("customer_phone is required")
        if not request.lines:
            raise ValidationFailed("At least one item is required")
        if request.service_type == ServiceType.DINE_IN:
            raise ValidationFailed("Dine-in is not available for online orders")
        if request.service_type == ServiceType.DELIVERY and not (request.delivery_address or "").strip():
            raise ValidationFailed("A delivery address is required for delivery")

    async def _load_branch(self, request: OrderCreate) -> BranchConfig:
        branch = await bounded_read(
            self.store.get_branch_config(request.branch_id),
            self.settings.catalog_timeout_seconds,
            "branch configuration",
        )
        if branch is None:
            raise NotFound(
                "Branch not found or online ordering not configured",
                branch_id=request.branch_id,
            )
        if not branch.channel_active:
            raise ChannelDisabled("Online ordering is not active for this branch")
        if branch.store_status != StoreStatus.OPEN:
            raise ChannelDisabled(
                branch.pause_message or "The branch is not taking orders right now"
            )
        if request.service_type == ServiceType.DELIVERY and not branch.delivery_enabled:
            raise ChannelDisabled("Delivery is not available at this branch")
        if request.service_type == ServiceType.PICKUP and not branch.pickup_enabled:
            raise ChannelDisabled("Pickup is not available at this branch")
        return branch

    async def _find_replay(self, request: OrderCreate) -> Optional[IntakeResult]:
        """
        Result of an earlier submission with the same idempotency key.

        Only an order whose lines and modifiers are all written is replayed;
        one still being written (or being compensated) is a conflict the
        caller should retry.
        """
        existing = await self._find_by_key(request)
        if existing is None:
            return None

        counts = await bounded_read(
            self.store.count_order_rows(existing.id),
            self.settings.catalog_timeout_seconds,
            "orders",
        )
        if (counts.lines, counts.modifiers) != (existing.line_count, existing.modifier_count):
            raise IdempotencyConflict(
                "An order with this idempotency key is already being processed",
                idempotency_key=request.idempotency_key,
            )
        logger.info(
            f"Replaying order #{existing.order_number} for idempotency key "
            f"{request.idempotency_key}"
        )
        return IntakeResult.from_order(existing, replayed=True)

    async def _find_by_key(self, request: OrderCreate) -> Optional[OrderRecord]:
        return await bounded_read(
            self.store.find_order_by_idempotency_key(request.branch_id, request.idempotency_key),
            self.settings.catalog_timeout_seconds,
            "orders",
        )

    async def _key_taken(self, request: OrderCreate, own_order_id: str) -> bool:
        existing = await self._find_by_key(request)
        return existing is not None and existing.id != own_order_id

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    async def _estimate_minutes(
        self,
        request: OrderCreate,
        branch: BranchConfig,
        quote: DeliveryQuote,
    ) -> int:
        """Zone estimate, else the queue-aware estimate, else branch defaults."""
        if quote.prep_minutes_override:
            return quote.prep_minutes_override

        try:
            dynamic = await bounded_read(
                self.store.get_dynamic_prep_minutes(branch.branch_id, request.service_type),
                self.settings.catalog_timeout_seconds,
                "preparation times",
            )
        except IntakeError as e:
            logger.warning(f"Dynamic preparation time skipped: {e.message}")
            dynamic = None
        if dynamic:
            return dynamic

        if request.service_type == ServiceType.DELIVERY:
            return branch.delivery_prep_minutes or self.settings.default_delivery_minutes
        return branch.pickup_prep_minutes or self.settings.default_pickup_minutes
