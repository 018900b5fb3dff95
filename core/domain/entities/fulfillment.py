"""
Fulfillment aggregate root.

Carries the shipping label state machine:

    NONE -> PENDING_PURCHASE -> PURCHASED
    PURCHASED -> VOID_REQUESTED -> VOIDED | VOID_FAILED

Shipping itself is recorded by ``shipped_at``.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shopflow_sdk.utils.datetime import utc_now

from ..enums import LabelStatus
from ..events.order_events import FulfillmentCanceled
from ..events.shipping_events import (
    ShipmentCreated,
    ShipmentItemData,
    ShipmentLabelPurchased,
    ShipmentLabelVoided,
    ShipmentLabelVoidFailed,
)
from .aggregate import AggregateRoot

MANUAL_PROVIDER_ID = "manual"


@dataclass
class FulfillmentItem:
    """A line item quantity allocated to a fulfillment."""

    id: str
    line_item_id: str
    quantity: int
    title: str = ""
    sku: Optional[str] = None


@dataclass
class Fulfillment(AggregateRoot):
    """Fulfillment aggregate root with label lifecycle."""

    id: str = ""
    order_id: str = ""
    provider_id: Optional[str] = None
    items: List[FulfillmentItem] = field(default_factory=list)
    delivery_address: Dict[str, Any] = field(default_factory=dict)

    label_status: LabelStatus = LabelStatus.NONE
    label_idempotency_key: Optional[str] = None
    label_attempt: int = 0
    label_id: Optional[str] = None
    label_url: Optional[str] = None
    label_cost: Optional[Decimal] = None
    label_currency: Optional[str] = None
    carrier_code: Optional[str] = None
    service_code: Optional[str] = None
    label_void_error: Optional[str] = None
    label_purchased_at: Optional[datetime] = None
    # Start of the current purchase lease while PENDING_PURCHASE
    label_pending_since: Optional[datetime] = None

    tracking_numbers: List[str] = field(default_factory=list)
    tracking_urls: List[str] = field(default_factory=list)
    shipped_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    version: int = 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def provider(self) -> str:
        return self.provider_id or MANUAL_PROVIDER_ID

    def find_item(self, line_item_id: str) -> Optional[FulfillmentItem]:
        return next((item for item in self.items if item.line_item_id == line_item_id), None)

    def is_shipped(self) -> bool:
        return self.shipped_at is not None

    def is_canceled(self) -> bool:
        return self.canceled_at is not None

    def has_label_purchased(self) -> bool:
        return self.label_id is not None and self.label_status in (
            LabelStatus.PURCHASED,
            LabelStatus.VOID_REQUESTED,
            LabelStatus.VOID_FAILED,
        )

    def can_purchase_label(self) -> bool:
        return (
            not self.is_shipped()
            and not self.is_canceled()
            and self.label_status in (LabelStatus.NONE, LabelStatus.VOIDED)
        )

    def can_void_label(self) -> bool:
        return self.label_id is not None and self.label_status in (
            LabelStatus.PURCHASED,
            LabelStatus.VOID_FAILED,
        )

    @property
    def tracking_number(self) -> Optional[str]:
        return self.tracking_numbers[0] if self.tracking_numbers else None

    @property
    def tracking_url(self) -> Optional[str]:
        return self.tracking_urls[0] if self.tracking_urls else None

    # -------------------------------------------------------------------------
    # Label purchase
    # -------------------------------------------------------------------------

    def generate_label_idempotency_key(self) -> str:
        """
        Deterministic key for the next label purchase.

        The first purchase uses ``label:<fulfillment_id>``; a purchase after
        a void gets a ``:<attempt>`` suffix so the provider does not replay
        the voided label.
        """
        if self.label_attempt == 0:
            return f"label:{self.id}"
        return f"label:{self.id}:{self.label_attempt}"

    def mark_label_pending_purchase(self, idempotency_key: str) -> None:
        """
        Record intent to buy a label before calling the provider.

        Starts a purchase lease; while it is fresh other runs must not call
        the provider for this fulfillment.

        Raises:
            ValueError: Fulfillment is not eligible for a purchase
        """
        if not self.can_purchase_label():
            raise ValueError(
                f"Fulfillment {self.id} cannot purchase a label (label status: {self.label_status.value})"
            )
        if self.label_idempotency_key is None:
            self.label_idempotency_key = idempotency_key
        self.label_status = LabelStatus.PENDING_PURCHASE
        self.label_pending_since = utc_now()

    def is_label_purchase_in_progress(self, lease: timedelta, now: Optional[datetime] = None) -> bool:
        """True while another run holds a fresh PENDING_PURCHASE lease."""
        if self.label_status != LabelStatus.PENDING_PURCHASE or self.label_pending_since is None:
            return False
        return (now or utc_now()) - self.label_pending_since < lease

    def resume_label_purchase(self) -> None:
        """
        Take over a PENDING_PURCHASE whose lease expired or was released.

        The stored idempotency key is kept so the provider replays the
        label of the earlier attempt instead of buying a second one.

        Raises:
            ValueError: Fulfillment is not pending a purchase
        """
        if self.label_status != LabelStatus.PENDING_PURCHASE:
            raise ValueError(
                f"Fulfillment {self.id} has no pending label purchase (label status: {self.label_status.value})"
            )
        self.label_pending_since = utc_now()

    def release_label_purchase(self) -> None:
        """Drop the purchase lease so the next run can resume right away."""
        if self.label_status == LabelStatus.PENDING_PURCHASE:
            self.label_pending_since = None

    def apply_label_purchase(
        self,
        label_id: str,
        tracking_number: Optional[str],
        tracking_url: Optional[str] = None,
        label_url: Optional[str] = None,
        carrier: Optional[str] = None,
        service: Optional[str] = None,
        cost: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> None:
        """Store the purchased label and record ShipmentLabelPurchased."""
        self.label_id = label_id
        self.label_url = label_url
        self.label_cost = cost
        self.label_currency = currency
        self.carrier_code = carrier
        self.service_code = service
        self.label_status = LabelStatus.PURCHASED
        self.label_void_error = None
        self.label_purchased_at = utc_now()
        self.label_pending_since = None
        if tracking_number and tracking_number not in self.tracking_numbers:
            self.tracking_numbers.append(tracking_number)
        if tracking_url and tracking_url not in self.tracking_urls:
            self.tracking_urls.append(tracking_url)

        self._record_event(
            ShipmentLabelPurchased(
                fulfillment_id=self.id,
                order_id=self.order_id,
                label_id=label_id,
                tracking_number=tracking_number,
                tracking_url=tracking_url,
                carrier=carrier,
                service=service,
                cost=cost,
                label_url=label_url,
                provider=self.provider,
                idempotency_key=self.label_idempotency_key or "",
            )
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def ship(self, items: List[ShipmentItemData]) -> None:
        """
        Business rule: mark shipped and record ShipmentCreated.

        Raises:
            ValueError: Fulfillment canceled or already shipped
        """
        if self.is_canceled():
            raise ValueError(f"Cannot ship canceled fulfillment: {self.id}")
        if self.is_shipped():
            raise ValueError(f"Fulfillment already shipped: {self.id}")
        self.shipped_at = utc_now()
        self._record_event(
            ShipmentCreated(
                fulfillment_id=self.id,
                order_id=self.order_id,
                tracking_number=self.tracking_number,
                tracking_url=self.tracking_url,
                carrier_code=self.carrier_code,
                label_id=self.label_id,
                items=list(items),
            )
        )

    def cancel(self) -> None:
        """
        Business rule: cancel an unshipped fulfillment.

        Raises:
            ValueError: Fulfillment already shipped
        """
        if self.is_shipped():
            raise ValueError(f"Cannot cancel shipped fulfillment: {self.id}")
        if self.is_canceled():
            return
        self.canceled_at = utc_now()
        self._record_event(FulfillmentCanceled(fulfillment_id=self.id, order_id=self.order_id))

    def restore(self) -> None:
        """Undo ``cancel()``; used when a cancellation saga unwinds."""
        self.canceled_at = None

    # -------------------------------------------------------------------------
    # Label void
    # -------------------------------------------------------------------------

    def mark_label_void_requested(self) -> None:
        """
        Raises:
            ValueError: No voidable label
        """
        if not self.can_void_label():
            raise ValueError(
                f"Fulfillment {self.id} has no voidable label (label status: {self.label_status.value})"
            )
        self.label_status = LabelStatus.VOID_REQUESTED

    def mark_label_voided(self, refund_amount: Optional[Decimal] = None) -> None:
        self.label_status = LabelStatus.VOIDED
        self.label_void_error = None
        self.label_attempt += 1
        self.label_idempotency_key = None
        self._record_event(
            ShipmentLabelVoided(
                fulfillment_id=self.id,
                order_id=self.order_id,
                label_id=self.label_id or "",
                provider=self.provider,
                refund_amount=refund_amount,
            )
        )

    def mark_label_void_failed(self, error: str) -> None:
        self.label_status = LabelStatus.VOID_FAILED
        self.label_void_error = error
        self._record_event(
            ShipmentLabelVoidFailed(
                fulfillment_id=self.id,
                order_id=self.order_id,
                label_id=self.label_id or "",
                provider=self.provider,
                error=error,
                requires_manual_intervention=True,
            )
        )

    def record_unapplied_label_void(
        self,
        label_id: str,
        success: bool,
        error: Optional[str] = None,
        refund_amount: Optional[Decimal] = None,
    ) -> None:
        """
        Record the void of a label bought by a shipment that never applied it.

        A successful void frees the fulfillment for a new purchase under a
        fresh idempotency key; a failed one leaves the label on record as
        VOID_FAILED for manual follow-up.

        Raises:
            ValueError: Fulfillment is not pending a purchase
        """
        if self.label_status != LabelStatus.PENDING_PURCHASE:
            raise ValueError(
                f"Fulfillment {self.id} has no pending label purchase (label status: {self.label_status.value})"
            )
        self.label_id = label_id
        self.label_pending_since = None
        if success:
            self.mark_label_voided(refund_amount)
        else:
            self.mark_label_void_failed(error or "Unknown error")
