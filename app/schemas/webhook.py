"""Typed views over the Stripe webhook payloads the ledger understands.

Each handled event type maps to one model below; the envelope is validated
against the discriminated union before any reconciliation runs, so handlers
can rely on required fields being present.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from app.core.errors import InvalidEventPayload
from app.schemas.base import CamelModel
from app.utils.dates import from_timestamp


def _ref_id(value: Any) -> Any:
    # Stripe references are either an id string or an expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value


class StripePayload(BaseModel):
    class Config:
        extra = "ignore"


# --- provider objects ----------------------------------------------------------

class Period(StripePayload):
    start: Optional[int] = None
    end: Optional[int] = None


class PriceRef(StripePayload):
    id: Optional[str] = None
    product: Optional[str] = None

    @field_validator("product", mode="before")
    @classmethod
    def _product_id(cls, value):
        return _ref_id(value)


class SubscriptionItem(StripePayload):
    price: Optional[PriceRef] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class ItemList(StripePayload):
    data: List[SubscriptionItem] = Field(default_factory=list)


class SubscriptionObject(StripePayload):
    id: str
    status: str
    customer: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    cancel_at: Optional[int] = None
    canceled_at: Optional[int] = None
    ended_at: Optional[int] = None
    trial_end: Optional[int] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    items: ItemList = Field(default_factory=ItemList)

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_id(cls, value):
        return _ref_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value):
        return {str(k): str(v) for k, v in (value or {}).items()}

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    # Newer Stripe API versions only report the period on subscription items
    @property
    def period_start(self) -> Optional[datetime]:
        if self.current_period_start:
            return from_timestamp(self.current_period_start)
        item = self.first_item
        return from_timestamp(item.current_period_start) if item else None

    @property
    def period_end(self) -> Optional[datetime]:
        if self.current_period_end:
            return from_timestamp(self.current_period_end)
        item = self.first_item
        return from_timestamp(item.current_period_end) if item else None

    @property
    def product_id(self) -> str:
        item = self.first_item
        if item and item.price and item.price.product:
            return item.price.product
        return "unknown"


class CustomerObject(StripePayload):
    id: str
    email: Optional[str] = None


class CheckoutSessionObject(StripePayload):
    id: str
    subscription: Optional[str] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    customer_details: Optional[Dict[str, Any]] = None

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _ids(cls, value):
        return _ref_id(value)

    @property
    def email(self) -> Optional[str]:
        if self.customer_email:
            return self.customer_email
        return (self.customer_details or {}).get("email")


class InvoiceLine(StripePayload):
    period: Optional[Period] = None


class InvoiceLineList(StripePayload):
    data: List[InvoiceLine] = Field(default_factory=list)


class InvoiceObject(StripePayload):
    id: str
    subscription: Optional[str] = None
    customer: Optional[str] = None
    customer_email: Optional[str] = None
    lines: InvoiceLineList = Field(default_factory=InvoiceLineList)

    @model_validator(mode="before")
    @classmethod
    def _subscription_from_parent(cls, data):
        # API 2025-03-31 moved invoice.subscription under parent.subscription_details
        if isinstance(data, dict) and not data.get("subscription"):
            parent = data.get("parent") or {}
            details = parent.get("subscription_details") or {}
            if details.get("subscription"):
                data = {**data, "subscription": details["subscription"]}
        return data

    @field_validator("subscription", "customer", mode="before")
    @classmethod
    def _ids(cls, value):
        return _ref_id(value)

    @property
    def line_period(self) -> Optional[Period]:
        if self.lines.data and self.lines.data[0].period:
            return self.lines.data[0].period
        return None


# --- events ---------------------------------------------------------------------

class BaseEvent(StripePayload):
    id: str
    created: Optional[int] = None

    @property
    def created_at(self) -> Optional[datetime]:
        return from_timestamp(self.created)


class CheckoutSessionCompleted(BaseEvent):
    type: Literal["checkout.session.completed"]
    object: CheckoutSessionObject


class InvoicePaymentSucceeded(BaseEvent):
    type: Literal["invoice.payment_succeeded"]
    object: InvoiceObject


class InvoicePaymentFailed(BaseEvent):
    type: Literal["invoice.payment_failed"]
    object: InvoiceObject


class SubscriptionUpdated(BaseEvent):
    type: Literal["customer.subscription.updated"]
    object: SubscriptionObject


class SubscriptionDeleted(BaseEvent):
    type: Literal["customer.subscription.deleted"]
    object: SubscriptionObject


class SubscriptionTrialWillEnd(BaseEvent):
    type: Literal["customer.subscription.trial_will_end"]
    object: SubscriptionObject


LedgerEvent = Annotated[
    Union[
        CheckoutSessionCompleted,
        InvoicePaymentSucceeded,
        InvoicePaymentFailed,
        SubscriptionUpdated,
        SubscriptionDeleted,
        SubscriptionTrialWillEnd,
    ],
    Field(discriminator="type"),
]

HANDLED_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.trial_will_end",
})

_event_adapter = TypeAdapter(LedgerEvent)


def parse_event(raw: Dict[str, Any]) -> Optional[LedgerEvent]:
    """Validate a verified Stripe event dict.

    Returns None for event types the ledger does not handle and raises
    InvalidEventPayload when a handled type is missing required fields.
    """
    event_type = raw.get("type")
    if event_type not in HANDLED_EVENT_TYPES:
        return None

    data = raw.get("data") or {}
    envelope = {
        "id": raw.get("id"),
        "type": event_type,
        "created": raw.get("created"),
        "object": data.get("object"),
    }
    try:
        return _event_adapter.validate_python(envelope)
    except ValidationError as e:
        raise InvalidEventPayload(f"Malformed {event_type} payload: {e.error_count()} error(s)")


class WebhookAck(CamelModel):
    success: bool = True
    received: bool = True
    event_type: str
    outcome: str
