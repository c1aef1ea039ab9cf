"""Typed views of payment processor objects.

Maps the subset of the Stripe object schema the engine reads. Nested fields the
processor can return either as an id or as an expanded object are typed as
``Reference[T]`` and resolved with :func:`reference_id` / :func:`expanded`.
"""

from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T", bound=BaseModel)

Reference = Union[str, T]


def reference_id(ref: Optional[Union[str, BaseModel]]) -> Optional[str]:
    """Return the id behind a reference, whether it is expanded or not."""
    if ref is None:
        return None
    if isinstance(ref, str):
        return ref
    return getattr(ref, "id", None)


def expanded(ref: Optional[Union[str, T]]) -> Optional[T]:
    """Return the expanded object behind a reference, or None if only an id is known."""
    if ref is None or isinstance(ref, str):
        return None
    return ref


class RemoteProduct(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    active: bool = True
    deleted: bool = False


class RemoteRecurring(BaseModel):
    interval: Optional[str] = None
    interval_count: Optional[int] = None
    trial_period_days: Optional[int] = None


class RemotePrice(BaseModel):
    id: str
    product: Optional[Reference[RemoteProduct]] = None
    unit_amount: Optional[int] = None
    currency: Optional[str] = None
    type: Optional[str] = None
    active: bool = True
    deleted: bool = False
    recurring: Optional[RemoteRecurring] = None


class RemoteCustomer(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    deleted: bool = False


class RemoteCharge(BaseModel):
    id: str
    amount: Optional[int] = None
    customer: Optional[str] = None


class RemotePaymentIntent(BaseModel):
    id: str
    status: Optional[str] = None
    client_secret: Optional[str] = None
    latest_charge: Optional[Reference[RemoteCharge]] = None


class RemoteInvoice(BaseModel):
    id: str
    status: Optional[str] = None
    amount_paid: int = 0
    charge: Optional[Reference[RemoteCharge]] = None
    payment_intent: Optional[Reference[RemotePaymentIntent]] = None
    subscription: Optional[str] = None


class RemoteSubscriptionItem(BaseModel):
    id: str
    price: Reference[RemotePrice]


class RemoteItemList(BaseModel):
    data: list[RemoteSubscriptionItem] = Field(default_factory=list)


class RemotePhaseItem(BaseModel):
    price: Reference[RemotePrice]
    quantity: Optional[int] = None


class RemotePhase(BaseModel):
    start_date: int
    end_date: Optional[int] = None
    items: list[RemotePhaseItem] = Field(default_factory=list)
    proration_behavior: Optional[str] = None

    def contains(self, now_unix: int) -> bool:
        """Whether the phase window ``[start, end)`` covers ``now_unix``."""
        return self.end_date is not None and self.start_date <= now_unix < self.end_date


class RemoteSchedule(BaseModel):
    id: str
    status: Optional[str] = None
    end_behavior: Optional[str] = None
    subscription: Optional[str] = None
    released_subscription: Optional[str] = None
    phases: list[RemotePhase] = Field(default_factory=list)


class RemoteSubscription(BaseModel):
    id: str
    customer: Reference[RemoteCustomer]
    status: str
    items: RemoteItemList = Field(default_factory=RemoteItemList)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    start_date: Optional[int] = None
    ended_at: Optional[int] = None
    canceled_at: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    latest_invoice: Optional[Reference[RemoteInvoice]] = None
    schedule: Optional[Reference[RemoteSchedule]] = None

    @property
    def first_item(self) -> Optional[RemoteSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return reference_id(item.price) if item else None


class RemoteRefund(BaseModel):
    id: str
    amount: int = 0
    charge: Optional[Reference[RemoteCharge]] = None
    payment_intent: Optional[str] = None
    reason: Optional[str] = None
    status: Optional[str] = None
    created: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RemoteEventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class RemoteEvent(BaseModel):
    """Verified webhook notification."""

    id: str
    type: str
    created: Optional[int] = None
    data: RemoteEventData = Field(default_factory=RemoteEventData)
