from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY = "ready"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FulfillmentMode(str, Enum):
    MERCHANT = "merchant_fulfilled"  # seller delivers or holds for pickup
    NETWORK = "network_fulfilled"  # an independent runner claims and carries it


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class ActorRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    RUNNER = "runner"
    SYSTEM = "system"


class RunnerAvailability(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"


class TrackingSource(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    MANUAL = "manual"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.ACCEPTED: "Accepted",
    OrderStatus.READY: "Ready for Pickup",
    OrderStatus.PICKED_UP: "Picked Up",
    OrderStatus.ON_THE_WAY: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

# Default timeline message when the actor supplies none
STATUS_MESSAGES = {
    OrderStatus.PENDING: "Waiting for the order to be accepted",
    OrderStatus.ACCEPTED: "Your order has been accepted",
    OrderStatus.READY: "Your order is ready",
    OrderStatus.PICKED_UP: "Your order has been picked up",
    OrderStatus.ON_THE_WAY: "Your order is on its way",
    OrderStatus.DELIVERED: "Your order has been delivered",
    OrderStatus.CANCELLED: "This order was cancelled",
}


class OrderSpec(BaseModel):
    """Checkout's input for a new delivery order."""
    buyer_id: str = Field(min_length=1)
    seller_id: str = Field(min_length=1)
    fulfillment_mode: FulfillmentMode
    delivery_type: DeliveryType
    listing_id: Optional[int] = None
    listing_title: str = Field(min_length=1)
    pickup_address: str = Field(min_length=1)
    pickup_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    delivery_address: Optional[str] = None
    delivery_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    delivery_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    subtotal_cents: int = Field(ge=0)
    tax_cents: int = Field(ge=0)
    delivery_fee_cents: int = Field(ge=0)
    total_cents: int = Field(ge=0)

    @model_validator(mode="after")
    def check_breakdown(self):
        if self.total_cents != self.subtotal_cents + self.tax_cents + self.delivery_fee_cents:
            raise ValueError("total_cents must equal subtotal_cents + tax_cents + delivery_fee_cents")
        if self.delivery_type == DeliveryType.DELIVERY and not self.delivery_address:
            raise ValueError("delivery_address is required for delivery orders")
        if self.buyer_id == self.seller_id:
            raise ValueError("buyer and seller must differ")
        return self


class DeliveryOrder(BaseModel):
    id: int
    order_number: str
    buyer_id: str
    seller_id: str
    runner_id: Optional[str] = None
    fulfillment_mode: FulfillmentMode
    delivery_type: DeliveryType
    status: OrderStatus
    listing_id: Optional[int] = None
    listing_title: str
    pickup_address: str
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    delivery_address: Optional[str] = None
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    subtotal_cents: int
    tax_cents: int
    delivery_fee_cents: int
    total_cents: int
    estimated_minutes: Optional[int] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_network(self) -> bool:
        return self.fulfillment_mode == FulfillmentMode.NETWORK


class StatusEvent(BaseModel):
    id: Optional[int] = None
    order_id: int
    status: OrderStatus
    message: Optional[str] = None
    actor_id: str
    actor_role: ActorRole
    created_at: datetime


class LocationSample(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    heading: Optional[float] = Field(default=None, ge=0, lt=360)
    speed_mps: Optional[float] = Field(default=None, ge=0)
    accuracy_m: Optional[float] = Field(default=None, ge=0)
    source: TrackingSource = TrackingSource.FOREGROUND
    recorded_at: Optional[datetime] = None


class TrackedLocation(BaseModel):
    """Stored position of the runner on an order."""
    order_id: int
    runner_id: str
    lat: float
    lng: float
    heading: Optional[float] = None
    speed_mps: Optional[float] = None
    accuracy_m: Optional[float] = None
    source: Optional[TrackingSource] = None
    updated_at: datetime
    is_stale: bool = False


class Runner(BaseModel):
    runner_id: str
    display_name: str
    vehicle_type: str = "bike"
    availability: RunnerAvailability = RunnerAvailability.OFFLINE
    total_deliveries: int = 0
    total_earnings_cents: int = 0
    created_at: datetime
