from pydantic import BaseModel, Field

from models import (
    ActorRole,
    DeliveryOrder,
    OrderStatus,
    RunnerAvailability,
    StatusEvent,
    TrackingSource,
)


class ClaimRequest(BaseModel):
    runner_id: str = Field(min_length=1)
    estimated_minutes: int | None = Field(default=None, ge=1, le=240)


class ClaimResponse(BaseModel):
    order: DeliveryOrder
    event: StatusEvent
    runner_status_updated: bool


class TransitionRequest(BaseModel):
    actor_id: str = Field(min_length=1)
    actor_role: ActorRole
    target: OrderStatus
    message: str | None = Field(default=None, max_length=500)
    estimated_minutes: int | None = Field(default=None, ge=1, le=240)


class TransitionResponse(BaseModel):
    order: DeliveryOrder
    event: StatusEvent | None = None
    changed: bool


class LocationUpdate(BaseModel):
    runner_id: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    heading: float | None = Field(default=None, ge=0, lt=360)
    speed: float | None = Field(default=None, ge=0)
    accuracy: float | None = Field(default=None, ge=0)
    source: TrackingSource = TrackingSource.FOREGROUND


class RunnerCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=80)
    vehicle_type: str = "bike"


class AvailabilityUpdate(BaseModel):
    availability: RunnerAvailability


class StatsResponse(BaseModel):
    runners: int
    delivery_orders: int
    status_events: int
    delivery_tracking: int


class ServiceStatus(BaseModel):
    location_stale_after_seconds: float
    available_orders_page_size: int


class ConfigUpdate(BaseModel):
    location_stale_after_seconds: float | None = Field(default=None, gt=0)
    available_orders_page_size: int | None = Field(default=None, ge=1, le=100)
