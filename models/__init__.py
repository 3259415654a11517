from .schemas import (
    ActorRole,
    DeliveryOrder,
    DeliveryType,
    FulfillmentMode,
    LocationSample,
    OrderSpec,
    OrderStatus,
    Runner,
    RunnerAvailability,
    StatusEvent,
    TrackedLocation,
    TrackingSource,
    STATUS_LABELS,
    STATUS_MESSAGES,
    TERMINAL_STATUSES,
)

__all__ = [
    "ActorRole",
    "DeliveryOrder",
    "DeliveryType",
    "FulfillmentMode",
    "LocationSample",
    "OrderSpec",
    "OrderStatus",
    "Runner",
    "RunnerAvailability",
    "StatusEvent",
    "TrackedLocation",
    "TrackingSource",
    "STATUS_LABELS",
    "STATUS_MESSAGES",
    "TERMINAL_STATUSES",
]
