from .main import app
from .models import (
    ClaimRequest,
    ClaimResponse,
    TransitionRequest,
    TransitionResponse,
    LocationUpdate,
    RunnerCreate,
    AvailabilityUpdate,
    StatsResponse,
    ServiceStatus,
    ConfigUpdate,
)

__all__ = [
    "app",
    "ClaimRequest",
    "ClaimResponse",
    "TransitionRequest",
    "TransitionResponse",
    "LocationUpdate",
    "RunnerCreate",
    "AvailabilityUpdate",
    "StatsResponse",
    "ServiceStatus",
    "ConfigUpdate",
]
