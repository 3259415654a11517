from .errors import (
    DispatchError,
    StaleState,
    IllegalTransition,
    Unauthorized,
    OrderUnavailable,
    NotWritable,
    NotVisible,
    OrderNotFound,
    RunnerNotFound,
    LocationNotFound,
    CorruptOrderState,
)
from .order_store import OrderStore
from .runners import RunnerDirectory
from .status_machine import StatusMachine, TransitionResult
from .claims import ClaimCoordinator, ClaimResult
from .tracking import LocationTracker

__all__ = [
    "DispatchError",
    "StaleState",
    "IllegalTransition",
    "Unauthorized",
    "OrderUnavailable",
    "NotWritable",
    "NotVisible",
    "OrderNotFound",
    "RunnerNotFound",
    "LocationNotFound",
    "CorruptOrderState",
    "OrderStore",
    "RunnerDirectory",
    "StatusMachine",
    "TransitionResult",
    "ClaimCoordinator",
    "ClaimResult",
    "LocationTracker",
]
