"""
Campus Delivery Dispatch API

Delivery job lifecycle over HTTP:
- Runners claim pending network-fulfilled orders (first claim wins)
- Buyers, sellers, runners and the system drive validated status transitions
- Assigned runners publish live positions; buyers and runners read them
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from db import init_database, get_table_counts
from models import (
    ActorRole,
    DeliveryOrder,
    LocationSample,
    OrderSpec,
    Runner,
    StatusEvent,
    TrackedLocation,
)
from services import (
    ClaimCoordinator,
    DispatchError,
    LocationTracker,
    OrderStore,
    RunnerDirectory,
    StatusMachine,
    access,
)
from services.tracking import DEFAULT_STALE_AFTER_SECONDS
from api.models import (
    AvailabilityUpdate,
    ClaimRequest,
    ClaimResponse,
    ConfigUpdate,
    LocationUpdate,
    RunnerCreate,
    ServiceStatus,
    StatsResponse,
    TransitionRequest,
    TransitionResponse,
)

logger = logging.getLogger(__name__)


# Global state shared by request handlers
class AppState:
    def __init__(self):
        self.db_path: Path | None = None

        # Runtime-tunable settings
        self.location_stale_after_seconds = DEFAULT_STALE_AFTER_SECONDS
        self.available_orders_page_size = 20

        # Services (lazy init after DB ready)
        self._store = None
        self._runners = None
        self._status_machine = None
        self._claims = None
        self._tracker = None

    def configure(self, db_path: Path | str | None = None):
        """Point every service at `db_path` (None means db.DATABASE_PATH)."""
        self.db_path = Path(db_path) if db_path else None
        self._store = None
        self._runners = None
        self._status_machine = None
        self._claims = None
        self._tracker = None

    @property
    def store(self) -> OrderStore:
        if not self._store:
            self._store = OrderStore(self.db_path)
        return self._store

    @property
    def runners(self) -> RunnerDirectory:
        if not self._runners:
            self._runners = RunnerDirectory(self.db_path)
        return self._runners

    @property
    def status_machine(self) -> StatusMachine:
        if not self._status_machine:
            self._status_machine = StatusMachine(self.store, self.runners)
        return self._status_machine

    @property
    def claims(self) -> ClaimCoordinator:
        if not self._claims:
            self._claims = ClaimCoordinator(self.store, self.runners)
        return self._claims

    @property
    def tracker(self) -> LocationTracker:
        if not self._tracker:
            self._tracker = LocationTracker(
                self.store, stale_after_seconds=self.location_stale_after_seconds
            )
        return self._tracker


state = AppState()


def http_error(error: DispatchError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


def present_order(order: DeliveryOrder, viewer_id: str | None) -> DeliveryOrder:
    """Hide the exact pickup spot from anyone who should not see it."""
    runner = state.runners.find(viewer_id) if viewer_id else None
    if access.can_view_pickup(viewer_id, order, runner):
        return order
    return access.mask_pickup(order)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    path = init_database(reset=False, db_path=state.db_path)
    logger.info("Dispatch API ready (database: %s)", path)
    yield
    logger.info("Dispatch API shutting down")


app = FastAPI(
    title="Campus Delivery Dispatch API",
    description="Delivery job claims, status lifecycle and live runner tracking",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health & Status
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    return {"status": "ok", "service": "campus-delivery-dispatch"}


@app.get("/stats", response_model=StatsResponse, tags=["Health"])
async def get_stats():
    """Get current database statistics."""
    counts = get_table_counts(state.db_path)
    return StatsResponse(
        runners=counts.get("runners", 0),
        delivery_orders=counts.get("delivery_orders", 0),
        status_events=counts.get("status_events", 0),
        delivery_tracking=counts.get("delivery_tracking", 0),
    )


@app.get("/status", response_model=ServiceStatus, tags=["Health"])
async def get_service_status():
    """Get runtime settings."""
    return ServiceStatus(
        location_stale_after_seconds=state.location_stale_after_seconds,
        available_orders_page_size=state.available_orders_page_size,
    )


@app.patch("/services/config", response_model=ServiceStatus, tags=["Health"])
async def update_service_config(config: ConfigUpdate):
    """Update runtime settings."""
    if config.location_stale_after_seconds is not None:
        state.location_stale_after_seconds = config.location_stale_after_seconds
        state.tracker.stale_after_seconds = config.location_stale_after_seconds
    if config.available_orders_page_size is not None:
        state.available_orders_page_size = config.available_orders_page_size

    return ServiceStatus(
        location_stale_after_seconds=state.location_stale_after_seconds,
        available_orders_page_size=state.available_orders_page_size,
    )


# =============================================================================
# Order Endpoints
# =============================================================================

@app.post("/orders", response_model=DeliveryOrder, status_code=201, tags=["Orders"])
def create_order(spec: OrderSpec):
    """Record a delivery order placed at checkout."""
    return state.store.create_order(spec)


@app.get("/orders", response_model=list[DeliveryOrder], tags=["Orders"])
def list_orders(
    user_id: str,
    role: ActorRole = ActorRole.BUYER,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Order history for a buyer, seller or runner."""
    if role == ActorRole.SYSTEM:
        raise HTTPException(status_code=400, detail="role must be buyer, seller or runner")
    try:
        orders = state.store.list_for_party(user_id, role, limit=limit, offset=offset)
    except DispatchError as e:
        raise http_error(e) from e
    return [present_order(o, user_id) for o in orders]


@app.get("/orders/available", response_model=list[DeliveryOrder], tags=["Orders"])
def list_available_orders(runner_id: str | None = None, limit: int | None = None, offset: int = 0):
    """Pending network orders that nobody has claimed yet."""
    limit = limit or state.available_orders_page_size
    try:
        orders = state.store.list_available(limit=limit, offset=offset)
    except DispatchError as e:
        raise http_error(e) from e
    return [present_order(o, runner_id) for o in orders]


@app.get("/orders/{order_id}", response_model=DeliveryOrder, tags=["Orders"])
def get_order(order_id: int, viewer_id: str | None = None):
    """Get a delivery order."""
    try:
        order = state.store.get_order(order_id)
    except DispatchError as e:
        raise http_error(e) from e
    return present_order(order, viewer_id)


@app.get("/orders/{order_id}/events", response_model=list[StatusEvent], tags=["Orders"])
def list_order_events(order_id: int, after_id: int | None = None):
    """Status timeline, oldest first. Poll with `after_id` for new entries."""
    try:
        state.store.get_order(order_id)
    except DispatchError as e:
        raise http_error(e) from e
    return state.store.list_events(order_id, after_id=after_id)


@app.post("/orders/{order_id}/claim", response_model=ClaimResponse, tags=["Lifecycle"])
def claim_order(order_id: int, request: ClaimRequest):
    """Claim a pending order for a runner. 409 if someone else got it first."""
    try:
        result = state.claims.claim(order_id, request.runner_id, request.estimated_minutes)
    except DispatchError as e:
        raise http_error(e) from e
    return ClaimResponse(
        order=result.order,
        event=result.event,
        runner_status_updated=result.runner_status_updated,
    )


@app.post("/orders/{order_id}/transition", response_model=TransitionResponse, tags=["Lifecycle"])
def transition_order(order_id: int, request: TransitionRequest):
    """Move an order along its status graph."""
    try:
        result = state.status_machine.transition(
            order_id,
            request.actor_id,
            request.actor_role,
            request.target,
            message=request.message,
            estimated_minutes=request.estimated_minutes,
        )
    except DispatchError as e:
        raise http_error(e) from e
    return TransitionResponse(
        order=present_order(result.order, request.actor_id),
        event=result.event,
        changed=result.changed,
    )


# =============================================================================
# Tracking Endpoints
# =============================================================================

@app.post("/orders/{order_id}/location", status_code=204, response_class=Response, tags=["Tracking"])
def publish_location(order_id: int, update: LocationUpdate):
    """Store the assigned runner's current position."""
    sample = LocationSample(
        lat=update.lat,
        lng=update.lng,
        heading=update.heading,
        speed_mps=update.speed,
        accuracy_m=update.accuracy,
        source=update.source,
    )
    try:
        state.tracker.publish(order_id, update.runner_id, sample)
    except DispatchError as e:
        raise http_error(e) from e
    return Response(status_code=204)


@app.get("/orders/{order_id}/location", response_model=TrackedLocation, tags=["Tracking"])
def read_location(order_id: int, requester_id: str):
    """Latest runner position, for the buyer or the assigned runner only."""
    try:
        return state.tracker.read(order_id, requester_id)
    except DispatchError as e:
        raise http_error(e) from e


# =============================================================================
# Runner Endpoints
# =============================================================================

@app.post("/runners", response_model=Runner, status_code=201, tags=["Runners"])
def register_runner(request: RunnerCreate):
    """Register a new runner (starts offline)."""
    return state.runners.register(request.display_name, request.vehicle_type)


@app.get("/runners/{runner_id}", response_model=Runner, tags=["Runners"])
def get_runner(runner_id: str):
    """Get a specific runner."""
    try:
        return state.runners.get(runner_id)
    except DispatchError as e:
        raise http_error(e) from e


@app.patch("/runners/{runner_id}/availability", response_model=Runner, tags=["Runners"])
def update_runner_availability(runner_id: str, update: AvailabilityUpdate):
    """Go online or offline."""
    try:
        return state.runners.set_availability(runner_id, update.availability)
    except DispatchError as e:
        raise http_error(e) from e


@app.get("/runners/{runner_id}/orders", response_model=list[DeliveryOrder], tags=["Runners"])
def list_runner_orders(runner_id: str, active_only: bool = True):
    """Orders claimed by a runner."""
    try:
        state.runners.get(runner_id)
        return state.store.list_for_runner(runner_id, active_only=active_only)
    except DispatchError as e:
        raise http_error(e) from e
