"""
Status Machine

One state machine for both fulfillment modes, parameterized by mode and
delivery type:

    network / delivery:  accepted -> picked_up -> on_the_way -> delivered
    network / pickup:    accepted -> ready -> delivered
    merchant / either:   pending -> accepted -> ready -> on_the_way -> delivered

Every non-terminal status may also move to cancelled. The network
pending -> accepted edge is the claim and only ClaimCoordinator takes it.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from db import utcnow
from models import (
    ActorRole,
    DeliveryOrder,
    DeliveryType,
    FulfillmentMode,
    OrderStatus,
    StatusEvent,
    STATUS_MESSAGES,
    TERMINAL_STATUSES,
)
from services import access
from services.errors import IllegalTransition, RunnerNotFound, Unauthorized
from services.order_store import OrderStore
from services.runners import RunnerDirectory

logger = logging.getLogger(__name__)


S = OrderStatus

NETWORK_DELIVERY_PATH = [S.ACCEPTED, S.PICKED_UP, S.ON_THE_WAY, S.DELIVERED]
NETWORK_PICKUP_PATH = [S.ACCEPTED, S.READY, S.DELIVERED]
MERCHANT_PATH = [S.PENDING, S.ACCEPTED, S.READY, S.ON_THE_WAY, S.DELIVERED]

# Timestamp column stamped the first time a status is reached
TIMESTAMP_FIELDS = {
    S.ACCEPTED: "accepted_at",
    S.PICKED_UP: "picked_up_at",
    S.DELIVERED: "delivered_at",
    S.CANCELLED: "cancelled_at",
}


def _graph(path: list[OrderStatus]) -> dict[OrderStatus, frozenset[OrderStatus]]:
    graph = {}
    for current, following in zip(path, path[1:]):
        graph[current] = frozenset({following, S.CANCELLED})
    graph[path[-1]] = frozenset()
    graph[S.CANCELLED] = frozenset()
    return graph


GRAPHS = {
    (FulfillmentMode.NETWORK, DeliveryType.DELIVERY): _graph(NETWORK_DELIVERY_PATH),
    (FulfillmentMode.NETWORK, DeliveryType.PICKUP): _graph(NETWORK_PICKUP_PATH),
    (FulfillmentMode.MERCHANT, DeliveryType.DELIVERY): _graph(MERCHANT_PATH),
    (FulfillmentMode.MERCHANT, DeliveryType.PICKUP): _graph(MERCHANT_PATH),
}
# Claimable orders can be cancelled before anyone takes them
for _mode_type, _graph_edges in GRAPHS.items():
    if _mode_type[0] == FulfillmentMode.NETWORK:
        _graph_edges[S.PENDING] = frozenset({S.CANCELLED})


def successors(order: DeliveryOrder) -> frozenset[OrderStatus]:
    graph = GRAPHS[(order.fulfillment_mode, order.delivery_type)]
    return graph.get(order.status, frozenset())


def is_legal(order: DeliveryOrder, target: OrderStatus) -> bool:
    return target in successors(order)


@dataclass
class TransitionResult:
    order: DeliveryOrder
    event: StatusEvent | None  # None when the request was a no-op
    runner_released: bool | None = None

    @property
    def changed(self) -> bool:
        return self.event is not None


class StatusMachine:
    def __init__(self, store: OrderStore | None = None,
                 runners: RunnerDirectory | None = None,
                 db_path: Path | str | None = None):
        self.store = store or OrderStore(db_path)
        self.runners = runners or RunnerDirectory(db_path)

    def transition(
        self,
        order_id: int,
        actor_id: str,
        actor_role: ActorRole,
        target: OrderStatus,
        message: str | None = None,
        estimated_minutes: int | None = None,
    ) -> TransitionResult:
        order = self.store.get_order(order_id)

        if not access.is_party(actor_id, actor_role, order):
            raise Unauthorized(f"{actor_role.value} {actor_id} is not part of order {order_id}")

        # Duplicate retries of an already-applied request succeed quietly
        if order.status == target:
            logger.debug("Order %s already %s, nothing to do", order_id, target.value)
            return TransitionResult(order=order, event=None)

        if not is_legal(order, target):
            if order.status in TERMINAL_STATUSES:
                raise IllegalTransition(f"Order {order_id} is {order.status.value} and can no longer change")
            allowed = ", ".join(sorted(s.value for s in successors(order))) or "none"
            raise IllegalTransition(
                f"Cannot move order {order_id} from {order.status.value} to {target.value} "
                f"(allowed: {allowed})"
            )

        if not access.can_transition(actor_id, actor_role, order, target):
            raise Unauthorized(
                f"{actor_role.value} may not move order {order_id} to {target.value}"
            )

        now = utcnow()
        fields = {}
        if target in TIMESTAMP_FIELDS:
            fields[TIMESTAMP_FIELDS[target]] = now
        if estimated_minutes is not None:
            if target != S.ACCEPTED:
                raise IllegalTransition("estimated_minutes can only be set when accepting")
            fields["estimated_minutes"] = estimated_minutes

        event = StatusEvent(
            order_id=order_id,
            status=target,
            message=message or STATUS_MESSAGES[target],
            actor_id=actor_id,
            actor_role=actor_role,
            created_at=now,
        )
        updated, saved_event = self.store.update_status(
            order_id, order.status, target, fields=fields, event=event
        )

        released = None
        if updated.is_network and updated.runner_id and target in TERMINAL_STATUSES:
            released = self._release_runner(updated)

        return TransitionResult(order=updated, event=saved_event, runner_released=released)

    def _release_runner(self, order: DeliveryOrder) -> bool:
        # The committed status is the source of truth; a failed release is
        # reported, never rolled back.
        fee = order.delivery_fee_cents if order.status == S.DELIVERED else None
        try:
            self.runners.release(order.runner_id, delivered_fee_cents=fee)
        except RunnerNotFound:
            logger.warning("Runner %s on order %s no longer exists", order.runner_id, order.id)
            return False
        except sqlite3.Error:
            logger.exception("Could not release runner %s after order %s", order.runner_id, order.id)
            return False
        return True
