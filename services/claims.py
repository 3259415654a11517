"""
Claim Coordinator

Lets online runners race for pending network-fulfilled orders. The claim is a
single conditional write (pending and unassigned -> accepted), so however
many runners try at once exactly one commits and the rest get
OrderUnavailable. First write to land wins: there is no priority queue and
no reservation window, so a runner can keep losing under heavy contention.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from db import utcnow
from models import ActorRole, DeliveryOrder, OrderStatus, StatusEvent, STATUS_MESSAGES
from services import access
from services.errors import (
    IllegalTransition,
    OrderUnavailable,
    RunnerNotFound,
    StaleState,
    Unauthorized,
)
from services.order_store import OrderStore
from services.runners import RunnerDirectory

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    order: DeliveryOrder
    event: StatusEvent
    # False when the claim committed but the runner could not be marked busy
    runner_status_updated: bool = True


class ClaimCoordinator:
    def __init__(self, store: OrderStore | None = None,
                 runners: RunnerDirectory | None = None,
                 db_path: Path | str | None = None):
        self.store = store or OrderStore(db_path)
        self.runners = runners or RunnerDirectory(db_path)

    def claim(self, order_id: int, runner_id: str,
              estimated_minutes: int | None = None) -> ClaimResult:
        """Assign `order_id` to `runner_id`.

        Raises OrderUnavailable when the order is no longer claimable, which
        includes losing the race to another runner. Callers should refetch
        the available orders rather than retry the same claim.
        """
        order = self.store.get_order(order_id)
        runner = self.runners.find(runner_id)
        if runner is None:
            raise Unauthorized(f"Unknown runner {runner_id}")

        if not order.is_network:
            raise IllegalTransition(f"Order {order_id} is fulfilled by its seller and cannot be claimed")
        if order.status != OrderStatus.PENDING or order.runner_id is not None:
            raise OrderUnavailable(f"Order {order_id} is no longer available")
        if not access.can_claim(runner, order):
            raise Unauthorized(
                f"Runner {runner_id} cannot claim order {order_id} while {runner.availability.value}"
            )

        now = utcnow()
        fields = {"runner_id": runner_id, "accepted_at": now}
        if estimated_minutes is not None:
            fields["estimated_minutes"] = estimated_minutes
        event = StatusEvent(
            order_id=order_id,
            status=OrderStatus.ACCEPTED,
            message=STATUS_MESSAGES[OrderStatus.ACCEPTED],
            actor_id=runner_id,
            actor_role=ActorRole.RUNNER,
            created_at=now,
        )

        try:
            claimed, saved_event = self.store.update_status(
                order_id,
                OrderStatus.PENDING,
                OrderStatus.ACCEPTED,
                fields=fields,
                require_unassigned=True,
                event=event,
            )
        except StaleState:
            logger.info("Runner %s lost the claim race for order %s", runner_id, order_id)
            raise OrderUnavailable(f"Order {order_id} is no longer available")

        logger.info("Runner %s claimed order %s", runner_id, claimed.order_number)
        return ClaimResult(
            order=claimed,
            event=saved_event,
            runner_status_updated=self._mark_busy(runner_id, order_id),
        )

    def _mark_busy(self, runner_id: str, order_id: int) -> bool:
        # The committed claim is the source of truth; never undo it here.
        try:
            self.runners.mark_busy(runner_id)
        except (RunnerNotFound, sqlite3.Error):
            logger.exception("Claimed order %s but could not mark runner %s busy", order_id, runner_id)
            return False
        return True
