"""
Order Store

Durable record of delivery orders and their status timeline.

All status mutation goes through `update_status`, a conditional write that
only commits while the row still holds the expected status. Callers read,
decide, then write with the status they read; a concurrent writer makes the
write fail with StaleState instead of overwriting it.
"""

import logging
import secrets
import sqlite3
from datetime import datetime
from pathlib import Path

from db import get_cursor, utcnow
from models import (
    ActorRole,
    DeliveryOrder,
    FulfillmentMode,
    OrderSpec,
    OrderStatus,
    StatusEvent,
    STATUS_MESSAGES,
    TERMINAL_STATUSES,
)
from services.access import check_invariants
from services.errors import CorruptOrderState, OrderNotFound, StaleState

logger = logging.getLogger(__name__)


# Columns a status update may touch besides `status`
MUTABLE_FIELDS = {"runner_id", "estimated_minutes"}
# Set the first time the matching status is reached, never overwritten
WRITE_ONCE_FIELDS = {"accepted_at", "picked_up_at", "delivered_at", "cancelled_at", "estimated_minutes"}

ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(now: datetime | None = None) -> str:
    """DD + YYMMDDHHMMSS + 4 hex chars, e.g. DD260214093012A1F3."""
    now = now or utcnow()
    return f"DD{now.strftime('%y%m%d%H%M%S')}{secrets.token_hex(2).upper()}"


class OrderStore:
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path

    def _row_to_order(self, row: sqlite3.Row) -> DeliveryOrder:
        order = DeliveryOrder(**dict(row))
        problems = check_invariants(order)
        if problems:
            logger.error("Order %s failed invariant check: %s", order.id, "; ".join(problems))
            raise CorruptOrderState(f"Order {order.id} is corrupt: {'; '.join(problems)}")
        return order

    def _rows_to_orders(self, rows: list[sqlite3.Row]) -> list[DeliveryOrder]:
        # A corrupt order halts only itself; listings keep the healthy ones.
        orders = []
        for row in rows:
            try:
                orders.append(self._row_to_order(row))
            except CorruptOrderState:
                logger.warning("Skipping corrupt order %s in listing", row["id"])
        return orders

    def create_order(self, spec: OrderSpec) -> DeliveryOrder:
        created_at = utcnow()
        attempt = 0
        while True:
            attempt += 1
            try:
                with get_cursor(self.db_path) as cursor:
                    cursor.execute(
                        """
                        INSERT INTO delivery_orders
                        (order_number, buyer_id, seller_id, fulfillment_mode, delivery_type,
                         status, listing_id, listing_title, pickup_address, pickup_lat,
                         pickup_lng, delivery_address, delivery_lat, delivery_lng,
                         subtotal_cents, tax_cents, delivery_fee_cents, total_cents, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            generate_order_number(created_at), spec.buyer_id, spec.seller_id,
                            spec.fulfillment_mode.value, spec.delivery_type.value,
                            OrderStatus.PENDING.value, spec.listing_id, spec.listing_title,
                            spec.pickup_address, spec.pickup_lat, spec.pickup_lng,
                            spec.delivery_address, spec.delivery_lat, spec.delivery_lng,
                            spec.subtotal_cents, spec.tax_cents, spec.delivery_fee_cents,
                            spec.total_cents, created_at.isoformat(),
                        )
                    )
                    order_id = cursor.lastrowid
                    self._insert_event(cursor, StatusEvent(
                        order_id=order_id,
                        status=OrderStatus.PENDING,
                        message=STATUS_MESSAGES[OrderStatus.PENDING],
                        actor_id=spec.buyer_id,
                        actor_role=ActorRole.BUYER,
                        created_at=created_at,
                    ))
                    cursor.execute("SELECT * FROM delivery_orders WHERE id = ?", (order_id,))
                    order = self._row_to_order(cursor.fetchone())
                logger.info("Created order %s (%s, %s)", order.order_number,
                            order.fulfillment_mode.value, order.delivery_type.value)
                return order
            except sqlite3.IntegrityError as e:
                if "order_number" not in str(e) or attempt >= ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning("Order number collision, regenerating")

    def get_order(self, order_id: int) -> DeliveryOrder:
        with get_cursor(self.db_path) as cursor:
            cursor.execute("SELECT * FROM delivery_orders WHERE id = ?", (order_id,))
            row = cursor.fetchone()
        if not row:
            raise OrderNotFound(f"Order {order_id} not found")
        return self._row_to_order(row)

    def _insert_event(self, cursor: sqlite3.Cursor, event: StatusEvent) -> StatusEvent:
        cursor.execute(
            """
            INSERT INTO status_events (order_id, status, message, actor_id, actor_role, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (event.order_id, event.status.value, event.message, event.actor_id,
             event.actor_role.value, event.created_at.isoformat())
        )
        return event.model_copy(update={"id": cursor.lastrowid})

    def append_event(self, event: StatusEvent) -> StatusEvent:
        with get_cursor(self.db_path) as cursor:
            return self._insert_event(cursor, event)

    def update_status(
        self,
        order_id: int,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        fields: dict | None = None,
        require_unassigned: bool = False,
        event: StatusEvent | None = None,
    ) -> tuple[DeliveryOrder, StatusEvent | None]:
        """Conditionally move `order_id` from `expected_status` to `new_status`.

        Commits only if the stored status still equals `expected_status` (and,
        with `require_unassigned`, no runner is set). Otherwise raises
        StaleState and writes nothing. `event` is appended in the same
        transaction, so only committed transitions reach the timeline.
        """
        fields = fields or {}
        unknown = set(fields) - MUTABLE_FIELDS - WRITE_ONCE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        assignments = ["status = ?"]
        params: list = [new_status.value]
        for name, value in fields.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            if name in WRITE_ONCE_FIELDS:
                assignments.append(f"{name} = COALESCE({name}, ?)")
            else:
                assignments.append(f"{name} = ?")
            params.append(value)

        query = f"UPDATE delivery_orders SET {', '.join(assignments)} WHERE id = ? AND status = ?"
        params.extend([order_id, expected_status.value])
        if require_unassigned:
            query += " AND runner_id IS NULL"

        with get_cursor(self.db_path) as cursor:
            cursor.execute(query, params)
            if cursor.rowcount == 0:
                cursor.execute("SELECT status FROM delivery_orders WHERE id = ?", (order_id,))
                row = cursor.fetchone()
                if not row:
                    raise OrderNotFound(f"Order {order_id} not found")
                raise StaleState(
                    f"Order {order_id} is no longer {expected_status.value} (now {row['status']})"
                )

            saved_event = None
            if event is not None:
                saved_event = self._insert_event(cursor, event)

            cursor.execute("SELECT * FROM delivery_orders WHERE id = ?", (order_id,))
            order = self._row_to_order(cursor.fetchone())

        logger.info("Order %s: %s -> %s", order_id, expected_status.value, new_status.value)
        return order, saved_event

    def list_events(self, order_id: int, after_id: int | None = None) -> list[StatusEvent]:
        query = "SELECT * FROM status_events WHERE order_id = ?"
        params: list = [order_id]
        if after_id is not None:
            query += " AND id > ?"
            params.append(after_id)
        query += " ORDER BY id"

        with get_cursor(self.db_path) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [StatusEvent(**dict(row)) for row in rows]

    def list_available(self, limit: int = 20, offset: int = 0) -> list[DeliveryOrder]:
        """Pending network orders nobody has claimed yet, newest first."""
        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                """SELECT * FROM delivery_orders
                   WHERE status = ? AND runner_id IS NULL AND fulfillment_mode = ?
                   ORDER BY created_at DESC LIMIT ? OFFSET ?""",
                (OrderStatus.PENDING.value, FulfillmentMode.NETWORK.value, limit, offset)
            )
            rows = cursor.fetchall()
        return self._rows_to_orders(rows)

    def list_by_status(self, status: OrderStatus, fulfillment_mode: FulfillmentMode | None = None,
                       limit: int = 20, offset: int = 0) -> list[DeliveryOrder]:
        query = "SELECT * FROM delivery_orders WHERE status = ?"
        params: list = [status.value]
        if fulfillment_mode:
            query += " AND fulfillment_mode = ?"
            params.append(fulfillment_mode.value)
        query += " ORDER BY created_at LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with get_cursor(self.db_path) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return self._rows_to_orders(rows)

    def list_for_runner(self, runner_id: str, active_only: bool = False) -> list[DeliveryOrder]:
        query = "SELECT * FROM delivery_orders WHERE runner_id = ?"
        params: list = [runner_id]
        if active_only:
            terminal = [s.value for s in TERMINAL_STATUSES]
            query += f" AND status NOT IN ({','.join('?' * len(terminal))})"
            params.extend(terminal)
        query += " ORDER BY created_at DESC"

        with get_cursor(self.db_path) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return self._rows_to_orders(rows)

    def list_for_party(self, user_id: str, role: ActorRole,
                       limit: int = 20, offset: int = 0) -> list[DeliveryOrder]:
        if role == ActorRole.BUYER:
            column = "buyer_id"
        elif role == ActorRole.SELLER:
            column = "seller_id"
        elif role == ActorRole.RUNNER:
            column = "runner_id"
        else:
            raise ValueError(f"No order history for role {role.value}")

        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                f"SELECT * FROM delivery_orders WHERE {column} = ? "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset)
            )
            rows = cursor.fetchall()
        return self._rows_to_orders(rows)
