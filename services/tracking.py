"""
Location Tracker

Keeps the assigned runner's last known position for an order, one row per
order, overwritten in place. No trail is kept.

Writes are accepted only from the assigned runner while the order is in the
active window (accepted or picked_up). Reads are open to the buyer and the
assigned runner only. Both refusals are security boundaries, not transient
errors.
"""

import logging
from datetime import timezone
from pathlib import Path

from db import get_cursor, utcnow
from models import LocationSample, TrackedLocation
from services import access
from services.errors import LocationNotFound, NotVisible, NotWritable
from services.order_store import OrderStore

logger = logging.getLogger(__name__)


DEFAULT_STALE_AFTER_SECONDS = 120.0


class LocationTracker:
    def __init__(self, store: OrderStore | None = None,
                 db_path: Path | str | None = None,
                 stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS):
        self.store = store or OrderStore(db_path)
        self.db_path = self.store.db_path
        self.stale_after_seconds = stale_after_seconds

    def publish(self, order_id: int, runner_id: str, sample: LocationSample) -> TrackedLocation:
        order = self.store.get_order(order_id)
        if not access.can_write_location(runner_id, order):
            raise NotWritable(f"Runner {runner_id} cannot publish a location for order {order_id}")

        now = utcnow()
        recorded_at = sample.recorded_at or now
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        recorded_at = min(recorded_at, now)

        writable = [s.value for s in access.WRITABLE_LOCATION_STATUSES]
        placeholders = ",".join("?" * len(writable))
        with get_cursor(self.db_path) as cursor:
            # Re-check ownership and window inside the write so a transition
            # committed since the read above cannot be overtaken.
            cursor.execute(
                f"""
                INSERT INTO delivery_tracking
                (order_id, runner_id, lat, lng, heading, speed_mps, accuracy_m, source, updated_at)
                SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?
                WHERE EXISTS (
                    SELECT 1 FROM delivery_orders
                    WHERE id = ? AND runner_id = ? AND status IN ({placeholders})
                )
                ON CONFLICT(order_id) DO UPDATE SET
                    runner_id = excluded.runner_id,
                    lat = excluded.lat,
                    lng = excluded.lng,
                    heading = excluded.heading,
                    speed_mps = excluded.speed_mps,
                    accuracy_m = excluded.accuracy_m,
                    source = excluded.source,
                    updated_at = excluded.updated_at
                WHERE excluded.updated_at >= delivery_tracking.updated_at
                """,
                (order_id, runner_id, sample.lat, sample.lng, sample.heading,
                 sample.speed_mps, sample.accuracy_m, sample.source.value,
                 recorded_at.isoformat(), order_id, runner_id, *writable)
            )
            if cursor.rowcount == 0:
                # Either the window closed or a newer sample is already stored
                cursor.execute(
                    f"SELECT 1 FROM delivery_orders WHERE id = ? AND runner_id = ? AND status IN ({placeholders})",
                    (order_id, runner_id, *writable)
                )
                if not cursor.fetchone():
                    raise NotWritable(f"Order {order_id} left the tracking window")
                cursor.execute("SELECT * FROM delivery_tracking WHERE order_id = ?", (order_id,))
                stored = TrackedLocation(**dict(cursor.fetchone()))
                logger.debug("Order %s: ignoring sample older than the stored one", order_id)
                return stored

        logger.debug("Order %s: runner %s at (%.5f, %.5f)", order_id, runner_id, sample.lat, sample.lng)
        return TrackedLocation(
            order_id=order_id,
            runner_id=runner_id,
            lat=sample.lat,
            lng=sample.lng,
            heading=sample.heading,
            speed_mps=sample.speed_mps,
            accuracy_m=sample.accuracy_m,
            source=sample.source,
            updated_at=recorded_at,
        )

    def read(self, order_id: int, requester_id: str) -> TrackedLocation:
        order = self.store.get_order(order_id)
        if not access.can_read_location(requester_id, order):
            raise NotVisible(f"Location of order {order_id} is not visible to {requester_id}")

        with get_cursor(self.db_path) as cursor:
            cursor.execute("SELECT * FROM delivery_tracking WHERE order_id = ?", (order_id,))
            row = cursor.fetchone()
        if not row:
            raise LocationNotFound(f"No location published for order {order_id}")

        location = TrackedLocation(**dict(row))
        age = (utcnow() - location.updated_at).total_seconds()
        location.is_stale = (
            order.status not in access.WRITABLE_LOCATION_STATUSES
            or age > self.stale_after_seconds
        )
        return location
