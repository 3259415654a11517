"""
Runner Directory

Availability of each runner (dasher). A runner toggles offline/online
themselves; `busy` is owned by the lifecycle: set on a successful claim and
cleared when the claimed order is delivered or cancelled. There is no job
queue, a runner holds at most one claim at a time.
"""

import logging
import uuid
from pathlib import Path

from db import get_cursor, utcnow
from models import Runner, RunnerAvailability
from services.errors import RunnerNotFound, Unauthorized

logger = logging.getLogger(__name__)


class RunnerDirectory:
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path

    def register(self, display_name: str, vehicle_type: str = "bike",
                 runner_id: str | None = None,
                 availability: RunnerAvailability = RunnerAvailability.OFFLINE) -> Runner:
        if availability == RunnerAvailability.BUSY:
            raise ValueError("A new runner cannot start busy")
        runner = Runner(
            runner_id=runner_id or str(uuid.uuid4()),
            display_name=display_name,
            vehicle_type=vehicle_type,
            availability=availability,
            created_at=utcnow(),
        )
        self.save_to_db([runner])
        return runner

    def save_to_db(self, records: list[Runner]):
        with get_cursor(self.db_path) as cursor:
            cursor.executemany(
                """
                INSERT INTO runners
                (runner_id, display_name, vehicle_type, availability,
                 total_deliveries, total_earnings_cents, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (r.runner_id, r.display_name, r.vehicle_type, r.availability.value,
                     r.total_deliveries, r.total_earnings_cents, r.created_at.isoformat())
                    for r in records
                ]
            )
        logger.info("Saved %d runners", len(records))

    def find(self, runner_id: str) -> Runner | None:
        with get_cursor(self.db_path) as cursor:
            cursor.execute("SELECT * FROM runners WHERE runner_id = ?", (runner_id,))
            row = cursor.fetchone()
        return Runner(**dict(row)) if row else None

    def get(self, runner_id: str) -> Runner:
        runner = self.find(runner_id)
        if runner is None:
            raise RunnerNotFound(f"Runner {runner_id} not found")
        return runner

    def set_availability(self, runner_id: str, availability: RunnerAvailability) -> Runner:
        """Go online or offline. Refused while the runner is on a job."""
        if availability == RunnerAvailability.BUSY:
            raise Unauthorized("Runners become busy by claiming an order")

        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                "UPDATE runners SET availability = ? WHERE runner_id = ? AND availability != ?",
                (availability.value, runner_id, RunnerAvailability.BUSY.value)
            )
            changed = cursor.rowcount

        if not changed:
            runner = self.get(runner_id)
            raise Unauthorized(
                f"Runner {runner.runner_id} is {runner.availability.value} and cannot go {availability.value}"
            )
        return self.get(runner_id)

    def mark_busy(self, runner_id: str):
        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                "UPDATE runners SET availability = ? WHERE runner_id = ?",
                (RunnerAvailability.BUSY.value, runner_id)
            )
            if cursor.rowcount == 0:
                raise RunnerNotFound(f"Runner {runner_id} not found")

    def release(self, runner_id: str, delivered_fee_cents: int | None = None):
        """Back online after the claimed order ends; credit it if delivered."""
        deliveries = 1 if delivered_fee_cents is not None else 0
        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                """
                UPDATE runners
                SET availability = CASE WHEN availability = ? THEN ? ELSE availability END,
                    total_deliveries = total_deliveries + ?,
                    total_earnings_cents = total_earnings_cents + ?
                WHERE runner_id = ?
                """,
                (RunnerAvailability.BUSY.value, RunnerAvailability.ONLINE.value,
                 deliveries, delivered_fee_cents or 0, runner_id)
            )
            if cursor.rowcount == 0:
                raise RunnerNotFound(f"Runner {runner_id} not found")

    def list_by_availability(self, availability: RunnerAvailability,
                             limit: int = 50, offset: int = 0) -> list[Runner]:
        with get_cursor(self.db_path) as cursor:
            cursor.execute(
                "SELECT * FROM runners WHERE availability = ? ORDER BY display_name LIMIT ? OFFSET ?",
                (availability.value, limit, offset)
            )
            rows = cursor.fetchall()
        return [Runner(**dict(row)) for row in rows]
