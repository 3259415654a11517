"""
Tracking Client - pushes a runner's position to the dispatch API

Used by the runner app while it holds a job. Throttling happens here, not on
the server: a sample goes out when enough time has passed since the last one
or the runner has moved far enough. A 403 means the order left the tracking
window (or was never ours), so tracking stops instead of retrying.
"""
import logging
import time
from typing import Callable, Optional

import httpx

from generators.geofence import haversine_miles

logger = logging.getLogger(__name__)


API_URL = "http://localhost:8000"
MIN_SEND_INTERVAL_SECONDS = 5.0
MIN_MOVE_MILES = 0.01


class TrackingClient:
    """Publishes location samples for one (order, runner) pair."""

    def __init__(
        self,
        order_id: int,
        runner_id: str,
        base_url: str = API_URL,
        client: Optional[httpx.Client] = None,
        min_interval_seconds: float = MIN_SEND_INTERVAL_SECONDS,
        min_move_miles: float = MIN_MOVE_MILES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.order_id = order_id
        self.runner_id = runner_id
        self.client = client or httpx.Client(base_url=base_url, timeout=10.0)
        self.min_interval_seconds = min_interval_seconds
        self.min_move_miles = min_move_miles
        self.clock = clock

        self.active = True
        self.last_sent_at: Optional[float] = None
        self.last_lat: Optional[float] = None
        self.last_lng: Optional[float] = None

    def should_send(self, lat: float, lng: float) -> bool:
        if self.last_sent_at is None or self.last_lat is None or self.last_lng is None:
            return True
        if self.clock() - self.last_sent_at >= self.min_interval_seconds:
            return True
        moved = haversine_miles(self.last_lat, self.last_lng, lat, lng)
        return moved >= self.min_move_miles

    def publish(
        self,
        lat: float,
        lng: float,
        heading: Optional[float] = None,
        speed: Optional[float] = None,
        accuracy: Optional[float] = None,
        source: str = "foreground",
    ) -> bool:
        """
        Send one sample if tracking is active and the throttle allows it.

        Returns:
            True if the server stored the sample
        """
        if not self.active or not self.should_send(lat, lng):
            return False

        payload = {
            "runner_id": self.runner_id,
            "lat": lat,
            "lng": lng,
            "heading": heading,
            "speed": speed,
            "accuracy": accuracy,
            "source": source,
        }

        try:
            response = self.client.post(f"/orders/{self.order_id}/location", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Location publish for order %s failed: %s", self.order_id, e)
            return False

        if response.status_code == 403:
            logger.info("Order %s is no longer trackable, stopping", self.order_id)
            self.stop()
            return False
        if response.is_error:
            logger.warning("Location publish for order %s returned %s", self.order_id, response.status_code)
            return False

        self.last_sent_at = self.clock()
        self.last_lat = lat
        self.last_lng = lng
        return True

    def stop(self):
        self.active = False

    def close(self):
        self.stop()
        self.client.close()
