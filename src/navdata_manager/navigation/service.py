"""Course updates handed to the navigation server."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from .models import CourseDelta, Waypoint

logger = logging.getLogger(__name__)

DeltaPublisher = Callable[[dict[str, Any]], None]


class MissingPositionError(ValueError):
    def __init__(self) -> None:
        super().__init__("Missing waypoint.position.{latitude,longitude}")


def log_publisher(delta: dict[str, Any]) -> None:
    logger.info("Publishing delta: %s", delta)


class NavigationService:
    """Build goto deltas and pass them to a publisher."""

    def __init__(self, source_label: str, publisher: Optional[DeltaPublisher] = None) -> None:
        self.source_label = source_label
        self._publisher = publisher or log_publisher
        self._lock = threading.Lock()
        self._last_message = ""

    @property
    def status_message(self) -> str:
        with self._lock:
            return self._last_message

    def goto(self, waypoint: Optional[Waypoint]) -> CourseDelta:
        if waypoint is None or waypoint.position is None or not waypoint.position.is_complete:
            raise MissingPositionError()

        delta = CourseDelta(
            source_label=self.source_label,
            latitude=waypoint.position.latitude,
            longitude=waypoint.position.longitude,
            name=waypoint.display_name,
        )
        self._publisher(delta.to_signalk())
        with self._lock:
            self._last_message = f"Goto {delta.name} ({delta.latitude:.5f}, {delta.longitude:.5f})"
        return delta
