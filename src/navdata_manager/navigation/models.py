"""Waypoint and course delta models based on Pydantic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class Position(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @property
    def is_complete(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Waypoint(BaseModel):
    """The subset of a Signal K waypoint resource needed to steer to it."""

    id: Optional[str] = None
    name: Optional[str] = None
    position: Optional[Position] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id or "Waypoint"


class CourseDelta(BaseModel):
    """A Signal K delta message updating the next point of the active course."""

    context: str = "vessels.self"
    source_label: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    latitude: float
    longitude: float
    name: str

    def to_signalk(self) -> dict[str, Any]:
        """Render the delta in Signal K wire format."""
        return {
            "context": self.context,
            "updates": [
                {
                    "source": {"label": self.source_label},
                    "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
                    "values": [
                        {
                            "path": "navigation.courseRhumbline.nextPoint.position",
                            "value": {"latitude": self.latitude, "longitude": self.longitude},
                        },
                        {
                            "path": "navigation.courseRhumbline.nextPoint.name",
                            "value": self.name,
                        },
                    ],
                }
            ],
        }
