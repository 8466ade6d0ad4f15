from __future__ import annotations

from typing import Any

import pytest

from navdata_manager.navigation.models import Position, Waypoint
from navdata_manager.navigation.service import MissingPositionError, NavigationService


def test_goto_publishes_course_delta() -> None:
    published: list[dict[str, Any]] = []
    service = NavigationService("signalk-mydata-plugin", publisher=published.append)

    service.goto(Waypoint(id="wp-1", name="Harbour entrance", position=Position(latitude=54.1, longitude=10.5)))

    [delta] = published
    assert delta["context"] == "vessels.self"
    update = delta["updates"][0]
    assert update["source"] == {"label": "signalk-mydata-plugin"}
    assert update["timestamp"].endswith("Z")
    values = {value["path"]: value["value"] for value in update["values"]}
    assert values["navigation.courseRhumbline.nextPoint.position"] == {"latitude": 54.1, "longitude": 10.5}
    assert values["navigation.courseRhumbline.nextPoint.name"] == "Harbour entrance"
    assert "Harbour entrance" in service.status_message


@pytest.mark.parametrize(
    ("waypoint", "expected"),
    [
        (Waypoint(id="wp-7", position=Position(latitude=1, longitude=2)), "wp-7"),
        (Waypoint(position=Position(latitude=1, longitude=2)), "Waypoint"),
    ],
)
def test_goto_name_fallbacks(waypoint: Waypoint, expected: str) -> None:
    assert NavigationService("plugin", publisher=lambda delta: None).goto(waypoint).name == expected


@pytest.mark.parametrize(
    "waypoint",
    [None, Waypoint(name="nowhere"), Waypoint(position=Position(latitude=1))],
)
def test_goto_requires_full_position(waypoint: Waypoint | None) -> None:
    published: list[dict[str, Any]] = []
    with pytest.raises(MissingPositionError):
        NavigationService("plugin", publisher=published.append).goto(waypoint)
    assert published == []
