"""
Declarations of the WHOOP resources this service proxies.

Each endpoint is {name, path, required_scope, collection, transform}.
The proxy checks the payload shape (`collection` endpoints must carry a
`records` list, the others a JSON object) before a transform ever runs,
so transforms only have to cope with missing fields inside records.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class ResourceEndpoint:
    name: str
    path: str
    required_scope: str
    transform: Callable[[Any], Any]
    collection: bool = True


def _day(timestamp: Any) -> Optional[str]:
    """'2025-01-15T07:30:00.000Z' -> '2025-01-15'."""
    if not isinstance(timestamp, str) or len(timestamp) < 10:
        return None
    return timestamp[:10]


def _score_series(payload: Dict[str, Any], date_field: str, score_field: str) -> List[Dict[str, Any]]:
    """Extract ordered {date, score} points from a paginated WHOOP collection."""
    points = []
    for record in payload.get("records", []):
        if not isinstance(record, dict):
            continue
        if record.get("score_state", "SCORED") != "SCORED":
            continue
        score = record.get("score")
        if not isinstance(score, dict):
            continue
        value = score.get(score_field)
        day = _day(record.get(date_field))
        if value is None or day is None:
            continue
        points.append({"date": day, "score": value})
    points.sort(key=lambda p: p["date"])
    return points


def recovery_points(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return _score_series(payload, "created_at", "recovery_score")


def sleep_points(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return _score_series(payload, "start", "sleep_performance_percentage")


def cycle_points(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    return _score_series(payload, "start", "strain")


def body_measurement(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "height_meter": payload.get("height_meter"),
        "weight_kilogram": payload.get("weight_kilogram"),
        "max_heart_rate": payload.get("max_heart_rate"),
    }


RECOVERY = ResourceEndpoint("recovery", "/recovery", "read:recovery", recovery_points)
SLEEP = ResourceEndpoint("sleep", "/activity/sleep", "read:sleep", sleep_points)
CYCLES = ResourceEndpoint("cycles", "/cycle", "read:cycles", cycle_points)
BODY_MEASUREMENT = ResourceEndpoint(
    "body_measurement",
    "/user/measurement/body",
    "read:body_measurement",
    body_measurement,
    collection=False,
)

ENDPOINTS: Dict[str, ResourceEndpoint] = {
    e.name: e for e in (RECOVERY, SLEEP, CYCLES, BODY_MEASUREMENT)
}


def get_endpoint(name: str) -> ResourceEndpoint:
    """Raises KeyError for unknown resource names."""
    return ENDPOINTS[name]
