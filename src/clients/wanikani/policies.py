"""
TTL configuration per WaniKani resource kind.
"""
from enum import Enum
from typing import Dict, Optional

from core.errors import ValidationError

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS


class ResourceKind(Enum):
    """Resource collections fetched from the API, keyed like the last-sync markers."""
    SUBJECTS = "subjects"
    USER = "user"
    ASSIGNMENTS = "assignments"
    REVIEW_STATISTICS = "reviewStats"
    REVIEWS = "reviews"
    SUMMARY = "summary"
    LEVEL_PROGRESSIONS = "levelProgressions"
    SPACED_REPETITION_SYSTEMS = "spacedRepetitionSystems"


# TTL by kind (milliseconds); None means the entry never expires
TTL_CONFIG: Dict[ResourceKind, Optional[int]] = {
    ResourceKind.SUBJECTS: 24 * _HOUR_MS,
    ResourceKind.USER: 1 * _HOUR_MS,
    ResourceKind.ASSIGNMENTS: 30 * _MINUTE_MS,
    ResourceKind.REVIEW_STATISTICS: 30 * _MINUTE_MS,
    ResourceKind.REVIEWS: None,                      # reviews never change
    ResourceKind.SUMMARY: 1 * _HOUR_MS,              # rolls over hourly
    ResourceKind.LEVEL_PROGRESSIONS: 4 * _HOUR_MS,
    ResourceKind.SPACED_REPETITION_SYSTEMS: 48 * _HOUR_MS,
}

# API path of each kind's collection (or single object)
ENDPOINTS: Dict[ResourceKind, str] = {
    ResourceKind.SUBJECTS: "/subjects",
    ResourceKind.USER: "/user",
    ResourceKind.ASSIGNMENTS: "/assignments",
    ResourceKind.REVIEW_STATISTICS: "/review_statistics",
    ResourceKind.REVIEWS: "/reviews",
    ResourceKind.SUMMARY: "/summary",
    ResourceKind.LEVEL_PROGRESSIONS: "/level_progressions",
    ResourceKind.SPACED_REPETITION_SYSTEMS: "/spaced_repetition_systems",
}


def get_ttl_for_kind(kind: ResourceKind) -> Optional[int]:
    return TTL_CONFIG[kind]


def parse_kind(value: "str | ResourceKind") -> ResourceKind:
    """
    Accept a ResourceKind, its value ("reviewStats") or its name/path
    spelling ("review_statistics", "REVIEW_STATISTICS").
    """
    if isinstance(value, ResourceKind):
        return value
    raw = (value or "").strip()
    for kind in ResourceKind:
        if raw in (kind.value, kind.name, kind.name.lower(), ENDPOINTS[kind].lstrip("/")):
            return kind
    raise ValidationError(f"Unknown resource kind: {value!r}")
