"""Subject-specific helpers: cache-footprint slimming and subscription filtering."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .resources import Subject, User

# Subject fields kept when a /subjects page is written to the cache
_KEPT_DATA_FIELDS = (
    "level",
    "slug",
    "characters",
    "document_url",
    "spaced_repetition_system_id",
    "hidden_at",
    "lesson_position",
    "component_subject_ids",
    "amalgamation_subject_ids",
    "visually_similar_subject_ids",
)
_MAX_MEANINGS = 3
_MAX_READINGS = 2


def slim_subject(item: Mapping[str, Any]) -> Dict[str, Any]:
    data = item.get("data") or {}
    slim: Dict[str, Any] = {k: data[k] for k in _KEPT_DATA_FIELDS if k in data}
    if isinstance(data.get("meanings"), list):
        slim["meanings"] = data["meanings"][:_MAX_MEANINGS]
    if isinstance(data.get("readings"), list):
        slim["readings"] = data["readings"][:_MAX_READINGS]

    out: Dict[str, Any] = {"id": item.get("id"), "object": item.get("object"), "data": slim}
    for key in ("url", "data_updated_at"):
        if key in item:
            out[key] = item[key]
    return out


def slim_subject_page(payload: Any) -> Any:
    """Shrink one /subjects collection page before it is cached.

    Anything that is not a collection envelope is returned unchanged.
    """
    if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), list):
        return payload
    out = dict(payload)
    out["data"] = [
        slim_subject(item) if isinstance(item, Mapping) else item
        for item in payload["data"]
    ]
    return out


def filter_by_subscription(subjects: List[Subject], user: User) -> List[Subject]:
    max_level = user.max_level_granted
    return [s for s in subjects if s.level <= max_level]
