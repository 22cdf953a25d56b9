"""Immutable records decoded from WaniKani API payloads.

Every record keeps the raw `data` mapping untouched; subclasses only add
typed accessors for the handful of fields this layer itself relies on
(ids, levels, subscription caps). Interpreting the rest is left to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from core.errors import ApiError

R = TypeVar("R", bound="Resource")

DEFAULT_MAX_LEVEL_GRANTED = 3


@dataclass(frozen=True)
class Resource:
    """Common envelope of every WaniKani resource.

    Field groups:
    - Identity: id, object, url
    - Freshness: data_updated_at
    - Payload: data (raw mapping as returned by the API)
    """

    object: str
    data: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    url: Optional[str] = None
    data_updated_at: Optional[str] = None

    @classmethod
    def from_api(cls: Type[R], payload: Any) -> R:
        if not isinstance(payload, Mapping):
            raise ApiError(f"Expected a resource object, got {type(payload).__name__}")
        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise ApiError(f"Resource {payload.get('object')!r} has no data object")
        raw_id = payload.get("id")
        return cls(
            object=str(payload.get("object") or ""),
            data=data,
            id=None if raw_id is None else int(raw_id),
            url=payload.get("url"),
            data_updated_at=payload.get("data_updated_at"),
        )

    def to_api(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"object": self.object, "data": dict(self.data)}
        if self.id is not None:
            out["id"] = self.id
        if self.url is not None:
            out["url"] = self.url
        if self.data_updated_at is not None:
            out["data_updated_at"] = self.data_updated_at
        return out


@dataclass(frozen=True)
class User(Resource):
    @property
    def username(self) -> str:
        return str(self.data.get("username") or "")

    @property
    def level(self) -> int:
        return int(self.data.get("level") or 0)

    @property
    def max_level_granted(self) -> int:
        subscription = self.data.get("subscription") or {}
        return int(subscription.get("max_level_granted") or DEFAULT_MAX_LEVEL_GRANTED)


@dataclass(frozen=True)
class Subject(Resource):
    @property
    def level(self) -> int:
        return int(self.data.get("level") or 0)


@dataclass(frozen=True)
class Assignment(Resource):
    @property
    def subject_id(self) -> Optional[int]:
        return self.data.get("subject_id")


@dataclass(frozen=True)
class ReviewStatistic(Resource):
    @property
    def subject_id(self) -> Optional[int]:
        return self.data.get("subject_id")


@dataclass(frozen=True)
class Review(Resource):
    pass


@dataclass(frozen=True)
class LevelProgression(Resource):
    @property
    def level(self) -> int:
        return int(self.data.get("level") or 0)


@dataclass(frozen=True)
class SpacedRepetitionSystem(Resource):
    pass


@dataclass(frozen=True)
class Summary(Resource):
    pass


def decode_many(cls: Type[R], items: List[Any]) -> List[R]:
    return [cls.from_api(item) for item in items]
