from .client import WaniKaniClient
from .policies import ResourceKind, TTL_CONFIG
from .sync import merge_by_id

__all__ = ["WaniKaniClient", "ResourceKind", "TTL_CONFIG", "merge_by_id"]
