"""
Optimistic listing cache.

Mutations return a ``Delta`` describing exactly what changed remotely and
``apply_delta`` folds it into the cached listing, so a session reflects its
own writes without re-fetching. The cache is not synchronized with other
sessions: their writes only show up after the next full ``load``.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel

INSERT = "insert"
REPLACE = "replace"
REMOVE = "remove"


@dataclass(frozen=True)
class Delta:
    kind: str
    collection: str
    record_id: str
    record: Optional[BaseModel] = None

    @classmethod
    def insert(cls, collection: str, record: BaseModel) -> "Delta":
        return cls(INSERT, collection, record.id, record)

    @classmethod
    def replace(cls, collection: str, record: BaseModel) -> "Delta":
        return cls(REPLACE, collection, record.id, record)

    @classmethod
    def remove(cls, collection: str, record_id: str) -> "Delta":
        return cls(REMOVE, collection, record_id)


def apply_delta(records: List[BaseModel], delta: Delta) -> List[BaseModel]:
    """Return a new listing with ``delta`` applied; ``records`` is left untouched."""
    if delta.kind == INSERT:
        return [delta.record] + [r for r in records if r.id != delta.record_id]
    if delta.kind == REPLACE:
        return [delta.record if r.id == delta.record_id else r for r in records]
    if delta.kind == REMOVE:
        return [r for r in records if r.id != delta.record_id]
    raise ValueError("Unknown delta kind: %s" % delta.kind)


class ListingCache:
    def __init__(self):
        self._listings: Dict[str, List[BaseModel]] = {}
        self.history: List[Delta] = []

    def load(self, collection: str, records: List[BaseModel]) -> None:
        self._listings[collection] = list(records)

    def get(self, collection: str) -> List[BaseModel]:
        return list(self._listings.get(collection, []))

    def apply(self, delta: Delta) -> List[BaseModel]:
        updated = apply_delta(self._listings.get(delta.collection, []), delta)
        self._listings[delta.collection] = updated
        self.history.append(delta)
        return list(updated)

    def clear(self) -> None:
        self._listings.clear()
        self.history.clear()
