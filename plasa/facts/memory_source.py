"""
In-memory versioned ledger implementing FactSource.

Every commit appends one anchor and records the written facts at that
anchor's height, so reads as of any retained historical anchor see exactly
the facts committed up to it. Each commit bumps the ``sequence`` counter of
every entity it touches, which the snapshot coordinator uses as a canary.
"""
import copy
from bisect import bisect_right
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from plasa.data_models.fact_schemas import Anchor, EntityKind, RawFact, normalize_address
from plasa.utils.logger import logger

from .base import AnchorUnavailable, FactNotFound, FactSource

FactKey = Tuple[str, str, str]
SEQUENCE_FIELD = "sequence"


def _kind(entity_kind: Union[EntityKind, str]) -> str:
    return entity_kind.value if isinstance(entity_kind, EntityKind) else str(entity_kind)


class InMemoryFactSource(FactSource):
    """
    Append-only in-memory fact store.

    Usage:
        source = InMemoryFactSource(genesis_timestamp=1_620_000_000)
        source.commit(1_620_000_100, {
            (EntityKind.SPACE, "0xabc", "data"): {...},
            (EntityKind.SPACE, "0xabc", "points"): "0xdef",
        })
    """

    def __init__(self, genesis_timestamp: int = 0, retention: Optional[int] = None):
        """
        Args:
            genesis_timestamp: Timestamp of the height-0 anchor
            retention: Number of past heights served for historical reads (None = all)
        """
        self.retention = retention
        self._anchors: List[Anchor] = [Anchor(height=0, timestamp=genesis_timestamp)]
        self._history: Dict[FactKey, List[Tuple[int, Any]]] = {}
        self.read_count = 0

    @property
    def latest(self) -> Anchor:
        return self._anchors[-1]

    def _key(self, entity_kind: Union[EntityKind, str], entity_id: str, field: str) -> FactKey:
        return (_kind(entity_kind), normalize_address(entity_id), field)

    def commit(self, timestamp: int, writes: Mapping[Tuple[Any, str, str], Any]) -> Anchor:
        """Append a new anchor carrying ``writes`` and return it."""
        if timestamp < self.latest.timestamp:
            raise ValueError(
                f"Commit timestamp {timestamp} precedes latest anchor {self.latest}"
            )
        anchor = Anchor(height=self.latest.height + 1, timestamp=timestamp)
        touched = set()
        explicit_sequences = set()
        for (entity_kind, entity_id, field), value in writes.items():
            key = self._key(entity_kind, entity_id, field)
            self._history.setdefault(key, []).append((anchor.height, copy.deepcopy(value)))
            touched.add(key[:2])
            if field == SEQUENCE_FIELD:
                explicit_sequences.add(key[:2])

        for kind, entity_id in touched - explicit_sequences:
            entries = self._history.setdefault((kind, entity_id, SEQUENCE_FIELD), [])
            previous = entries[-1][1] if entries else 0
            entries.append((anchor.height, previous + 1))

        self._anchors.append(anchor)
        return anchor

    def write(self, entity_kind: Union[EntityKind, str], entity_id: str, field: str, value: Any,
              timestamp: Optional[int] = None) -> Anchor:
        """Commit a single fact."""
        when = self.latest.timestamp if timestamp is None else timestamp
        return self.commit(when, {(entity_kind, entity_id, field): value})

    def _check_served(self, anchor: Anchor) -> None:
        latest = self.latest
        if anchor.height > latest.height:
            raise AnchorUnavailable(anchor, f"ahead of latest anchor {latest}")
        if self._anchors[anchor.height] != anchor:
            raise AnchorUnavailable(anchor, "unknown anchor")
        if self.retention is not None and latest.height - anchor.height > self.retention:
            raise AnchorUnavailable(anchor, f"pruned (retention {self.retention})")

    async def latest_anchor(self) -> Anchor:
        return self.latest

    async def anchor_at(self, timestamp: int) -> Anchor:
        timestamps = [anchor.timestamp for anchor in self._anchors]
        index = bisect_right(timestamps, timestamp) - 1
        if index < 0:
            raise AnchorUnavailable(None, f"no anchor at or before {timestamp}")
        anchor = self._anchors[index]
        self._check_served(anchor)
        return anchor

    async def read(
        self,
        entity_kind: Union[EntityKind, str],
        entity_id: str,
        field: str,
        anchor: Optional[Anchor] = None,
    ) -> RawFact:
        self.read_count += 1
        served = self.latest if anchor is None else anchor
        self._check_served(served)

        key = self._key(entity_kind, entity_id, field)
        entries = self._history.get(key)
        if entries:
            index = bisect_right([height for height, _ in entries], served.height) - 1
            if index >= 0:
                return RawFact(value=copy.deepcopy(entries[index][1]), anchor=served)

        logger.debug(f"[FactSource:memory] Miss {key} at {served}")
        raise FactNotFound(key[0], key[1], field, served)
