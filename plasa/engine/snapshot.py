"""
Snapshot Coordinator

Pins one anchor per composition and serves every fact read of that
composition as of the anchor. Consistency is verified in two ways:

- Every RawFact carries the anchor it was served at. A fact served at any
  other anchor is read skew.
- The root entity's ``sequence`` counter (the canary) is read as of the
  pinned anchor before anything else and re-read as of the latest anchor
  once every other read has completed. A change discards the read set.

Skew, canary mismatches and anchors the source can no longer serve are
retried with a fresh anchor up to ``SnapshotPolicy.max_attempts`` times.
"""
from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from plasa.config.common_settings import (
    COMPOSITION_TIMEOUT,
    FACT_READ_TIMEOUT,
    MAX_CONCURRENT_READS,
    SNAPSHOT_MAX_ATTEMPTS,
)
from plasa.data_models.fact_schemas import Anchor, EntityKind, Viewer, normalize_address
from plasa.exceptions import (
    CompositionTimeoutError,
    MalformedFactError,
    NotFoundError,
    SnapshotUnavailableError,
)
from plasa.facts.base import AnchorUnavailable, FactNotFound, FactSource, FactSourceError
from plasa.utils.logger import logger

V = TypeVar("V")
M = TypeVar("M", bound=BaseModel)

SEQUENCE_FIELD = "sequence"
_MISSING = object()


class ReadSkew(Exception):
    """A fact was served at an anchor other than the one requested."""

    def __init__(self, requested: Anchor, served: Anchor, where: str):
        self.requested = requested
        self.served = served
        super().__init__(f"Read skew on {where}: requested {requested}, served {served}")


@dataclass
class SnapshotPolicy:
    """Configuration for snapshot consistency behavior."""
    # Compositions attempted before giving up
    max_attempts: int = 3
    # Seconds allowed per fact read
    read_timeout: float = 10.0
    # Seconds allowed per composition, all attempts included
    composition_timeout: float = 30.0
    # Concurrent reads per composition
    max_concurrent_reads: int = 32

    @classmethod
    def from_settings(cls) -> "SnapshotPolicy":
        return cls(
            max_attempts=SNAPSHOT_MAX_ATTEMPTS,
            read_timeout=FACT_READ_TIMEOUT,
            composition_timeout=COMPOSITION_TIMEOUT,
            max_concurrent_reads=MAX_CONCURRENT_READS,
        )


class AnchorCache:
    """
    The only state shared between compositions. Append-only.

    Holds the latest observed anchor (only ever moves forward), balance
    snapshots frozen at past timestamps, and the stamp ids seen per holder.
    """

    def __init__(self):
        self._latest: Optional[Anchor] = None
        self._frozen_balances: Dict[Tuple[str, str, int], int] = {}
        self._stamp_ids: Dict[Tuple[str, str], int] = {}

    @property
    def latest(self) -> Optional[Anchor]:
        return self._latest

    def observe(self, anchor: Anchor) -> Anchor:
        """Advance the latest-anchor pointer; older anchors leave it untouched."""
        if self._latest is None or anchor.height > self._latest.height:
            self._latest = anchor
        return self._latest

    def frozen_balance(self, points: str, account: str, timestamp: int) -> Optional[int]:
        return self._frozen_balances.get(
            (normalize_address(points), normalize_address(account), timestamp)
        )

    def freeze_balance(self, points: str, account: str, timestamp: int, balance: int) -> int:
        """Record a snapshot; the first value recorded for a key is the one kept."""
        key = (normalize_address(points), normalize_address(account), timestamp)
        return self._frozen_balances.setdefault(key, balance)

    def pin_stamp_id(self, stamp: str, account: str, stamp_id: int) -> int:
        """Record the id minted to ``account``; returns the first id ever seen."""
        key = (normalize_address(stamp), normalize_address(account))
        return self._stamp_ids.setdefault(key, stamp_id)

    @property
    def frozen_count(self) -> int:
        return len(self._frozen_balances)


async def fan_out(*aws: Awaitable[Any]) -> List[Any]:
    """Await reads concurrently; if one fails the others are cancelled."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _kind_name(entity_kind: Union[EntityKind, str]) -> str:
    return entity_kind.value if isinstance(entity_kind, EntityKind) else str(entity_kind)


class AnchoredReader:
    """FactSource access bound to one composition and its pinned anchor."""

    def __init__(self, source: FactSource, anchor: Anchor, policy: SnapshotPolicy):
        self.source = source
        self.anchor = anchor
        self.policy = policy
        self.reads = 0
        self._semaphore = asyncio.Semaphore(policy.max_concurrent_reads)
        # Facts already served in this composition, keyed by (kind, id, field, height)
        self._memo: Dict[Tuple[str, str, str, int], Any] = {}

    def _resolve(self, anchor: Optional[Anchor]) -> Anchor:
        target = anchor or self.anchor
        if target.height > self.anchor.height:
            raise ValueError(f"Read at {target} is ahead of the pinned anchor {self.anchor}")
        return target

    async def _fetch(self, entity_kind: Union[EntityKind, str], entity_id: str, field: str, anchor: Anchor) -> Any:
        kind = _kind_name(entity_kind)
        key = (kind, normalize_address(entity_id), field, anchor.height)
        if key in self._memo:
            return copy.deepcopy(self._memo[key])

        async with self._semaphore:
            try:
                fact = await asyncio.wait_for(
                    self.source.read(entity_kind, entity_id, field, anchor),
                    timeout=self.policy.read_timeout,
                )
            except (asyncio.TimeoutError, TimeoutError):
                raise CompositionTimeoutError(
                    f"Fact read timed out after {self.policy.read_timeout}s",
                    entity_kind=kind, entity_id=entity_id, field=field, anchor=anchor,
                )
        self.reads += 1
        if fact.anchor != anchor:
            raise ReadSkew(anchor, fact.anchor, f"{kind}/{entity_id}/{field}")
        self._memo[key] = fact.value
        return copy.deepcopy(fact.value)

    async def read(self, entity_kind: Union[EntityKind, str], entity_id: str, field: str,
                   anchor: Optional[Anchor] = None) -> Any:
        """Read a required fact. Raises NotFoundError when it is absent."""
        target = self._resolve(anchor)
        try:
            return await self._fetch(entity_kind, entity_id, field, target)
        except FactNotFound:
            raise NotFoundError(
                f"Required fact {_kind_name(entity_kind)}/{entity_id}/{field} not found",
                entity_kind=_kind_name(entity_kind), entity_id=entity_id, field=field, anchor=target,
            )

    async def read_optional(self, entity_kind: Union[EntityKind, str], entity_id: str, field: str,
                            default: Any = None, anchor: Optional[Anchor] = None) -> Any:
        """Read a fact that may legitimately be absent."""
        target = self._resolve(anchor)
        try:
            return await self._fetch(entity_kind, entity_id, field, target)
        except FactNotFound:
            return default

    async def read_model(self, model: Type[M], entity_kind: Union[EntityKind, str], entity_id: str,
                         field: str, default: Any = _MISSING) -> Any:
        """Read a fact and validate it into ``model``; lists validate item by item."""
        if default is _MISSING:
            raw = await self.read(entity_kind, entity_id, field)
        else:
            raw = await self.read_optional(entity_kind, entity_id, field, default=None)
            if raw is None:
                return default
        return self.parse(model, raw, entity_kind, entity_id, field)

    def parse(self, model: Type[M], raw: Any, entity_kind: Union[EntityKind, str], entity_id: str,
              field: str) -> Any:
        try:
            if isinstance(raw, list):
                return [model.model_validate(item) for item in raw]
            return model.model_validate(raw)
        except ValidationError as e:
            logger.error(f"[SnapshotCoordinator] Malformed {_kind_name(entity_kind)}/{entity_id}/{field}: {e}")
            raise MalformedFactError(
                f"Fact does not match {model.__name__}: {e.error_count()} validation error(s)",
                entity_kind=_kind_name(entity_kind), entity_id=entity_id, field=field, anchor=self.anchor,
            )

    async def anchor_at(self, timestamp: int) -> Anchor:
        """Historical anchor for ``timestamp``, never later than the pinned anchor."""
        if timestamp > self.anchor.timestamp:
            raise ValueError(f"Timestamp {timestamp} is after the pinned anchor {self.anchor}")
        try:
            historical = await asyncio.wait_for(
                self.source.anchor_at(timestamp), timeout=self.policy.read_timeout
            )
        except (asyncio.TimeoutError, TimeoutError):
            raise CompositionTimeoutError(
                f"Anchor lookup for {timestamp} timed out after {self.policy.read_timeout}s",
                anchor=self.anchor,
            )
        # Anchors sharing the pinned timestamp may have landed after the pin.
        if historical.height > self.anchor.height:
            return self.anchor
        return historical


@dataclass
class ComposedView(Generic[V]):
    """A view together with the anchor it is consistent at."""
    view: V
    anchor: Anchor
    attempts: int
    reads: int = 0


class SnapshotCoordinator:
    """
    Runs view compositions against a single pinned anchor.

    Usage:
        coordinator = SnapshotCoordinator(source, AnchorCache(), SnapshotPolicy())
        composed = await coordinator.build_view(
            EntityKind.SPACE, space_id, viewer, lambda reader: assemble(reader)
        )
    """

    def __init__(self, source: FactSource, cache: Optional[AnchorCache] = None,
                 policy: Optional[SnapshotPolicy] = None):
        self.source = source
        self.cache = cache or AnchorCache()
        self.policy = policy or SnapshotPolicy()

    async def build_view(
        self,
        root_kind: Union[EntityKind, str],
        root_id: str,
        viewer: Viewer,
        compose: Callable[[AnchoredReader], Awaitable[V]],
    ) -> ComposedView[V]:
        """
        Compose a view of ``root_kind/root_id`` for ``viewer``.

        Raises:
            NotFoundError: the root entity or a required fact is absent
            MalformedFactError: a fact violates a composition invariant
            SnapshotUnavailableError: no consistent read within max_attempts
            CompositionTimeoutError: a read or the composition exceeded its bound
        """
        kind = _kind_name(root_kind)
        try:
            return await asyncio.wait_for(
                self._build(kind, root_id, viewer, compose),
                timeout=self.policy.composition_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError):
            logger.warning(
                f"[SnapshotCoordinator] {kind}/{root_id} exceeded {self.policy.composition_timeout}s"
            )
            raise CompositionTimeoutError(
                f"Composition exceeded {self.policy.composition_timeout}s",
                entity_kind=kind, entity_id=root_id, anchor=self.cache.latest,
            )

    async def _pin(self) -> Anchor:
        try:
            anchor = await asyncio.wait_for(self.source.latest_anchor(), timeout=self.policy.read_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            raise CompositionTimeoutError(
                f"Latest anchor lookup timed out after {self.policy.read_timeout}s"
            )
        self.cache.observe(anchor)
        return anchor

    async def _latest_canary(self, kind: str, root_id: str) -> Any:
        try:
            fact = await asyncio.wait_for(
                self.source.read(kind, root_id, SEQUENCE_FIELD), timeout=self.policy.read_timeout
            )
        except FactNotFound:
            return None
        except (asyncio.TimeoutError, TimeoutError):
            raise CompositionTimeoutError(
                f"Canary read timed out after {self.policy.read_timeout}s",
                entity_kind=kind, entity_id=root_id, field=SEQUENCE_FIELD,
            )
        self.cache.observe(fact.anchor)
        return fact.value

    async def _build(self, kind: str, root_id: str, viewer: Viewer,
                     compose: Callable[[AnchoredReader], Awaitable[V]]) -> ComposedView[V]:
        anchor: Optional[Anchor] = None
        last_reason = "no attempt made"

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                anchor = await self._pin()
                reader = AnchoredReader(self.source, anchor, self.policy)
                canary = await reader.read(kind, root_id, SEQUENCE_FIELD)
                view = await compose(reader)
                current = await self._latest_canary(kind, root_id)
            except (AnchorUnavailable, ReadSkew, FactSourceError) as e:
                last_reason = str(e)
                logger.warning(
                    f"[SnapshotCoordinator] Attempt {attempt}/{self.policy.max_attempts} "
                    f"for {kind}/{root_id} at {anchor} discarded: {e}"
                )
                continue

            if current != canary:
                last_reason = f"canary moved from {canary} to {current}"
                logger.warning(
                    f"[SnapshotCoordinator] Attempt {attempt}/{self.policy.max_attempts} "
                    f"for {kind}/{root_id} at {anchor} discarded: {last_reason}"
                )
                continue

            logger.info(
                f"[SnapshotCoordinator] Composed {kind}/{root_id} for {viewer.account} "
                f"at {anchor} (attempt {attempt}, {reader.reads} reads)"
            )
            return ComposedView(view=view, anchor=anchor, attempts=attempt, reads=reader.reads)

        raise SnapshotUnavailableError(
            f"No consistent snapshot after {self.policy.max_attempts} attempts: {last_reason}",
            attempts=self.policy.max_attempts,
            entity_kind=kind, entity_id=root_id, anchor=anchor,
        )
