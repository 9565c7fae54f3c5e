"""
Plasa view service.

Entry point for callers that need a view: wires a FactSource to the snapshot
coordinator and the view assembler, and runs each request as one anchored
composition.
"""
from typing import Any, Awaitable, Callable, Dict, Optional

from plasa.config.common_settings import PLASA_REGISTRY_ADDRESS, TOP_HOLDERS_LIMIT
from plasa.data_models.fact_schemas import Anchor, EntityKind, Viewer
from plasa.data_models.view_schemas import PlasaView, QuestionView, SpaceView, StampView
from plasa.engine.assembler import ViewAssembler
from plasa.engine.composer import ViewKind
from plasa.engine.snapshot import (
    AnchorCache,
    AnchoredReader,
    ComposedView,
    SnapshotCoordinator,
    SnapshotPolicy,
)
from plasa.engine.tally import VoteChangePolicy
from plasa.facts.base import FactSource
from plasa.utils.logger import logger

# Root entity kind of each top-level view
ROOT_KINDS: Dict[ViewKind, EntityKind] = {
    ViewKind.PLASA: EntityKind.PLASA,
    ViewKind.SPACE: EntityKind.SPACE,
    ViewKind.QUESTION: EntityKind.QUESTION,
    ViewKind.STAMP: EntityKind.STAMP,
}


class PlasaViewService:
    """Composes snapshot-consistent Plasa views for viewers."""

    def __init__(
        self,
        source: FactSource,
        registry_address: str = PLASA_REGISTRY_ADDRESS,
        policy: Optional[SnapshotPolicy] = None,
        cache: Optional[AnchorCache] = None,
        top_holders_limit: int = TOP_HOLDERS_LIMIT,
        vote_change_policy: Optional[VoteChangePolicy] = None,
    ):
        self.source = source
        self.registry_address = registry_address
        self.cache = cache or AnchorCache()
        self.coordinator = SnapshotCoordinator(source, self.cache, policy or SnapshotPolicy.from_settings())
        self.assembler = ViewAssembler(self.cache, top_holders_limit, vote_change_policy)

    def _composer_for(self, kind: ViewKind, entity_id: str,
                      viewer: Viewer) -> Callable[[AnchoredReader], Awaitable[Any]]:
        if kind == ViewKind.PLASA:
            return lambda reader: self.assembler.plasa_view(reader, entity_id, viewer)
        elif kind == ViewKind.SPACE:
            return lambda reader: self.assembler.space_view(reader, entity_id, viewer)
        elif kind == ViewKind.QUESTION:
            return lambda reader: self.assembler.question_view(reader, entity_id, viewer)
        elif kind == ViewKind.STAMP:
            return lambda reader: self.assembler.stamp_view(reader, entity_id, viewer)
        else:
            raise ValueError(f"{kind} is not a top-level view")

    async def compose(self, kind: ViewKind, entity_id: str, viewer: Viewer) -> ComposedView:
        """
        Compose the ``kind`` view of ``entity_id`` for ``viewer``.

        Returns:
            ComposedView with the view and the anchor it is consistent at

        Raises:
            PlasaViewError: see plasa.exceptions
        """
        kind = ViewKind(kind)
        compose = self._composer_for(kind, entity_id, viewer)
        logger.debug(f"[PlasaViewService] Composing {kind.value} view of {entity_id} for {viewer.account}")
        return await self.coordinator.build_view(ROOT_KINDS[kind], entity_id, viewer, compose)

    async def get_plasa_view(self, viewer: Viewer) -> PlasaView:
        composed = await self.compose(ViewKind.PLASA, self.registry_address, viewer)
        return composed.view

    async def get_space_view(self, space_id: str, viewer: Viewer) -> SpaceView:
        composed = await self.compose(ViewKind.SPACE, space_id, viewer)
        return composed.view

    async def get_question_view(self, question_id: str, viewer: Viewer) -> QuestionView:
        composed = await self.compose(ViewKind.QUESTION, question_id, viewer)
        return composed.view

    async def get_stamp_view(self, stamp_id: str, viewer: Viewer) -> StampView:
        composed = await self.compose(ViewKind.STAMP, stamp_id, viewer)
        return composed.view

    async def latest_anchor(self) -> Anchor:
        anchor = await self.source.latest_anchor()
        return self.cache.observe(anchor)

    async def close(self) -> None:
        await self.source.close()
