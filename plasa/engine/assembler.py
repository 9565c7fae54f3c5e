"""
Fan-out assembly of view bundles.

For each view kind, issues the FactSource reads it needs through the
composition's AnchoredReader (concurrently wherever reads are independent),
runs them through the permission, points and tally engines, and hands the
reconciled bundle to the ViewComposer.
"""
from typing import Any, List, Optional

from plasa.config.common_settings import TOP_HOLDERS_LIMIT
from plasa.data_models.fact_schemas import (
    BallotFact,
    EntityKind,
    OptionFact,
    PlasaDataFact,
    PointsDataFact,
    QuestionDataFact,
    SpaceDataFact,
    SpaceStampRef,
    StampDataFact,
    StampOwnerFact,
    Viewer,
    normalize_address,
)
from plasa.data_models.view_schemas import PlasaView, QuestionView, SpaceView, StampView
from plasa.exceptions import MalformedFactError
from plasa.facts.base import account_field
from plasa.utils.logger import logger

from .composer import (
    PlasaBundle,
    PointsBundle,
    QuestionBundle,
    SpaceBundle,
    StampBundle,
    ViewComposer,
    ViewKind,
)
from .permissions import Permission, PermissionEngine, ResolvedAccess
from .points import PointsEngine
from .snapshot import AnchorCache, AnchoredReader, fan_out
from .tally import QuestionRecord, VoteChangePolicy, VoteTally


def _malformed(message: str, entity_kind: EntityKind, entity_id: str, field: str,
               reader: AnchoredReader) -> MalformedFactError:
    logger.error(f"[ViewAssembler] {entity_kind.value}/{entity_id}/{field}: {message}")
    return MalformedFactError(
        message, entity_kind=entity_kind.value, entity_id=entity_id, field=field, anchor=reader.anchor,
    )


def _address_list(raw: Any, entity_kind: EntityKind, entity_id: str, field: str,
                  reader: AnchoredReader) -> List[str]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise _malformed("Expected a list of addresses", entity_kind, entity_id, field, reader)
    return [normalize_address(item) for item in raw]


def _count(raw: Any, entity_kind: EntityKind, entity_id: str, field: str, reader: AnchoredReader) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise _malformed(f"Expected a non-negative integer, got {raw!r}", entity_kind, entity_id, field, reader)
    return raw


class ViewAssembler:
    """Reads, reconciles and composes Plasa views for one viewer."""

    def __init__(
        self,
        cache: AnchorCache,
        top_holders_limit: int = TOP_HOLDERS_LIMIT,
        vote_change_policy: Optional[VoteChangePolicy] = None,
    ):
        self.cache = cache
        self.top_holders_limit = top_holders_limit
        self.points = PointsEngine(cache)
        self.permissions = PermissionEngine()
        self.tally = VoteTally(self.points, vote_change_policy)
        self.composer = ViewComposer()

    # ============================================
    # Bundles
    # ============================================

    async def points_bundle(self, reader: AnchoredReader, points_id: str, viewer: Viewer,
                            snapshot_at: Optional[int] = None) -> PointsBundle:
        """Points facts plus the viewer's balance, and its snapshot at ``snapshot_at`` once passed."""
        data, total_supply, top_holders, balance = await fan_out(
            reader.read_model(PointsDataFact, EntityKind.POINTS, points_id, "data"),
            self.points.total_supply(reader, points_id),
            self.points.top_holders(reader, points_id, self.top_holders_limit),
            self.points.balance(reader, points_id, viewer.account),
        )

        balance_at = None
        if snapshot_at is not None:
            balance_at = await self.points.frozen_or_none(reader, points_id, viewer.account, snapshot_at)

        return PointsBundle(
            points_id=points_id,
            data=data,
            total_supply=total_supply,
            top_holders=top_holders,
            current_balance=balance,
            balance_at=balance_at,
            balance_at_timestamp=snapshot_at if balance_at is not None else None,
        )

    async def stamp_bundle(self, reader: AnchoredReader, stamp_id: str, viewer: Viewer,
                           multiplier: Optional[int] = None) -> StampBundle:
        data, owner = await fan_out(
            reader.read_model(StampDataFact, EntityKind.STAMP, stamp_id, "data"),
            reader.read_model(
                StampOwnerFact, EntityKind.STAMP, stamp_id, account_field("owner", viewer.account), default=None,
            ),
        )
        if owner is not None:
            first_seen = self.cache.pin_stamp_id(stamp_id, viewer.account, owner.stamp_id)
            if first_seen != owner.stamp_id:
                raise _malformed(
                    f"Stamp id changed from {first_seen} to {owner.stamp_id}",
                    EntityKind.STAMP, stamp_id, account_field("owner", viewer.account), reader,
                )
        return StampBundle(stamp_id=stamp_id, data=data, owner=owner, anchor=reader.anchor, multiplier=multiplier)

    async def question_record(self, reader: AnchoredReader, question_id: str) -> QuestionRecord:
        kind = EntityKind.QUESTION
        data, space, points, raw_options, raw_ballots, vote_count, vetoed = await fan_out(
            reader.read_model(QuestionDataFact, kind, question_id, "data"),
            reader.read(kind, question_id, "space"),
            reader.read_optional(kind, question_id, "points"),
            reader.read(kind, question_id, "options"),
            reader.read_optional(kind, question_id, "ballots", default=[]),
            reader.read(kind, question_id, "voteCount"),
            reader.read_optional(kind, question_id, "vetoed", default=False),
        )

        if not isinstance(raw_options, list):
            raise _malformed("Options must be a list", kind, question_id, "options", reader)
        if not isinstance(raw_ballots, list):
            raise _malformed("Ballots must be a list", kind, question_id, "ballots", reader)
        if not isinstance(vetoed, bool):
            raise _malformed(f"Veto flag must be a boolean, got {vetoed!r}", kind, question_id, "vetoed", reader)
        if data.deadline < data.kickoff:
            raise _malformed(
                f"Deadline {data.deadline} precedes kickoff {data.kickoff}", kind, question_id, "data", reader,
            )

        if points is None:
            points = await reader.read(EntityKind.SPACE, space, "points")

        return QuestionRecord(
            question_id=normalize_address(question_id),
            data=data,
            space=normalize_address(space),
            points=normalize_address(points),
            options=reader.parse(OptionFact, raw_options, kind, question_id, "options"),
            ballots=reader.parse(BallotFact, raw_ballots, kind, question_id, "ballots"),
            vote_count=_count(vote_count, kind, question_id, "voteCount", reader),
            vetoed=vetoed,
        )

    async def question_bundle(self, reader: AnchoredReader, question_id: str, viewer: Viewer, full: bool,
                              space_id: Optional[str] = None,
                              access: Optional[ResolvedAccess] = None) -> QuestionBundle:
        """
        Everything a question preview (or, with ``full``, a question view) needs.

        Args:
            space_id: The space listing this question, checked against the question's own space
            access: The viewer's already-resolved access in that space
        """
        record = await self.question_record(reader, question_id)
        if space_id is not None and record.space != normalize_address(space_id):
            raise _malformed(
                f"Listed by space {space_id} but belongs to {record.space}",
                EntityKind.QUESTION, question_id, "space", reader,
            )

        points = await self.points_bundle(reader, record.points, viewer, snapshot_at=record.data.deadline)

        tally = None
        if full:
            resolved, tally = await fan_out(
                self._access(reader, record.space, viewer, points.current_balance > 0, access),
                self.tally.tally(reader, record),
            )
            assignments = tally.assignments
        else:
            resolved = await self._access(reader, record.space, viewer, points.current_balance > 0, access)
            assignments = self.tally.assign(record)
            self.tally.count(record, assignments)

        return QuestionBundle(
            question=record,
            anchor=reader.anchor,
            viewer=viewer,
            points=points,
            viewer_balance=points.current_balance,
            assignments=assignments,
            viewer_points_at_deadline=points.balance_at,
            may_add_option=resolved.has(Permission.AddOpenQuestionOption),
            allow_vote_change=self.tally.policy == VoteChangePolicy.REPLACE,
            tally=tally,
        )

    async def _access(self, reader: AnchoredReader, space_id: str, viewer: Viewer, holds_points: bool,
                      access: Optional[ResolvedAccess]) -> ResolvedAccess:
        if access is not None:
            return access
        return await self.permissions.resolve(reader, space_id, viewer, holds_points)

    async def space_bundle(self, reader: AnchoredReader, space_id: str, viewer: Viewer, full: bool) -> SpaceBundle:
        kind = EntityKind.SPACE
        data, points_id = await fan_out(
            reader.read_model(SpaceDataFact, kind, space_id, "data"),
            reader.read(kind, space_id, "points"),
        )
        balance = await self.points.balance(reader, points_id, viewer.account)

        if not full:
            access = await self.permissions.resolve(reader, space_id, viewer, balance > 0)
            return SpaceBundle(space_id=space_id, data=data, access=access)

        raw_questions, stamp_refs, access, points = await fan_out(
            reader.read_optional(kind, space_id, "questions", default=[]),
            reader.read_model(SpaceStampRef, kind, space_id, "stamps", default=[]),
            self.permissions.resolve(reader, space_id, viewer, balance > 0),
            self.points_bundle(reader, points_id, viewer),
        )
        question_ids = _address_list(raw_questions, kind, space_id, "questions", reader)
        if not isinstance(stamp_refs, list):
            raise _malformed("Stamps must be a list", kind, space_id, "stamps", reader)

        stamps, questions = await fan_out(
            fan_out(*(self.stamp_bundle(reader, ref.stamp, viewer, ref.multiplier) for ref in stamp_refs)),
            fan_out(*(
                self.question_bundle(reader, question_id, viewer, full=False, space_id=space_id, access=access)
                for question_id in question_ids
            )),
        )
        return SpaceBundle(
            space_id=space_id,
            data=data,
            access=access,
            points=points,
            stamps=stamps,
            questions=questions,
        )

    async def plasa_bundle(self, reader: AnchoredReader, plasa_id: str, viewer: Viewer) -> PlasaBundle:
        kind = EntityKind.PLASA
        data, raw_spaces, raw_stamps, username = await fan_out(
            reader.read_model(PlasaDataFact, kind, plasa_id, "data"),
            reader.read_optional(kind, plasa_id, "spaces", default=[]),
            reader.read_optional(kind, plasa_id, "stamps", default=[]),
            reader.read_optional(EntityKind.ACCOUNT, viewer.account, "username"),
        )
        space_ids = _address_list(raw_spaces, kind, plasa_id, "spaces", reader)
        stamp_ids = _address_list(raw_stamps, kind, plasa_id, "stamps", reader)

        spaces, stamps = await fan_out(
            fan_out(*(self.space_bundle(reader, space_id, viewer, full=False) for space_id in space_ids)),
            fan_out(*(self.stamp_bundle(reader, stamp_id, viewer) for stamp_id in stamp_ids)),
        )
        return PlasaBundle(
            data=data,
            username=username or viewer.username or "",
            stamps=stamps,
            spaces=spaces,
        )

    # ============================================
    # Views
    # ============================================

    async def plasa_view(self, reader: AnchoredReader, plasa_id: str, viewer: Viewer) -> PlasaView:
        bundle = await self.plasa_bundle(reader, plasa_id, viewer)
        return self.composer.compose(ViewKind.PLASA, bundle)

    async def space_view(self, reader: AnchoredReader, space_id: str, viewer: Viewer) -> SpaceView:
        bundle = await self.space_bundle(reader, space_id, viewer, full=True)
        return self.composer.compose(ViewKind.SPACE, bundle)

    async def question_view(self, reader: AnchoredReader, question_id: str, viewer: Viewer) -> QuestionView:
        bundle = await self.question_bundle(reader, question_id, viewer, full=True)
        return self.composer.compose(ViewKind.QUESTION, bundle)

    async def stamp_view(self, reader: AnchoredReader, stamp_id: str, viewer: Viewer) -> StampView:
        bundle = await self.stamp_bundle(reader, stamp_id, viewer)
        return self.composer.compose(ViewKind.STAMP, bundle)
