"""
View composer.

Turns reconciled fact bundles into the nested Plasa view models. Pure:
everything it needs (anchor, viewer, resolved access, tallies, balances)
arrives in the bundle, and bundles are immutable.

Variant-specific fields are dispatched on ``questionType`` and
``stampType`` into the ``specific`` payload slot of each view.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from plasa.data_models.fact_schemas import (
    Anchor,
    EntityKind,
    PlasaDataFact,
    PointsDataFact,
    QuestionType,
    SpaceDataFact,
    StampDataFact,
    StampOwnerFact,
    StampType,
    Viewer,
)
from plasa.data_models.view_schemas import (
    AccountOwnershipStampData,
    AccountOwnershipStampUser,
    FixedQuestionData,
    FixedQuestionUser,
    FollowerSinceStampData,
    FollowerSinceStampUser,
    Holder,
    OpenQuestionData,
    OpenQuestionUser,
    OptionData,
    OptionUser,
    OptionView,
    PlasaData,
    PlasaUser,
    PlasaView,
    PointsData,
    PointsStampData,
    PointsStampView,
    PointsUser,
    PointsView,
    QuestionData,
    QuestionPreview,
    QuestionUser,
    QuestionView,
    RolesUser,
    SpaceData,
    SpacePointsView,
    SpacePreview,
    SpaceUser,
    SpaceView,
    StampData,
    StampUser,
    StampView,
)
from plasa.exceptions import MalformedFactError
from plasa.utils.logger import logger

from .permissions import ResolvedAccess, permission_map
from .tally import QuestionRecord, TallyResult

M = TypeVar("M", bound=BaseModel)


class ViewKind(str, Enum):
    """What a composition produces."""
    PLASA = "plasa"
    SPACE = "space"
    SPACE_PREVIEW = "space_preview"
    QUESTION = "question"
    QUESTION_PREVIEW = "question_preview"
    STAMP = "stamp"
    POINTS_STAMP = "points_stamp"
    POINTS = "points"


@dataclass(frozen=True)
class PointsBundle:
    points_id: str
    data: PointsDataFact
    total_supply: int
    top_holders: List[Tuple[str, int]]
    current_balance: int
    balance_at: Optional[int] = None
    balance_at_timestamp: Optional[int] = None


@dataclass(frozen=True)
class StampBundle:
    stamp_id: str
    data: StampDataFact
    owner: Optional[StampOwnerFact]
    anchor: Anchor
    multiplier: Optional[int] = None


@dataclass(frozen=True)
class QuestionBundle:
    question: QuestionRecord
    anchor: Anchor
    viewer: Viewer
    points: PointsBundle
    viewer_balance: int
    assignments: Dict[str, int]
    viewer_points_at_deadline: Optional[int] = None
    may_add_option: bool = False
    allow_vote_change: bool = True
    # None for previews
    tally: Optional[TallyResult] = None


@dataclass(frozen=True)
class SpaceBundle:
    space_id: str
    data: SpaceDataFact
    access: ResolvedAccess
    # None for previews
    points: Optional[PointsBundle] = None
    stamps: List[StampBundle] = field(default_factory=list)
    questions: List[QuestionBundle] = field(default_factory=list)


@dataclass(frozen=True)
class PlasaBundle:
    data: PlasaDataFact
    username: str
    stamps: List[StampBundle] = field(default_factory=list)
    spaces: List[SpaceBundle] = field(default_factory=list)


def _malformed(message: str, entity_kind: EntityKind, entity_id: str, field_name: Optional[str] = None,
               anchor: Optional[Anchor] = None) -> MalformedFactError:
    logger.error(f"[ViewComposer] {entity_kind.value}/{entity_id}: {message}")
    return MalformedFactError(
        message, entity_kind=entity_kind.value, entity_id=entity_id, field=field_name, anchor=anchor,
    )


class ViewComposer:
    """Builds Preview and View models from fact bundles."""

    def compose(self, kind: ViewKind, bundle: Any) -> BaseModel:
        """
        Compose the view of ``kind`` from ``bundle``.

        Raises:
            MalformedFactError: if the bundle violates a Data/User invariant
        """
        if kind == ViewKind.PLASA:
            return self._plasa(bundle)
        elif kind == ViewKind.SPACE:
            return self._space(bundle, full=True)
        elif kind == ViewKind.SPACE_PREVIEW:
            return self._space(bundle, full=False)
        elif kind == ViewKind.QUESTION:
            return self._question(bundle, full=True)
        elif kind == ViewKind.QUESTION_PREVIEW:
            return self._question(bundle, full=False)
        elif kind == ViewKind.STAMP:
            return self._stamp(bundle)
        elif kind == ViewKind.POINTS_STAMP:
            return self._points_stamp(bundle)
        elif kind == ViewKind.POINTS:
            return self._points(bundle)
        else:
            raise ValueError(f"Unknown view kind: {kind}")

    def _build(self, model: Type[M], entity_kind: EntityKind, entity_id: str, field_name: str,
               **values: Any) -> M:
        try:
            return model(**values)
        except ValidationError as e:
            raise _malformed(
                f"Cannot build {model.__name__}: {e.error_count()} validation error(s)",
                entity_kind, entity_id, field_name,
            )

    # ============================================
    # Points
    # ============================================

    def _points(self, bundle: PointsBundle) -> PointsView:
        data = PointsData(
            contract_address=bundle.data.contract_address,
            name=bundle.data.name,
            symbol=bundle.data.symbol,
            total_supply=bundle.total_supply,
            top_holders=[Holder(user=account, balance=balance) for account, balance in bundle.top_holders],
        )
        user = PointsUser(
            current_balance=bundle.current_balance,
            balance_at=bundle.balance_at,
            balance_at_timestamp=bundle.balance_at_timestamp,
        )
        return PointsView(data=data, user=user)

    # ============================================
    # Stamps
    # ============================================

    def _stamp_specific_data(self, bundle: StampBundle):
        specific = bundle.data.specific
        stamp_type = bundle.data.stamp_type
        if stamp_type == StampType.ACCOUNT_OWNERSHIP:
            return AccountOwnershipStampData()
        elif stamp_type == StampType.FOLLOWER_SINCE:
            return self._build(
                FollowerSinceStampData, EntityKind.STAMP, bundle.stamp_id, "data",
                followed_account=specific.get("followedAccount"),
                space=specific.get("space"),
            )
        else:
            raise _malformed(f"Unknown stamp type {stamp_type}", EntityKind.STAMP, bundle.stamp_id, "data")

    def _stamp_data_values(self, bundle: StampBundle) -> Dict[str, Any]:
        data = bundle.data
        return dict(
            contract_address=data.contract_address,
            stamp_type=data.stamp_type,
            name=data.name,
            symbol=data.symbol,
            platform=data.platform,
            total_supply=data.total_supply,
            specific=self._stamp_specific_data(bundle),
        )

    def _stamp_user(self, bundle: StampBundle) -> StampUser:
        owner = bundle.owner
        if owner is None:
            return StampUser(owns=False)

        specific = owner.specific
        field_name = "owner"
        declared = specific.get("stampType")
        if declared is not None and declared != bundle.data.stamp_type.value:
            raise _malformed(
                f"Owner record is a {declared} payload on a {bundle.data.stamp_type.value} stamp",
                EntityKind.STAMP, bundle.stamp_id, field_name, bundle.anchor,
            )

        stamp_type = bundle.data.stamp_type
        if stamp_type == StampType.ACCOUNT_OWNERSHIP:
            user_specific = AccountOwnershipStampUser(username=specific.get("username"))
        elif stamp_type == StampType.FOLLOWER_SINCE:
            follow_timestamp = specific.get("followTimestamp")
            if isinstance(follow_timestamp, bool) or not isinstance(follow_timestamp, int):
                raise _malformed(
                    "FollowerSince owner record has no followTimestamp",
                    EntityKind.STAMP, bundle.stamp_id, field_name, bundle.anchor,
                )
            if follow_timestamp > bundle.anchor.timestamp:
                raise _malformed(
                    f"Follow timestamp {follow_timestamp} is after the anchor {bundle.anchor}",
                    EntityKind.STAMP, bundle.stamp_id, field_name, bundle.anchor,
                )
            user_specific = FollowerSinceStampUser(
                follow_timestamp=follow_timestamp,
                time_since_follow=bundle.anchor.timestamp - follow_timestamp,
            )
        else:
            raise _malformed(f"Unknown stamp type {stamp_type}", EntityKind.STAMP, bundle.stamp_id, "data")

        return StampUser(
            owns=True,
            stamp_id=owner.stamp_id,
            minting_timestamp=owner.minting_timestamp,
            specific=user_specific,
        )

    def _stamp(self, bundle: StampBundle) -> StampView:
        data = StampData(**self._stamp_data_values(bundle))
        return StampView(data=data, user=self._stamp_user(bundle))

    def _points_stamp(self, bundle: StampBundle) -> PointsStampView:
        if bundle.multiplier is None:
            raise _malformed("Space stamp has no multiplier", EntityKind.STAMP, bundle.stamp_id, "multiplier")
        data = PointsStampData(multiplier=bundle.multiplier, **self._stamp_data_values(bundle))
        return PointsStampView(data=data, user=self._stamp_user(bundle))

    # ============================================
    # Questions
    # ============================================

    def _question(self, bundle: QuestionBundle, full: bool):
        question = bundle.question
        data = question.data
        anchor = bundle.anchor
        question_type = data.question_type

        vetoed_options = [index for index, option in enumerate(question.options) if option.vetoed]
        is_active = not question.vetoed and data.kickoff <= anchor.timestamp < data.deadline

        choice = bundle.assignments.get(bundle.viewer.account)
        voted = choice is not None
        can_vote = (
            is_active
            and not bundle.viewer.is_anonymous
            and bundle.viewer_balance > 0
            and (not voted or bundle.allow_vote_change)
        )

        if question_type == QuestionType.OPEN:
            specific_data = OpenQuestionData(vetoed_options=vetoed_options)
            specific_user = OpenQuestionUser(
                can_add_option=is_active and not bundle.viewer.is_anonymous and bundle.may_add_option
            )
        elif question_type == QuestionType.FIXED:
            if vetoed_options:
                raise _malformed(
                    f"Options {vetoed_options} are vetoed on a Fixed question",
                    EntityKind.QUESTION, question.question_id, "options", anchor,
                )
            specific_data = FixedQuestionData()
            specific_user = FixedQuestionUser()
        else:
            raise _malformed(
                f"Unknown question type {question_type}", EntityKind.QUESTION, question.question_id, "data", anchor,
            )

        question_data = QuestionData(
            contract_address=data.contract_address,
            question_type=question_type,
            title=data.title,
            description=data.description,
            tags=list(data.tags),
            creator=data.creator,
            kickoff=data.kickoff,
            deadline=data.deadline,
            is_active=is_active,
            is_vetoed=question.vetoed,
            vote_count=question.vote_count,
            specific=specific_data,
        )
        question_user = QuestionUser(
            can_vote=can_vote,
            points_at_deadline=bundle.viewer_points_at_deadline,
            specific=specific_user,
        )
        points = self._points(bundle.points)

        if not full:
            return QuestionPreview(data=question_data, user=question_user, points=points)

        tally = bundle.tally
        if tally is None:
            raise ValueError("A full question view needs a tally")
        if tally.total_count != question.vote_count:
            raise _malformed(
                f"Tally counts {tally.total_count} votes, question reports {question.vote_count}",
                EntityKind.QUESTION, question.question_id, "voteCount", anchor,
            )

        options = []
        for index, option in enumerate(question.options):
            option_tally = tally.per_option[index]
            options.append(OptionView(
                data=OptionData(
                    index=index,
                    title=option.title,
                    description=option.description,
                    proposer=option.proposer,
                    vote_count=option_tally.count,
                    points_current=option_tally.live_weight,
                    points_at_deadline=option_tally.frozen_weight,
                    is_vetoed=option.vetoed,
                ),
                user=OptionUser(voted=choice == index),
            ))
        return QuestionView(data=question_data, user=question_user, points=points, options=options)

    # ============================================
    # Spaces / Plasa
    # ============================================

    def _space(self, bundle: SpaceBundle, full: bool):
        data = SpaceData(
            contract_address=bundle.data.contract_address,
            name=bundle.data.name,
            description=bundle.data.description,
            image_url=bundle.data.image_url,
            creation_timestamp=bundle.data.creation_timestamp,
        )
        roles = bundle.access.roles
        user = SpaceUser(
            roles=RolesUser(
                super_admin=roles["superAdmin"],
                admin=roles["admin"],
                mod=roles["mod"],
                holder=roles["holder"],
            ),
            permissions=permission_map(bundle.access.permissions),
        )
        if not full:
            return SpacePreview(data=data, user=user)

        if bundle.points is None:
            raise ValueError("A full space view needs its points")
        return SpaceView(
            data=data,
            user=user,
            points=SpacePointsView(
                points=self._points(bundle.points),
                stamps=[self._points_stamp(stamp) for stamp in bundle.stamps],
            ),
            questions=[self._question(question, full=False) for question in bundle.questions],
        )

    def _plasa(self, bundle: PlasaBundle) -> PlasaView:
        return PlasaView(
            data=PlasaData(
                contract_address=bundle.data.contract_address,
                chain_id=bundle.data.chain_id,
                version=bundle.data.version,
            ),
            user=PlasaUser(username=bundle.username),
            stamps=[self._stamp(stamp) for stamp in bundle.stamps],
            spaces=[self._space(space, full=False) for space in bundle.spaces],
        )
