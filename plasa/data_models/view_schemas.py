"""Schemas for composed Plasa views.

Every entity is split into `data` (viewer-independent facts) and `user`
(facts relative to the requesting viewer). Previews carry data and user
only; full views add their nested children. Serialised with camelCase
aliases, e.g. ``view.model_dump(mode="json", by_alias=True)``.
"""
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from .fact_schemas import QuestionType, StampType


class ViewModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ============================================
# Points
# ============================================

class Holder(ViewModel):
    user: str = Field(..., description="Holder address")
    balance: int = Field(..., ge=0)


class PointsData(ViewModel):
    contract_address: str
    name: str
    symbol: str
    total_supply: int = Field(..., ge=0)
    top_holders: List[Holder] = Field(default_factory=list)


class PointsUser(ViewModel):
    current_balance: int = Field(..., ge=0)
    balance_at: Optional[int] = Field(None, ge=0, description="Frozen balance at balanceAtTimestamp")
    balance_at_timestamp: Optional[int] = Field(None, description="Timestamp of the frozen balance")


class PointsView(ViewModel):
    data: PointsData
    user: PointsUser


# ============================================
# Stamps
# ============================================

class AccountOwnershipStampData(ViewModel):
    stamp_type: Literal[StampType.ACCOUNT_OWNERSHIP] = StampType.ACCOUNT_OWNERSHIP


class FollowerSinceStampData(ViewModel):
    stamp_type: Literal[StampType.FOLLOWER_SINCE] = StampType.FOLLOWER_SINCE
    followed_account: str
    space: str


StampSpecificData = Annotated[
    Union[AccountOwnershipStampData, FollowerSinceStampData],
    Field(discriminator="stamp_type"),
]


class AccountOwnershipStampUser(ViewModel):
    stamp_type: Literal[StampType.ACCOUNT_OWNERSHIP] = StampType.ACCOUNT_OWNERSHIP
    username: Optional[str] = Field(None, description="Linked external username")


class FollowerSinceStampUser(ViewModel):
    stamp_type: Literal[StampType.FOLLOWER_SINCE] = StampType.FOLLOWER_SINCE
    follow_timestamp: int
    time_since_follow: int = Field(..., ge=0, description="Seconds since the follow, as of the anchor")


StampSpecificUser = Annotated[
    Union[AccountOwnershipStampUser, FollowerSinceStampUser],
    Field(discriminator="stamp_type"),
]


class StampData(ViewModel):
    contract_address: str
    stamp_type: StampType
    name: str
    symbol: str
    platform: str
    total_supply: int = Field(..., ge=0)
    specific: StampSpecificData


class PointsStampData(StampData):
    multiplier: int = Field(..., ge=0)


class StampUser(ViewModel):
    owns: bool
    stamp_id: Optional[int] = None
    minting_timestamp: Optional[int] = None
    specific: Optional[StampSpecificUser] = None


class StampView(ViewModel):
    data: StampData
    user: StampUser


class PointsStampView(ViewModel):
    data: PointsStampData
    user: StampUser


# ============================================
# Options / Questions
# ============================================

class OptionData(ViewModel):
    index: int = Field(..., ge=0)
    title: str
    description: str
    proposer: str
    vote_count: int = Field(..., ge=0)
    points_current: int = Field(..., ge=0, description="Live weight of the option's voters")
    points_at_deadline: Optional[int] = Field(None, ge=0, description="Weight frozen at the deadline")
    is_vetoed: bool = False


class OptionUser(ViewModel):
    voted: bool


class OptionView(ViewModel):
    data: OptionData
    user: OptionUser


class OpenQuestionData(ViewModel):
    question_type: Literal[QuestionType.OPEN] = QuestionType.OPEN
    vetoed_options: List[int] = Field(default_factory=list)


class FixedQuestionData(ViewModel):
    question_type: Literal[QuestionType.FIXED] = QuestionType.FIXED


QuestionSpecificData = Annotated[
    Union[OpenQuestionData, FixedQuestionData],
    Field(discriminator="question_type"),
]


class OpenQuestionUser(ViewModel):
    question_type: Literal[QuestionType.OPEN] = QuestionType.OPEN
    can_add_option: bool


class FixedQuestionUser(ViewModel):
    question_type: Literal[QuestionType.FIXED] = QuestionType.FIXED


QuestionSpecificUser = Annotated[
    Union[OpenQuestionUser, FixedQuestionUser],
    Field(discriminator="question_type"),
]


class QuestionData(ViewModel):
    contract_address: str
    question_type: QuestionType
    title: str
    description: str
    tags: List[str] = Field(default_factory=list)
    creator: str
    kickoff: int
    deadline: int
    is_active: bool
    is_vetoed: bool
    vote_count: int = Field(..., ge=0)
    specific: QuestionSpecificData


class QuestionUser(ViewModel):
    can_vote: bool
    points_at_deadline: Optional[int] = Field(None, ge=0, description="Viewer balance frozen at the deadline")
    specific: QuestionSpecificUser


class QuestionPreview(ViewModel):
    data: QuestionData
    user: QuestionUser
    points: PointsView


class QuestionView(QuestionPreview):
    options: List[OptionView] = Field(default_factory=list)


# ============================================
# Spaces
# ============================================

class SpaceData(ViewModel):
    contract_address: str
    name: str
    description: str
    image_url: str
    creation_timestamp: int


class RolesUser(ViewModel):
    super_admin: bool
    admin: bool
    mod: bool
    holder: bool


class SpaceUser(ViewModel):
    roles: RolesUser
    permissions: Dict[str, bool] = Field(..., description="The 14 permission keys")


class SpacePreview(ViewModel):
    data: SpaceData
    user: SpaceUser


class SpacePointsView(ViewModel):
    points: PointsView
    stamps: List[PointsStampView] = Field(default_factory=list)


class SpaceView(SpacePreview):
    points: SpacePointsView
    questions: List[QuestionPreview] = Field(default_factory=list)


# ============================================
# Plasa
# ============================================

class PlasaData(ViewModel):
    contract_address: str
    chain_id: int
    version: str


class PlasaUser(ViewModel):
    username: str


class PlasaView(ViewModel):
    data: PlasaData
    user: PlasaUser
    stamps: List[StampView] = Field(default_factory=list)
    spaces: List[SpacePreview] = Field(default_factory=list)
