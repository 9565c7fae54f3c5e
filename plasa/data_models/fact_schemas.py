"""Schemas for raw ledger facts.

Defines the anchor/fact envelope served by a FactSource and the payload
shapes of the individual facts the view engine reads. Payloads keep the
ledger's camelCase keys.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator
from pydantic.alias_generators import to_camel

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(value: str) -> str:
    """Addresses are compared case-insensitively."""
    return value.strip().lower()


class EntityKind(str, Enum):
    """Entity kinds a FactSource can be asked about."""
    PLASA = "plasa"
    ACCOUNT = "account"
    SPACE = "space"
    POINTS = "points"
    QUESTION = "question"
    STAMP = "stamp"


class QuestionType(str, Enum):
    OPEN = "Open"
    FIXED = "Fixed"


class StampType(str, Enum):
    ACCOUNT_OWNERSHIP = "AccountOwnership"
    FOLLOWER_SINCE = "FollowerSince"


class Anchor(BaseModel):
    """A single point in the ledger's timeline."""
    model_config = ConfigDict(frozen=True)

    height: int = Field(..., ge=0, description="Block height")
    timestamp: int = Field(..., ge=0, description="Block timestamp in seconds")

    def __str__(self) -> str:
        return f"{self.height}:{self.timestamp}"


class RawFact(BaseModel):
    """One fact about one entity, as served at one anchor."""
    model_config = ConfigDict(frozen=True)

    value: Any = Field(..., description="Fact payload")
    anchor: Anchor = Field(..., description="Anchor the fact was served at")


class Viewer(BaseModel):
    """The account a view is computed for."""
    model_config = ConfigDict(frozen=True)

    account: str = Field(ZERO_ADDRESS, description="Viewer account address")
    username: Optional[str] = Field(None, description="Linked off-chain username")

    @field_validator("account")
    @classmethod
    def _normalize_account(cls, value: str) -> str:
        return normalize_address(value)

    @property
    def is_anonymous(self) -> bool:
        return self.account == ZERO_ADDRESS


class FactPayload(BaseModel):
    """Base for raw fact payloads: camelCase keys, immutable once parsed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ============================================
# Plasa / Space / Points payloads
# ============================================

class PlasaDataFact(FactPayload):
    contract_address: str
    chain_id: int = Field(..., ge=0)
    version: str


class SpaceDataFact(FactPayload):
    contract_address: str
    name: str
    description: str = ""
    image_url: str = ""
    creation_timestamp: int = Field(..., ge=0)


class SpaceStampRef(FactPayload):
    """A stamp a space accepts as a points source."""
    stamp: str
    multiplier: int = Field(1, ge=0)


class PointsDataFact(FactPayload):
    contract_address: str
    name: str
    symbol: str


# ============================================
# Question payloads
# ============================================

class QuestionDataFact(FactPayload):
    contract_address: str
    question_type: QuestionType
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    creator: str
    kickoff: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0)


class OptionFact(FactPayload):
    title: str
    description: str = ""
    proposer: str
    vetoed: StrictBool = False


class BallotFact(FactPayload):
    """One cast ballot. A list-valued option is a multi-choice record."""
    voter: str
    option: Union[StrictInt, List[StrictInt]]
    cast_at: StrictInt = Field(..., ge=0)

    @field_validator("voter")
    @classmethod
    def _normalize_voter(cls, value: str) -> str:
        return normalize_address(value)


# ============================================
# Stamp payloads
# ============================================

class StampDataFact(FactPayload):
    contract_address: str
    stamp_type: StampType
    name: str
    symbol: str
    platform: str = ""
    total_supply: int = Field(..., ge=0)
    specific: Dict[str, Any] = Field(default_factory=dict)


class StampOwnerFact(FactPayload):
    stamp_id: int = Field(..., ge=0)
    minting_timestamp: int = Field(..., ge=0)
    specific: Dict[str, Any] = Field(default_factory=dict)
