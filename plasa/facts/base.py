"""
FactSource boundary.

A FactSource answers "one fact about one entity as of one anchor". The
ledger runtime, RPC plumbing and history indexing all live behind it;
the view engine only consumes it.
"""
from abc import ABC, abstractmethod
from typing import Optional, Union

from plasa.data_models.fact_schemas import Anchor, EntityKind, RawFact, normalize_address


class FactNotFound(LookupError):
    """The entity or the field has no value at the requested anchor."""

    def __init__(self, entity_kind: str, entity_id: str, field: str, anchor: Optional[Anchor] = None):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.field = field
        self.anchor = anchor
        super().__init__(f"No fact {entity_kind}/{entity_id}/{field} at anchor {anchor}")


class AnchorUnavailable(Exception):
    """The source cannot serve reads as of the requested anchor."""

    def __init__(self, anchor: Optional[Anchor], reason: str = "anchor not served"):
        self.anchor = anchor
        self.reason = reason
        super().__init__(f"Anchor {anchor} unavailable: {reason}")


class FactSourceError(Exception):
    """Transport or protocol failure talking to a fact source."""

    def __init__(self, message: str, status_code: int = 500, response: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(f"Fact source error {status_code}: {message}")


def account_field(field: str, account: str) -> str:
    """Per-account fields are addressed as ``<field>:<account>``."""
    return f"{field}:{normalize_address(account)}"


class FactSource(ABC):
    """Read-only access to ledger facts, as of the latest or a historical anchor."""

    @abstractmethod
    async def latest_anchor(self) -> Anchor:
        """Return the latest anchor the source has observed."""

    @abstractmethod
    async def anchor_at(self, timestamp: int) -> Anchor:
        """Return the latest anchor whose timestamp is at or before ``timestamp``.

        Raises:
            AnchorUnavailable: if no such anchor is retained
        """

    @abstractmethod
    async def read(
        self,
        entity_kind: Union[EntityKind, str],
        entity_id: str,
        field: str,
        anchor: Optional[Anchor] = None,
    ) -> RawFact:
        """Read one fact, as of ``anchor`` or the latest anchor when omitted.

        Raises:
            FactNotFound: if the fact has no value at that anchor
            AnchorUnavailable: if the anchor is ahead of the source or pruned
        """

    async def close(self) -> None:
        """Release any transport resources."""
