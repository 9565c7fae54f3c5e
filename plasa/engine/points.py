"""
Points balances: live, historical and frozen.

Live balances are read as of the composition's pinned anchor. Historical
balances are read as of the ledger anchor at the requested timestamp and,
once that timestamp is strictly in the past, frozen in the AnchorCache so
that every later request returns the exact same value.
"""
from typing import Any, Dict, List, Optional, Tuple

from plasa.data_models.fact_schemas import EntityKind, normalize_address
from plasa.exceptions import MalformedFactError
from plasa.facts.base import account_field
from plasa.utils.logger import logger

from .snapshot import AnchorCache, AnchoredReader


def as_balance(value: Any, points: str, field: str, anchor=None) -> int:
    """Balances are non-negative integers; anything else is malformed."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedFactError(
            f"Balance must be a non-negative integer, got {value!r}",
            entity_kind=EntityKind.POINTS.value, entity_id=points, field=field, anchor=anchor,
        )
    return value


class PointsEngine:
    """Resolves point balances and supply for a points contract."""

    def __init__(self, cache: AnchorCache):
        self.cache = cache

    async def balance(self, reader: AnchoredReader, points: str, account: str) -> int:
        """Balance of ``account`` as of the pinned anchor (0 when never credited)."""
        field = account_field("balance", account)
        value = await reader.read_optional(EntityKind.POINTS, points, field, default=0)
        return as_balance(value, points, field, reader.anchor)

    async def balance_at(self, reader: AnchoredReader, points: str, account: str, timestamp: int) -> int:
        """
        Balance of ``account`` at ``timestamp``.

        Raises:
            ValueError: if ``timestamp`` is after the pinned anchor
        """
        if timestamp > reader.anchor.timestamp:
            raise ValueError(
                f"Cannot read balance at {timestamp}: after pinned anchor {reader.anchor}"
            )

        frozen = self.cache.frozen_balance(points, account, timestamp)
        if frozen is not None:
            return frozen

        historical = await reader.anchor_at(timestamp)
        field = account_field("balance", account)
        value = await reader.read_optional(EntityKind.POINTS, points, field, default=0, anchor=historical)
        balance = as_balance(value, points, field, historical)

        # More anchors may still land on the pinned timestamp itself.
        if timestamp < reader.anchor.timestamp:
            balance = self.cache.freeze_balance(points, account, timestamp, balance)
        return balance

    async def total_supply(self, reader: AnchoredReader, points: str) -> int:
        value = await reader.read(EntityKind.POINTS, points, "totalSupply")
        return as_balance(value, points, "totalSupply", reader.anchor)

    async def holders(self, reader: AnchoredReader, points: str) -> Dict[str, int]:
        raw = await reader.read_optional(EntityKind.POINTS, points, "holders", default={})
        if not isinstance(raw, dict):
            raise MalformedFactError(
                "Holders must be a mapping of account to balance",
                entity_kind=EntityKind.POINTS.value, entity_id=points, field="holders", anchor=reader.anchor,
            )
        holders: Dict[str, int] = {}
        for account, balance in raw.items():
            key = normalize_address(account) if isinstance(account, str) else None
            if key is None or key in holders:
                raise MalformedFactError(
                    f"Holder key {account!r} is not a distinct address",
                    entity_kind=EntityKind.POINTS.value, entity_id=points, field="holders", anchor=reader.anchor,
                )
            holders[key] = as_balance(balance, points, "holders", reader.anchor)
        return holders

    async def top_holders(self, reader: AnchoredReader, points: str, limit: int = 10) -> List[Tuple[str, int]]:
        """Largest positive balances, ties broken by address."""
        holders = await self.holders(reader, points)
        ranked = sorted(
            ((account, balance) for account, balance in holders.items() if balance > 0),
            key=lambda item: (-item[1], item[0]),
        )
        return ranked[:limit]

    async def frozen_or_none(self, reader: AnchoredReader, points: str, account: str,
                             deadline: int) -> Optional[int]:
        """Snapshot at ``deadline`` once it has passed, else None."""
        if reader.anchor.timestamp < deadline:
            return None
        balance = await self.balance_at(reader, points, account, deadline)
        logger.debug(f"[PointsEngine] {account} held {balance} of {points} at {deadline}")
        return balance
