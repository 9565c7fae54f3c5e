"""
Permission definitions and role resolution for spaces.

Defines the 14 space permissions, the protocol's default bundle per role
and the resolution of a viewer's effective permissions:

    effective[k] = override[viewer][k] if present else role_default[role][k]

Role defaults are monotone in role rank. A space may replace the bundle of
any role, but the merged bundles must remain monotone.
"""
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Any, Dict, List, Mapping, Optional

from plasa.data_models.fact_schemas import EntityKind, Viewer
from plasa.exceptions import MalformedFactError
from plasa.facts.base import account_field
from plasa.utils.logger import logger

from .snapshot import AnchoredReader, fan_out


class Permission(IntFlag):
    """Space permissions as a 14-bit set."""
    UpdateSpaceInfo = 1 << 0
    UpdateSpacePoints = 1 << 1
    UpdateQuestionInfo = 1 << 2
    UpdateQuestionDeadline = 1 << 3
    UpdateQuestionPoints = 1 << 4
    CreateFixedQuestion = 1 << 5
    CreateOpenQuestion = 1 << 6
    VetoFixedQuestion = 1 << 7
    VetoOpenQuestion = 1 << 8
    VetoOpenQuestionOption = 1 << 9
    LiftVetoFixedQuestion = 1 << 10
    LiftVetoOpenQuestion = 1 << 11
    LiftVetoOpenQuestionOption = 1 << 12
    AddOpenQuestionOption = 1 << 13


NO_PERMISSIONS = Permission(0)

# All permission keys, in bit order
PERMISSION_KEYS: List[str] = [permission.name for permission in Permission]

ALL_PERMISSIONS = Permission(0)
for _permission in Permission:
    ALL_PERMISSIONS |= _permission


class Role(IntEnum):
    """Space roles, ordered by rank."""
    holder = 0
    mod = 1
    admin = 2
    superAdmin = 3


# Protocol role definitions
ROLE_DEFINITIONS: Dict[str, Dict[str, Any]] = {
    "superAdmin": {
        "name": "superAdmin",
        "description": "Full control over the space, its points and its questions.",
        "permissions": list(PERMISSION_KEYS),
    },
    "admin": {
        "name": "admin",
        "description": "Create and edit questions, veto and lift vetoes.",
        "permissions": [
            "UpdateQuestionInfo",
            "UpdateQuestionDeadline",
            "CreateFixedQuestion",
            "CreateOpenQuestion",
            "VetoFixedQuestion",
            "VetoOpenQuestion",
            "VetoOpenQuestionOption",
            "LiftVetoFixedQuestion",
            "LiftVetoOpenQuestion",
            "LiftVetoOpenQuestionOption",
            "AddOpenQuestionOption",
        ],
    },
    "mod": {
        "name": "mod",
        "description": "Moderate open questions and veto offending content.",
        "permissions": [
            "CreateOpenQuestion",
            "VetoFixedQuestion",
            "VetoOpenQuestion",
            "VetoOpenQuestionOption",
            "AddOpenQuestionOption",
        ],
    },
    "holder": {
        "name": "holder",
        "description": "No permissions unless the space grants them.",
        "permissions": [],
    },
}


def permission_set(keys: List[str]) -> Permission:
    """Fold permission keys into a flag; unknown keys raise KeyError."""
    flags = NO_PERMISSIONS
    for key in keys:
        flags |= Permission[key]
    return flags


DEFAULT_ROLE_PERMISSIONS: Dict[Role, Permission] = {
    Role[name]: permission_set(definition["permissions"])
    for name, definition in ROLE_DEFINITIONS.items()
}


def is_monotone(bundles: Mapping[Role, Permission]) -> bool:
    """Every permission of a role is held by every higher role."""
    ranked = sorted(bundles.items())
    return all(
        (lower & ~higher) == NO_PERMISSIONS
        for (_, lower), (_, higher) in zip(ranked, ranked[1:])
    )


def permission_map(flags: Permission) -> Dict[str, bool]:
    return {key: bool(flags & Permission[key]) for key in PERMISSION_KEYS}


@dataclass(frozen=True)
class ResolvedAccess:
    """A viewer's role and effective permissions in one space."""
    role: Role
    holds_points: bool
    permissions: Permission

    @property
    def roles(self) -> Dict[str, bool]:
        return {
            "superAdmin": self.role >= Role.superAdmin,
            "admin": self.role >= Role.admin,
            "mod": self.role >= Role.mod,
            "holder": self.holds_points or self.role > Role.holder,
        }

    def has(self, permission: Permission) -> bool:
        return (self.permissions & permission) == permission


def merge_role_defaults(space_defaults: Optional[Mapping[str, List[str]]]) -> Dict[Role, Permission]:
    """Protocol defaults with a space's replacements applied per role."""
    bundles = dict(DEFAULT_ROLE_PERMISSIONS)
    for role_name, keys in (space_defaults or {}).items():
        bundles[Role[role_name]] = permission_set(keys)
    return bundles


def resolve_permissions(
    role: Role,
    role_defaults: Mapping[Role, Permission],
    overrides: Optional[Mapping[str, bool]] = None,
) -> Permission:
    """Role default first, then the viewer's explicit grants and revocations."""
    effective = role_defaults[role]
    for key, granted in (overrides or {}).items():
        flag = Permission[key]
        effective = effective | flag if granted else effective & ~flag
    return effective


class PermissionEngine:
    """Resolves a viewer's roles and permissions in a space as of an anchor."""

    async def resolve(self, reader: AnchoredReader, space_id: str, viewer: Viewer, holds_points: bool = False) -> ResolvedAccess:
        """
        Read the space's role facts for ``viewer`` and resolve them.

        Args:
            reader: AnchoredReader pinned to the composition's anchor
            space_id: Space address
            viewer: Requesting viewer
            holds_points: Whether the viewer's current balance is positive

        Raises:
            MalformedFactError: unknown role or permission keys, or non-monotone defaults
        """
        role_name, space_defaults, overrides = await fan_out(
            reader.read_optional(EntityKind.SPACE, space_id, account_field("role", viewer.account)),
            reader.read_optional(EntityKind.SPACE, space_id, "roleDefaults"),
            reader.read_optional(EntityKind.SPACE, space_id, account_field("overrides", viewer.account)),
        )
        return self.resolve_facts(
            space_id, role_name, space_defaults, overrides, holds_points, reader.anchor, account=viewer.account,
        )

    def resolve_facts(
        self,
        space_id: str,
        role_name: Optional[str],
        space_defaults: Optional[Mapping[str, List[str]]],
        overrides: Optional[Mapping[str, bool]],
        holds_points: bool = False,
        anchor=None,
        account: Optional[str] = None,
    ) -> ResolvedAccess:
        """Pure resolution over already-read facts."""
        if overrides is not None:
            self._check_overrides(space_id, overrides, anchor, account)
        try:
            role = Role[role_name] if role_name else Role.holder
            bundles = merge_role_defaults(space_defaults)
            permissions = resolve_permissions(role, bundles, overrides)
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"[PermissionEngine] Malformed role facts for space {space_id}: {e}")
            raise MalformedFactError(
                f"Unknown role or permission key: {e}",
                entity_kind=EntityKind.SPACE.value, entity_id=space_id, anchor=anchor,
            )

        if not is_monotone(bundles):
            logger.error(f"[PermissionEngine] Non-monotone role defaults for space {space_id}")
            raise MalformedFactError(
                "Role defaults are not monotone in role rank",
                entity_kind=EntityKind.SPACE.value, entity_id=space_id, field="roleDefaults", anchor=anchor,
            )

        return ResolvedAccess(role=role, holds_points=holds_points, permissions=permissions)

    @staticmethod
    def _check_overrides(space_id: str, overrides: Any, anchor, account: Optional[str]) -> None:
        # Overrides are explicit grants and revocations; only real booleans count
        field = account_field("overrides", account) if account else "overrides"
        if not isinstance(overrides, Mapping):
            bad = f"expected a mapping, got {type(overrides).__name__}"
        else:
            bad = next(
                (f"{key!r} maps to {granted!r}" for key, granted in overrides.items() if not isinstance(granted, bool)),
                None,
            )
        if bad is not None:
            logger.error(f"[PermissionEngine] Malformed overrides for space {space_id}: {bad}")
            raise MalformedFactError(
                f"Overrides must map permission keys to booleans: {bad}",
                entity_kind=EntityKind.SPACE.value, entity_id=space_id, field=field, anchor=anchor,
            )
