from .assembler import ViewAssembler
from .composer import ViewComposer, ViewKind
from .permissions import Permission, PermissionEngine, ResolvedAccess, Role
from .points import PointsEngine
from .snapshot import AnchorCache, AnchoredReader, ComposedView, SnapshotCoordinator, SnapshotPolicy
from .tally import VoteChangePolicy, VoteTally

__all__ = [
    "AnchorCache",
    "AnchoredReader",
    "ComposedView",
    "Permission",
    "PermissionEngine",
    "PointsEngine",
    "ResolvedAccess",
    "Role",
    "SnapshotCoordinator",
    "SnapshotPolicy",
    "ViewAssembler",
    "ViewComposer",
    "ViewKind",
    "VoteChangePolicy",
    "VoteTally",
]
