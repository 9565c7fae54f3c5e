import pytest

from plasa.engine.snapshot import SnapshotPolicy
from plasa.engine.tally import VoteChangePolicy
from plasa.facts.demo_ledger import PLASA, build_demo_ledger
from plasa.services.view_service import PlasaViewService


@pytest.fixture
def ledger():
    """The demo ledger, latest anchor (4, NOW)."""
    return build_demo_ledger()


@pytest.fixture
def policy():
    return SnapshotPolicy(max_attempts=3, read_timeout=1.0, composition_timeout=5.0, max_concurrent_reads=8)


@pytest.fixture
def service(ledger, policy):
    return PlasaViewService(
        ledger,
        registry_address=PLASA,
        policy=policy,
        top_holders_limit=2,
        vote_change_policy=VoteChangePolicy.REPLACE,
    )
