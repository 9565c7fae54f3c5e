"""Unit tests for the view service entry points."""
import pytest

from ...data_models.fact_schemas import Viewer
from ...engine.composer import ViewKind
from ...facts.demo_ledger import ALICE, FIXED_QUESTION, NOW, SPACE
from ..view_service import PlasaViewService


class TestPlasaViewService:
    """Test composition through the service."""

    @pytest.mark.asyncio
    async def test_compose_reports_anchor(self, service, ledger):
        composed = await service.compose(ViewKind.SPACE, SPACE, Viewer(account=ALICE))
        assert composed.anchor == ledger.latest
        assert composed.anchor.timestamp == NOW
        assert composed.attempts == 1
        assert composed.reads > 0

    @pytest.mark.asyncio
    async def test_compose_accepts_kind_names(self, service):
        composed = await service.compose("space", SPACE, Viewer(account=ALICE))
        assert composed.view.data.name == "Plasa DAO"

    @pytest.mark.asyncio
    async def test_preview_kinds_are_not_top_level(self, service):
        with pytest.raises(ValueError):
            await service.compose(ViewKind.SPACE_PREVIEW, SPACE, Viewer())

    @pytest.mark.asyncio
    async def test_latest_anchor_observed(self, service, ledger):
        anchor = await service.latest_anchor()
        assert anchor == ledger.latest
        assert service.cache.latest == anchor

    @pytest.mark.asyncio
    async def test_frozen_balances_shared_across_requests(self, service):
        """Snapshots frozen by one request are reused by the next."""
        await service.get_question_view(FIXED_QUESTION, Viewer(account=ALICE))
        frozen = service.cache.frozen_count
        await service.get_question_view(FIXED_QUESTION, Viewer(account=ALICE))
        assert frozen > 0
        assert service.cache.frozen_count == frozen

    def test_defaults_from_settings(self, ledger):
        service = PlasaViewService(ledger)
        assert service.coordinator.policy.max_attempts >= 1
        assert service.assembler.tally.policy.value in ("replace", "reject")
