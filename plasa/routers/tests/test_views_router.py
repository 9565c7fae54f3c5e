"""Tests for the view routes, run against the demo ledger."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from ...data_models.fact_schemas import ZERO_ADDRESS, Viewer
from ...facts.demo_ledger import ALICE, BOB, FOLLOWER_STAMP, NOW, OPEN_QUESTION, SPACE
from ...main import app
from .. import deps
from ..deps import get_view_service, get_viewer
from ..views import ANCHOR_HEADER


@pytest.fixture
def client(service):
    app.dependency_overrides[get_view_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestViewRoutes:
    """Test the HTTP surface."""

    def test_plasa_view(self, client):
        response = client.get("/plasa", params={"viewer": ALICE})
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["username"] == "alice.eth"
        assert body["data"]["chainId"] == 8453
        assert response.headers[ANCHOR_HEADER] == f"4:{NOW}"

    def test_space_view_is_camel_case(self, client):
        response = client.get(f"/spaces/{SPACE}", params={"viewer": BOB})
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["roles"] == {"superAdmin": False, "admin": False, "mod": True, "holder": True}
        assert body["user"]["permissions"]["AddOpenQuestionOption"] is True
        assert body["points"]["points"]["data"]["totalSupply"] == 1400

    def test_question_view(self, client):
        response = client.get(f"/questions/{OPEN_QUESTION}", params={"viewer": BOB})
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["specific"] == {"questionType": "Open", "vetoedOptions": [1]}
        assert body["user"]["specific"]["canAddOption"] is True

    def test_stamp_view(self, client):
        response = client.get(f"/stamps/{FOLLOWER_STAMP}", params={"viewer": ALICE})
        assert response.status_code == 200
        assert response.json()["user"]["specific"]["timeSinceFollow"] == 86400

    def test_anonymous_viewer(self, client):
        response = client.get(f"/questions/{OPEN_QUESTION}")
        assert response.status_code == 200
        assert response.json()["user"]["canVote"] is False

    def test_not_found(self, client):
        response = client.get("/spaces/0xdead")
        assert response.status_code == 404
        body = response.json()
        assert body["error_type"] == "NotFoundError"
        assert body["retryable"] is False
        assert body["context"]["entity_id"] == "0xdead"

    def test_unavailable_snapshot_sets_retry_after(self, client, ledger):
        """Pruned history fails with a retryable 503."""
        ledger.retention = 0
        response = client.get(f"/spaces/{SPACE}", params={"viewer": ALICE})
        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert response.headers["Retry-After"] == "1"

    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["anchor"] == {"height": 4, "timestamp": NOW}


class TestGetViewer:
    """Test viewer resolution."""

    def test_query_parameters(self):
        request = SimpleNamespace(state=SimpleNamespace())
        viewer = get_viewer(request, viewer=ALICE.upper().replace("0X", "0x"), username="alice")
        assert viewer == Viewer(account=ALICE, username="alice")

    def test_anonymous(self):
        request = SimpleNamespace(state=SimpleNamespace())
        assert get_viewer(request, viewer=None, username=None).account == ZERO_ADDRESS

    def test_authenticated_viewer_wins(self):
        request = SimpleNamespace(state=SimpleNamespace(viewer={"account": BOB, "username": "bob"}))
        viewer = get_viewer(request, viewer=ALICE, username=None)
        assert viewer.account == BOB
        assert viewer.username == "bob"


class TestGetViewService:
    """Test the lazily built service singleton."""

    @pytest.mark.asyncio
    async def test_built_once(self):
        with patch.object(deps, "_service", None), patch.object(deps, "HttpFactSource") as source_cls:
            source_cls.return_value.close = AsyncMock()
            first = deps.get_view_service()
            second = deps.get_view_service()
            assert first is second
            source_cls.assert_called_once_with(deps.FACT_SOURCE_URL)

            await deps.shutdown_view_service()
            source_cls.return_value.close.assert_awaited_once()
            assert deps._service is None
