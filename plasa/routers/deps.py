from __future__ import annotations

import threading
from typing import Optional

from fastapi import Query, Request

from plasa.config.common_settings import FACT_SOURCE_URL
from plasa.data_models.fact_schemas import ZERO_ADDRESS, Viewer
from plasa.facts.http_source import HttpFactSource
from plasa.services.view_service import PlasaViewService
from plasa.utils.logger import logger

# Shared FastAPI router dependencies

_service: Optional[PlasaViewService] = None
_service_lock = threading.Lock()


def get_view_service() -> PlasaViewService:
    """Get or create the view service with lazy initialization."""
    global _service

    if _service is None:
        with _service_lock:
            # Double-check pattern to avoid race conditions
            if _service is None:
                logger.info(f"Initializing PlasaViewService against {FACT_SOURCE_URL}")
                _service = PlasaViewService(HttpFactSource(FACT_SOURCE_URL))
    return _service


async def shutdown_view_service() -> None:
    global _service

    if _service is not None:
        await _service.close()
        _service = None


def get_viewer(
    request: Request,
    viewer: Optional[str] = Query(None, description="Viewer account address"),
    username: Optional[str] = Query(None, description="Viewer's linked username"),
) -> Viewer:
    """
    FastAPI dependency resolving the viewer a view is computed for.

    An authenticated viewer set on ``request.state`` by middleware wins over
    the query parameters. Without either the viewer is anonymous (zero address).
    """
    authenticated = getattr(request.state, "viewer", None)
    if isinstance(authenticated, Viewer):
        return authenticated
    if isinstance(authenticated, dict):
        return Viewer(
            account=authenticated.get("account") or ZERO_ADDRESS,
            username=authenticated.get("username"),
        )
    return Viewer(account=viewer or ZERO_ADDRESS, username=username)
