from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from plasa.data_models.fact_schemas import Viewer
from plasa.engine.composer import ViewKind
from plasa.exceptions import PlasaViewError
from plasa.services.view_service import PlasaViewService
from plasa.utils.logger import logger

from .deps import get_view_service, get_viewer

ANCHOR_HEADER = "X-Plasa-Anchor"

router = APIRouter(tags=["views"])


async def _respond(service: PlasaViewService, kind: ViewKind, entity_id: str, viewer: Viewer) -> JSONResponse:
    try:
        composed = await service.compose(kind, entity_id, viewer)
    except PlasaViewError as e:
        if e.code >= 500:
            logger.warning(f"Router: {kind.value} view of {entity_id} failed: {e.message}")
        headers = {"Retry-After": str(int(e.retry_after))} if e.retry_after is not None else None
        return JSONResponse(status_code=e.code, content=e.to_dict(), headers=headers)

    return JSONResponse(
        content=composed.view.model_dump(mode="json", by_alias=True),
        headers={ANCHOR_HEADER: str(composed.anchor)},
    )


@router.get("/plasa")
async def get_plasa(
    viewer: Viewer = Depends(get_viewer),
    service: PlasaViewService = Depends(get_view_service),
):
    """The Plasa root view: protocol stamps and space previews."""
    return await _respond(service, ViewKind.PLASA, service.registry_address, viewer)


@router.get("/spaces/{space_id}")
async def get_space(
    space_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: PlasaViewService = Depends(get_view_service),
):
    return await _respond(service, ViewKind.SPACE, space_id, viewer)


@router.get("/questions/{question_id}")
async def get_question(
    question_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: PlasaViewService = Depends(get_view_service),
):
    return await _respond(service, ViewKind.QUESTION, question_id, viewer)


@router.get("/stamps/{stamp_id}")
async def get_stamp(
    stamp_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: PlasaViewService = Depends(get_view_service),
):
    return await _respond(service, ViewKind.STAMP, stamp_id, viewer)
