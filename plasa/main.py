from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plasa import __version__
from plasa.config.common_settings import ALLOWED_ORIGINS
from plasa.routers.deps import get_view_service, shutdown_view_service
from plasa.routers.views import router as views_router
from plasa.services.view_service import PlasaViewService
from plasa.utils.logger import logger

logger.info("Plasa Views starting up...")

app = FastAPI(title="Plasa Views", version=__version__)

# Cannot use "*" when credentials are enabled
allowed_origins = [origin.strip() for origin in ALLOWED_ORIGINS.split(",") if origin.strip()]
logger.info(f"Allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Plasa-Anchor", "Retry-After"],
)


@app.get("/healthz")
async def healthz(service: PlasaViewService = Depends(get_view_service)) -> dict:
    """Health check reporting the fact source's latest anchor."""
    try:
        anchor = await service.latest_anchor()
    except Exception as e:
        logger.warning(f"Health check could not reach the fact source: {e}")
        return {"status": "degraded", "fact_source": f"error: {str(e)[:100]}"}
    return {"status": "ok", "fact_source": "connected", "anchor": anchor.model_dump()}


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on application shutdown."""
    logger.info("Shutting down Plasa Views...")
    await shutdown_view_service()


app.include_router(views_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("plasa.main:app", host="0.0.0.0", port=8000)
