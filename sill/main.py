import logging

from fastapi import FastAPI

from sill.api.error_handlers import register_error_handlers
from sill.api.routes import router as api_router
from sill.core.dependencies import initialize_data_api, shutdown_data_api

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="SILL data API",
    version="0.1.0",
    description="Catalog of recommended free software, backed by a git data repository.",
)

register_error_handlers(app)
app.include_router(api_router, tags=["sill"])


@app.on_event("startup")
async def startup_event() -> None:
    """
    Fetch the initial state (compiled data + rows) and start the periodic
    compile trigger when enabled.
    """
    await initialize_data_api()
    logger.info("Data API initialized")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await shutdown_data_api()


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    """
    Allow running `python -m sill.main` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "sill.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
