"""modelhub - FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modelhub import __version__
from modelhub.api.registry_store import get_registry
from modelhub.api.routes import assistants, models
from modelhub.api.schemas import HealthResponse
from modelhub.config import API_PREFIX, HOST, PORT
from modelhub.models.errors import ModelHubError
from modelhub.utils.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the models folder; stop background polling on shutdown."""
    registry = get_registry()
    registry.models_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"modelhub v{__version__} starting, models in {registry.models_dir}")
    yield
    await registry.shutdown()
    logger.info("modelhub stopped")


app = FastAPI(
    title="modelhub",
    description="Local model registry: discover, download, import and describe models",
    version=__version__,
    lifespan=lifespan,
)

# Local desktop clients call from arbitrary origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ModelHubError)
async def registry_error_handler(request: Request, exc: ModelHubError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(models.router, prefix=API_PREFIX)
app.include_router(assistants.router, prefix=API_PREFIX)


@app.get(f"{API_PREFIX}/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=__version__)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
