"""Models API routes."""

from typing import Any

from fastapi import APIRouter, HTTPException

from modelhub.api.registry_store import download_states, get_registry
from modelhub.api.schemas import (
    DownloadModelRequest,
    ImportRequest,
    ImportResponse,
    SuccessResponse,
)
from modelhub.models.errors import (
    InvalidDescriptorError,
    InvalidReferenceError,
    NotSupportedModelError,
    ProtectedResourceError,
)
from modelhub.models.hub import gguf_files
from modelhub.utils.logging import logger

router = APIRouter(prefix="/models", tags=["models"])


@router.get("")
async def list_models():
    """List all registered models."""
    logger.info("Listing models")
    models = await get_registry().list_models()
    return {"models": [m.model_dump(mode="json") for m in models]}


@router.get("/downloaded")
async def list_downloaded():
    """List models whose binaries are available."""
    models = await get_registry().list_downloaded()
    return {"models": [m.model_dump(mode="json") for m in models]}


@router.post("/import")
async def import_models(request: ImportRequest) -> ImportResponse:
    """Import model files from local paths."""
    outcome = await get_registry().import_models(request.models, request.option)
    return ImportResponse(
        imported=[m.model_dump(mode="json") for m in outcome.imported],
        failed=outcome.failed,
    )


@router.get("/hub/{repo:path}")
async def get_repo_data(repo: str):
    """Look up a HuggingFace repository and its GGUF files."""
    try:
        data = await get_registry().fetch_repo_data(repo)
    except InvalidReferenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotSupportedModelError as e:
        raise HTTPException(status_code=422, detail=str(e))

    result = data.model_dump()
    result["gguf_files"] = [s.model_dump() for s in gguf_files(data)]
    return result


@router.get("/{model_id}")
async def get_model(model_id: str):
    """Get a specific model."""
    model = await get_registry().retrieve(model_id)
    if not model:
        raise HTTPException(404, "Model not found")
    return {"model": model.model_dump(mode="json")}


@router.patch("/{model_id}")
async def update_model(model_id: str, changes: dict[str, Any]):
    """Update a model; nested settings, parameters and metadata are merged."""
    changes = {k: v for k, v in changes.items() if k not in ("file_path", "file_name")}
    try:
        model = await get_registry().update({**changes, "id": model_id})
    except InvalidDescriptorError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not model:
        raise HTTPException(404, "Model not found")
    return {"model": model.model_dump(mode="json")}


@router.delete("/{model_id}")
async def delete_model(model_id: str):
    """Delete a model's files."""
    try:
        deleted = await get_registry().delete(model_id)
    except ProtectedResourceError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not deleted:
        raise HTTPException(404, "Model not found")
    return {"status": "deleted"}


@router.post("/{model_id}/download")
async def download_model(model_id: str, request: DownloadModelRequest | None = None):
    """Start downloading a model's binaries."""
    network = request.network if request else None
    submitted = await get_registry().download_by_id(model_id, network)
    if submitted is None:
        raise HTTPException(404, "Model not found")
    if not submitted:
        return SuccessResponse(
            success=False,
            message="Nothing to download: model is already on disk or not supported on this device",
        )
    return SuccessResponse(success=True, message=f"Starting download {model_id}")


@router.get("/{model_id}/download")
async def download_status(model_id: str):
    """Latest progress reported for a model's download."""
    if model_id not in download_states:
        raise HTTPException(404, "Download not found")
    return download_states[model_id]


@router.post("/{model_id}/cancel")
async def cancel_download(model_id: str):
    """Cancel an active download."""
    await get_registry().cancel_download(model_id)
    download_states.pop(model_id, None)
    return {"status": "cancelled", "model_id": model_id}
