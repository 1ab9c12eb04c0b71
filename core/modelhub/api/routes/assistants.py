"""Assistants API routes."""

from fastapi import APIRouter, HTTPException

from modelhub import config
from modelhub.storage.collections import (
    ASSISTANTS,
    delete_resource,
    get_resources,
    retrieve_resource,
)

router = APIRouter(prefix="/assistants", tags=["assistants"])


@router.get("")
async def list_assistants():
    """List all assistants."""
    return {"assistants": get_resources(ASSISTANTS, config.DATA_DIR)}


@router.get("/{assistant_id}")
async def get_assistant(assistant_id: str):
    """Get a specific assistant."""
    assistant = retrieve_resource(ASSISTANTS, assistant_id, config.DATA_DIR)
    if not assistant:
        raise HTTPException(404, "Assistant not found")
    return assistant


@router.delete("/{assistant_id}")
async def delete_assistant(assistant_id: str):
    """Delete an assistant. The built-in assistant cannot be deleted."""
    return delete_resource(ASSISTANTS, assistant_id, config.DATA_DIR)
