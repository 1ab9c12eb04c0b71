"""Pydantic models for API request/response schemas."""

from typing import Any

from pydantic import BaseModel

from modelhub.models.descriptor import ImportingModel, ImportOption, NetworkOptions


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class DownloadModelRequest(BaseModel):
    """Model download request."""

    network: NetworkOptions | None = None


class ImportRequest(BaseModel):
    """Local model import request."""

    models: list[ImportingModel]
    option: ImportOption = ImportOption.COPY


class ImportResponse(BaseModel):
    """Batch import result."""

    imported: list[dict[str, Any]]
    failed: list[ImportingModel]


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool
    message: str | None = None
