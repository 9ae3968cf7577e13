"""Request and response schemas for the API endpoints and service reports."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .records import ModelSelection


class UploadError(BaseModel):
    """Why one file reference could not be ingested."""

    ref: str
    reason: str


class UploadReport(BaseModel):
    """Result of one ingestion batch."""

    record_id: Optional[int] = Field(default=None, description="The initiating file record")
    succeeded: int = 0
    failed: int = 0
    file_ids: list[str] = Field(default_factory=list)
    errors: list[UploadError] = Field(default_factory=list)


class CascadeError(BaseModel):
    kind: Literal["assistant", "file", "vector_store"]
    remote_id: str
    error: str


class CascadeOutcome(BaseModel):
    """Report of a best-effort remote teardown. Returned, never raised."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[CascadeError] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: str


# Chat widget


class TokenResponse(BaseModel):
    token: str


class SendRequest(BaseModel):
    """Schema for a chat widget message."""

    message: str = ""
    token: Optional[str] = None
    locale: Optional[str] = None


class SendResponse(BaseModel):
    reply: str
    timestamp: str


class HistoryResponse(BaseModel):
    history: list[HistoryEntry] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str


# Admin


class ApiKeyValidationRequest(BaseModel):
    key: str


class ApiKeyValidationResponse(BaseModel):
    valid: bool
    message: str


class ConfigurationCreate(BaseModel):
    title: str = Field(min_length=1)
    api_key: str = Field(min_length=1)


class ConfigurationUpdate(BaseModel):
    title: Optional[str] = None
    api_key: Optional[str] = None


class ConfigurationView(BaseModel):
    """A configuration as shown to the admin, with the key masked."""

    id: int
    title: str
    api_key: str
    vector_store_id: Optional[str] = None


class ModelListResponse(BaseModel):
    models: list[str]


class AssistantInput(BaseModel):
    """Admin form for an assistant. ``model`` may be the ``manual`` sentinel."""

    name: str = Field(min_length=1)
    description: str = ""
    system_instructions: str = ""
    model: Optional[str] = None
    model_manual: Optional[str] = None
    temperature: float = Field(default=0.25, ge=0, le=2)
    top_p: float = Field(default=1.0, ge=0, le=1)
    max_tokens: int = Field(default=2000, ge=0)


class AssistantView(BaseModel):
    id: int
    config_id: int
    name: str
    description: str
    system_instructions: str
    model: ModelSelection
    temperature: float
    top_p: float
    max_tokens: int
    openai_assistant_id: Optional[str] = None
    status: str
    status_cause: Optional[str] = None


class FileUploadRequest(BaseModel):
    """Files below the upload root. ``record_id`` re-submits an existing file record."""

    file_refs: list[str] = Field(min_length=1)
    record_id: Optional[int] = None
    idempotency_key: Optional[str] = None


class FileView(BaseModel):
    id: int
    config_id: int
    filename: str
    openai_file_id: Optional[str] = None
    file_size: int
    status: str
