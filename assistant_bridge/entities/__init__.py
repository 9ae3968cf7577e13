"""Data entities for the assistant bridge."""

from .config import ServiceConfig
from .headers import HEADER_ACCEPT_LANGUAGE, HEADER_CORRELATION_ID, HEADER_CSRF_TOKEN, SESSION_COOKIE
from .interfaces import CancelCheck, IConversationOrchestrator
from .records import (
    MANUAL_MODEL,
    Assistant,
    AssistantEvent,
    AssistantStatus,
    Configuration,
    CustomModel,
    FileEvent,
    FileRecord,
    FileStatus,
    KnownModel,
    ModelSelection,
    decode_instructions,
    model_from_form,
    normalize_instructions,
    transition_assistant,
    transition_file,
)
from .schemas import CascadeError, CascadeOutcome, HistoryEntry, UploadError, UploadReport

__all__ = [
    "ServiceConfig",
    "HEADER_ACCEPT_LANGUAGE",
    "HEADER_CORRELATION_ID",
    "HEADER_CSRF_TOKEN",
    "SESSION_COOKIE",
    "CancelCheck",
    "IConversationOrchestrator",
    "MANUAL_MODEL",
    "Assistant",
    "AssistantEvent",
    "AssistantStatus",
    "Configuration",
    "CustomModel",
    "FileEvent",
    "FileRecord",
    "FileStatus",
    "KnownModel",
    "ModelSelection",
    "decode_instructions",
    "model_from_form",
    "normalize_instructions",
    "transition_assistant",
    "transition_file",
    "CascadeError",
    "CascadeOutcome",
    "HistoryEntry",
    "UploadError",
    "UploadReport",
]
