"""Core services: provisioning, ingestion, conversation and teardown."""

from .admin import AssistantService, ConfigurationService, FileService
from .api_key_validator import ApiKeyValidator
from .assistant_provisioner import AssistantProvisioner, build_assistant_body
from .cascade import CascadeDeleter
from .conversation import ConversationOrchestrator, extract_reply
from .credentials import CredentialResolver
from .file_ingestion import FileIngestionPipeline, FileResolver
from .idempotency import IdempotencyCache, derive_key
from .knowledge_store import KnowledgeStoreProvisioner
from .secret_codec import SecretCodec

__all__ = [
    "AssistantService",
    "ConfigurationService",
    "FileService",
    "ApiKeyValidator",
    "AssistantProvisioner",
    "build_assistant_body",
    "CascadeDeleter",
    "ConversationOrchestrator",
    "extract_reply",
    "CredentialResolver",
    "FileIngestionPipeline",
    "FileResolver",
    "IdempotencyCache",
    "derive_key",
    "KnowledgeStoreProvisioner",
    "SecretCodec",
]
