"""Error taxonomy for provisioning and conversation flows."""

from typing import Optional


class AssistantBridgeError(Exception):
    """Base class for all domain errors raised by the service layer."""

    default_message = "Assistant bridge error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# Resolution of configuration and credentials


class NoConfiguration(AssistantBridgeError):
    default_message = "No OpenAI configuration found"


class NoAssistant(AssistantBridgeError):
    default_message = "No assistant configured"


class NoApiKey(AssistantBridgeError):
    default_message = "No valid API key found in configuration"


class InvalidKey(AssistantBridgeError):
    default_message = "API key validation failed"


class NoModel(AssistantBridgeError):
    default_message = "No model specified. Please select a model or enter a custom model name."


class NoKnowledgeStore(AssistantBridgeError):
    default_message = "No vector store ID found in configuration"


class IncompatibleModel(AssistantBridgeError):
    def __init__(self, model: str):
        super().__init__(
            f'The model "{model}" is not compatible with the Assistants API. Please select a different model.'
        )
        self.model = model


# Provisioning


class KnowledgeStoreCreationFailed(AssistantBridgeError):
    default_message = "Failed to create vector store"


class AssistantProvisioningFailed(AssistantBridgeError):
    default_message = "Failed to create/update assistant"


# File ingestion


class FileNotFound(AssistantBridgeError):
    def __init__(self, ref: str):
        super().__init__(f"File not found: {ref}")
        self.ref = ref


class UnsupportedType(AssistantBridgeError):
    def __init__(self, filename: str, extension: str):
        super().__init__(f"File type not supported: {filename}")
        self.filename = filename
        self.extension = extension


class TooLarge(AssistantBridgeError):
    def __init__(self, filename: str, size: int, limit: int):
        super().__init__(
            f"File too large: {filename} ({size / 1024 / 1024:.2f}MB). Maximum size is {limit // (1024 * 1024)}MB."
        )
        self.filename = filename
        self.size = size
        self.limit = limit


# Conversation


class RunFailed(AssistantBridgeError):
    def __init__(self, status: str):
        super().__init__(f"Assistant run failed with status: {status}")
        self.status = status


class RunTimeout(AssistantBridgeError):
    def __init__(self, attempts: int):
        super().__init__(f"Assistant run timed out after {attempts} polls")
        self.attempts = attempts


class RunCancelled(AssistantBridgeError):
    default_message = "Assistant run cancelled by caller"


class NoAssistantResponse(AssistantBridgeError):
    default_message = "No assistant response found"


# Records


class RecordNotFound(AssistantBridgeError):
    def __init__(self, kind: str, record_id: int):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class SingletonViolation(AssistantBridgeError):
    """A second record was requested where only one may exist."""

    def __init__(self, kind: str, existing_id: int):
        super().__init__(f"Only one {kind} is allowed. Existing record: {existing_id}")
        self.kind = kind
        self.existing_id = existing_id


class InvalidStatusTransition(AssistantBridgeError):
    def __init__(self, current: str, event: str):
        super().__init__(f"Cannot apply '{event}' to status '{current}'")
        self.current = current
        self.event = event


class ValidationFailed(AssistantBridgeError):
    default_message = "Invalid input"
