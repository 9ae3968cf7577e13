"""Centralized error handling for the assistant bridge."""

from typing import Any

from fastapi import HTTPException
from openai import OpenAIError

from ..entities.errors import (
    AssistantBridgeError,
    AssistantProvisioningFailed,
    KnowledgeStoreCreationFailed,
    NoConfiguration,
    RecordNotFound,
    SingletonViolation,
)
from ..entities.headers import HEADER_LOCATION
from ..structured_logging import get_logger

logger = get_logger("ERROR_HANDLERS")

SINGLETON_LOCATIONS = {
    "configuration": "/admin/configurations/{id}",
    "assistant": "/admin/assistants/{id}",
}


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def handle_openai_error(err: OpenAIError, operation: str, correlation_id: str, **context: Any) -> HTTPException:
        """Convert OpenAI errors to HTTP exceptions with consistent logging."""
        logger.error(
            f"OpenAI {operation} failed",
            correlation_id=correlation_id,
            error_type=type(err).__name__,
            error=str(err),
            **context,
        )
        return HTTPException(status_code=502, detail=f"Failed to {operation} (correlation_id: {correlation_id[:8]})")

    @staticmethod
    def handle_unexpected_error(err: Exception, operation: str, correlation_id: str, **context: Any) -> HTTPException:
        """Convert unexpected errors to HTTP exceptions with consistent logging."""
        logger.error(
            f"Unexpected error during {operation}",
            correlation_id=correlation_id,
            error_type=type(err).__name__,
            error=str(err),
            **context,
        )
        return HTTPException(status_code=500, detail=f"Internal server error (correlation_id: {correlation_id[:8]})")

    @staticmethod
    def handle_validation_error(message: str, correlation_id: str, **context: Any) -> HTTPException:
        """Handle validation errors with consistent logging."""
        logger.error(message, correlation_id=correlation_id, **context)
        return HTTPException(status_code=400, detail=f"{message} (correlation_id: {correlation_id[:8]})")

    @staticmethod
    def handle_domain_error(
        err: AssistantBridgeError, operation: str, correlation_id: str, **context: Any
    ) -> HTTPException:
        """Map the error taxonomy to status codes. The message is meant for the admin and is passed through."""
        detail = f"{err.message} (correlation_id: {correlation_id[:8]})"
        headers = None
        if isinstance(err, SingletonViolation):
            status_code = 409
            location = SINGLETON_LOCATIONS.get(err.kind)
            if location:
                headers = {HEADER_LOCATION: location.format(id=err.existing_id)}
        elif isinstance(err, (RecordNotFound, NoConfiguration)):
            status_code = 404
        elif isinstance(err, (KnowledgeStoreCreationFailed, AssistantProvisioningFailed)):
            status_code = 502
        else:
            status_code = 400
        logger.error(
            f"{operation} failed",
            correlation_id=correlation_id,
            error_type=type(err).__name__,
            error=err.message,
            status_code=status_code,
            **context,
        )
        return HTTPException(status_code=status_code, detail=detail, headers=headers)

    @staticmethod
    def from_exception(err: Exception, operation: str, correlation_id: str, **context: Any) -> HTTPException:
        if isinstance(err, HTTPException):
            return err
        if isinstance(err, AssistantBridgeError):
            return ErrorHandler.handle_domain_error(err, operation, correlation_id, **context)
        if isinstance(err, OpenAIError):
            return ErrorHandler.handle_openai_error(err, operation, correlation_id, **context)
        return ErrorHandler.handle_unexpected_error(err, operation, correlation_id, **context)
