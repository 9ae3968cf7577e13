"""Main application module for the assistant bridge.

This module bootstraps the FastAPI application: the chat widget endpoints and the admin back office.
"""

import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..bootstrap import (
    get_api_key_validator,
    get_assistant_service,
    get_client_factory,
    get_configuration_service,
    get_credential_resolver,
    get_file_service,
    get_orchestrator,
    get_record_repository,
    get_secret_codec,
    get_secret_repository,
)
from ..entities import (
    HEADER_ACCEPT_LANGUAGE,
    HEADER_CORRELATION_ID,
    HEADER_CSRF_TOKEN,
    MANUAL_MODEL,
    SESSION_COOKIE,
    Assistant,
    CascadeOutcome,
    Configuration,
    FileRecord,
    ServiceConfig,
    UploadReport,
)
from ..entities.errors import InvalidKey, RunCancelled
from ..entities.schemas import (
    ApiKeyValidationRequest,
    ApiKeyValidationResponse,
    AssistantInput,
    AssistantView,
    ConfigurationCreate,
    ConfigurationUpdate,
    ConfigurationView,
    ErrorResponse,
    FileUploadRequest,
    FileView,
    HistoryResponse,
    ModelListResponse,
    SendRequest,
    SendResponse,
    TokenResponse,
)
from ..structured_logging import CorrelationContext, configure_structlog, get_logger
from .error_handlers import ErrorHandler
from .messages import detect_language, get_message
from .sessions import (
    LAST_REQUEST_KEY,
    LAST_TOKEN_REQUEST_KEY,
    SessionStore,
    is_valid_csrf_token,
    issue_csrf_token,
    rate_limited,
)

logger = get_logger("MAIN")

REPLY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def create_lifespan(api_instance: "AssistantBridgeAPI") -> Any:
    """Create a lifespan context manager for the API instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown."""
        logger.info("Application starting up...", environment=api_instance.service_config.environment)
        yield
        logger.info("Application shutting down...")

    return lifespan


class AssistantBridgeAPI:
    """Main API class for the assistant bridge."""

    def __init__(self, service_config: Optional[ServiceConfig] = None, sessions: Optional[SessionStore] = None) -> None:
        """Initialize the assistant bridge with configuration.

        Args:
            service_config: Optional service configuration. If not provided, will be loaded from environment.
            sessions: Optional session store, a fresh in-memory store otherwise.
        """
        self.service_config = service_config or ServiceConfig()
        self.sessions = sessions or SessionStore()

        # Set up repositories using factory functions
        secret_repository = get_secret_repository(self.service_config)
        self.records = get_record_repository(self.service_config)

        # Create components using factory functions
        self.client_factory = get_client_factory(self.service_config)
        self.codec = get_secret_codec(self.service_config)
        self.validator = get_api_key_validator(self.service_config, self.client_factory)
        self.credentials = get_credential_resolver(self.codec, self.validator, secret_repository)
        self.orchestrator = get_orchestrator(self.service_config, self.records, self.credentials, self.client_factory)
        self.configurations = get_configuration_service(
            self.records, self.codec, self.validator, self.credentials, self.client_factory
        )
        self.assistants = get_assistant_service(self.records, self.credentials, self.client_factory)
        self.files = get_file_service(self.service_config, self.records, self.credentials, self.client_factory)

        # Log configuration (without sensitive data)
        logger.info(
            "Booting with config",
            environment=self.service_config.environment,
            client_id=self.service_config.client_id,
            openai_base_url=self.service_config.openai_base_url,
            api_key_prefixes=self.service_config.api_key_prefixes,
            run_poll_interval=self.service_config.run_poll_interval,
            run_max_poll_attempts=self.service_config.run_max_poll_attempts,
            upload_root=self.service_config.upload_root,
            allowed_extensions=self.service_config.allowed_extensions,
        )

        self.app = FastAPI(title="Assistant Bridge", lifespan=create_lifespan(self))
        self._setup_routes()

    # Views

    def _configuration_view(self, configuration: Configuration) -> ConfigurationView:
        plaintext = self.codec.decode_stored(configuration.api_key) or ""
        return ConfigurationView(
            id=configuration.id,
            title=configuration.title,
            api_key="*" * len(plaintext),
            vector_store_id=configuration.vector_store_id,
        )

    @staticmethod
    def _assistant_view(assistant: Assistant) -> AssistantView:
        return AssistantView.model_validate(assistant.model_dump(mode="json"))

    @staticmethod
    def _file_view(file_record: FileRecord) -> FileView:
        return FileView.model_validate(file_record.model_dump(mode="json"))

    # Chat helpers

    def _session(self, request: Request) -> tuple[str, dict[str, Any]]:
        return self.sessions.get_or_create(request.cookies.get(SESSION_COOKIE))

    @staticmethod
    def _respond(content: Any, session_id: str, status_code: int = 200) -> JSONResponse:
        response = JSONResponse(content=content, status_code=status_code)
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        return response

    def _error(self, message_key: str, language: str, session_id: str, status_code: int) -> JSONResponse:
        """Localized chat error. Never carries internal details."""
        content = ErrorResponse(error=get_message(message_key, language)).model_dump()
        return self._respond(content, session_id, status_code)

    def _setup_routes(self) -> None:
        self._setup_chat_routes()
        self._setup_admin_routes()

    def _setup_chat_routes(self) -> None:
        """Chat widget endpoints. Errors are localized and never carry internal details."""

        @self.app.get("/")
        async def root() -> dict[str, str]:
            return {"message": "Assistant Bridge is running"}

        @self.app.get("/token")
        async def token(request: Request) -> JSONResponse:
            """Issue a fresh CSRF token, at most once per ``token_rate_limit`` seconds per session."""
            language = detect_language(None, request.headers.get(HEADER_ACCEPT_LANGUAGE))
            session_id, session = self._session(request)
            if rate_limited(session, LAST_TOKEN_REQUEST_KEY, self.service_config.token_rate_limit, time.monotonic()):
                return self._error("token_requests_too_frequent", language, session_id, 429)
            return self._respond(TokenResponse(token=issue_csrf_token(session)).model_dump(), session_id)

        @self.app.post("/send")
        async def send(request: Request) -> JSONResponse:
            """Send a chat message to the active assistant and return its reply."""
            with CorrelationContext(request.headers.get(HEADER_CORRELATION_ID)) as correlation_id:
                session_id, session = self._session(request)
                try:
                    payload = SendRequest.model_validate(await request.json())
                except (ValueError, ValidationError):
                    language = detect_language(None, request.headers.get(HEADER_ACCEPT_LANGUAGE))
                    return self._error("invalid_request", language, session_id, 400)

                language = detect_language(payload.locale, request.headers.get(HEADER_ACCEPT_LANGUAGE))
                submitted_token = payload.token or request.headers.get(HEADER_CSRF_TOKEN)
                if not submitted_token:
                    return self._error("csrf_token_missing", language, session_id, 400)
                if not is_valid_csrf_token(session, submitted_token):
                    return self._error("invalid_csrf_token", language, session_id, 403)

                message = payload.message.strip()
                if not message:
                    return self._error("empty_message", language, session_id, 400)
                if rate_limited(session, LAST_REQUEST_KEY, self.service_config.send_rate_limit, time.monotonic()):
                    return self._error("please_wait", language, session_id, 429)

                try:
                    reply = await self.orchestrator.send_message(
                        session, message, should_cancel=request.is_disconnected
                    )
                except RunCancelled:
                    logger.info("Chat request abandoned by client", correlation_id=correlation_id)
                    return self._error("service_unavailable", language, session_id, 500)
                except Exception as err:  # noqa: BLE001
                    logger.error(
                        "Error processing chat message",
                        correlation_id=correlation_id,
                        error_type=type(err).__name__,
                        error=str(err),
                        message_length=len(message),
                        exc_info=True,
                    )
                    return self._error("service_unavailable", language, session_id, 500)

                response = SendResponse(reply=reply, timestamp=datetime.now().strftime(REPLY_TIMESTAMP_FORMAT))
                return self._respond(response.model_dump(), session_id)

        @self.app.get("/history")
        async def history(request: Request) -> JSONResponse:
            """Messages of the session's thread. Empty on any problem."""
            session_id, session = self._session(request)
            entries = await self.orchestrator.get_thread_history(session)
            return self._respond(HistoryResponse(history=entries).model_dump(), session_id)

        @self.app.post("/thread/reset")
        async def reset_thread(request: Request) -> JSONResponse:
            session_id, session = self._session(request)
            self.orchestrator.clear_thread(session)
            return self._respond({"message": "Thread cleared"}, session_id)

    def _setup_admin_routes(self) -> None:
        """Back office endpoints for configuration, assistant and file records."""

        @self.app.post("/admin/api-key/validate")
        async def validate_api_key(body: ApiKeyValidationRequest) -> ApiKeyValidationResponse:
            key = body.key.strip()
            if not self.validator.is_valid_format(key):
                return ApiKeyValidationResponse(valid=False, message="Invalid API key format")
            try:
                await self.validator.validate_live(key)
            except InvalidKey as err:
                return ApiKeyValidationResponse(valid=False, message=err.message)
            return ApiKeyValidationResponse(valid=True, message="")

        @self.app.get("/admin/configurations")
        async def list_configurations() -> list[ConfigurationView]:
            return [self._configuration_view(c) for c in await self.configurations.list_all()]

        @self.app.post("/admin/configurations", status_code=201)
        async def create_configuration(body: ConfigurationCreate) -> ConfigurationView:
            with CorrelationContext() as correlation_id:
                try:
                    configuration = await self.configurations.create(body.title, body.api_key)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "create configuration", correlation_id) from err
                return self._configuration_view(configuration)

        @self.app.get("/admin/configurations/{config_id}")
        async def get_configuration(config_id: int) -> ConfigurationView:
            with CorrelationContext() as correlation_id:
                try:
                    configuration = await self.configurations.get(config_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "read configuration", correlation_id) from err
                return self._configuration_view(configuration)

        @self.app.patch("/admin/configurations/{config_id}")
        async def update_configuration(config_id: int, body: ConfigurationUpdate) -> ConfigurationView:
            with CorrelationContext() as correlation_id:
                try:
                    configuration = await self.configurations.update(config_id, title=body.title, api_key=body.api_key)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "update configuration", correlation_id) from err
                return self._configuration_view(configuration)

        @self.app.delete("/admin/configurations/{config_id}")
        async def delete_configuration(config_id: int) -> CascadeOutcome:
            with CorrelationContext() as correlation_id:
                try:
                    return await self.configurations.delete(config_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "delete configuration", correlation_id) from err

        @self.app.get("/admin/configurations/{config_id}/models")
        async def list_models(config_id: int) -> ModelListResponse:
            with CorrelationContext() as correlation_id:
                try:
                    model_ids = await self.configurations.list_models(config_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "list models", correlation_id) from err
                return ModelListResponse(models=[MANUAL_MODEL, *model_ids])

        @self.app.post("/admin/configurations/{config_id}/assistants", status_code=201)
        async def create_assistant(config_id: int, body: AssistantInput) -> AssistantView:
            with CorrelationContext() as correlation_id:
                try:
                    assistant = await self.assistants.create(config_id, body)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "create assistant", correlation_id) from err
                return self._assistant_view(assistant)

        @self.app.get("/admin/assistants/{assistant_id}")
        async def get_assistant(assistant_id: int) -> AssistantView:
            with CorrelationContext() as correlation_id:
                try:
                    assistant = await self.assistants.get(assistant_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "read assistant", correlation_id) from err
                return self._assistant_view(assistant)

        @self.app.put("/admin/assistants/{assistant_id}")
        async def update_assistant(assistant_id: int, body: AssistantInput) -> AssistantView:
            with CorrelationContext() as correlation_id:
                try:
                    assistant = await self.assistants.update(assistant_id, body)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "update assistant", correlation_id) from err
                return self._assistant_view(assistant)

        @self.app.delete("/admin/assistants/{assistant_id}", status_code=204)
        async def delete_assistant(assistant_id: int) -> None:
            with CorrelationContext() as correlation_id:
                try:
                    await self.assistants.delete(assistant_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "delete assistant", correlation_id) from err

        @self.app.get("/admin/configurations/{config_id}/files")
        async def list_files(config_id: int) -> list[FileView]:
            return [self._file_view(f) for f in await self.files.list_for(config_id)]

        @self.app.post("/admin/configurations/{config_id}/files")
        async def upload_files(config_id: int, body: FileUploadRequest) -> UploadReport:
            with CorrelationContext() as correlation_id:
                try:
                    return await self.files.upload(
                        config_id, body.file_refs, record_id=body.record_id, idempotency_key=body.idempotency_key
                    )
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "upload files", correlation_id) from err

        @self.app.delete("/admin/files/{file_id}", status_code=204)
        async def delete_file(file_id: int) -> None:
            with CorrelationContext() as correlation_id:
                try:
                    await self.files.delete(file_id)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.from_exception(err, "delete file", correlation_id) from err


def get_app() -> FastAPI:
    """Return a fully configured FastAPI application."""
    configure_structlog()
    api_instance = AssistantBridgeAPI()
    return api_instance.app


def run() -> None:
    """Console entry point."""
    uvicorn.run(get_app(), host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))


# Public API exports
__all__ = ["get_app", "run", "AssistantBridgeAPI"]
