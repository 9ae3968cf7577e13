"""Shared test fixtures for the entire test suite."""

import types
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest
import pytest_asyncio

from assistant_bridge.entities import Configuration, ServiceConfig
from assistant_bridge.infrastructure import OpenAIClientFactory
from assistant_bridge.repositories import BaseSecretRepository, LocalRecordRepository
from assistant_bridge.services import ApiKeyValidator, CredentialResolver, SecretCodec

# Long enough that its encrypted form exceeds the legacy length threshold
API_KEY = "sk-proj-" + "x" * 48


class DummySecretRepository(BaseSecretRepository):
    """Secret repository backed by a dict."""

    def __init__(self, secrets: Optional[dict[str, str]] = None):
        self.secrets = secrets or {}

    async def access_secret(self, secret_suffix: str) -> Optional[str]:
        return self.secrets.get(secret_suffix)


def make_openai_client() -> Any:
    """AsyncOpenAI stand-in exposing every endpoint the services call."""
    return types.SimpleNamespace(
        beta=types.SimpleNamespace(
            assistants=types.SimpleNamespace(
                create=AsyncMock(return_value=types.SimpleNamespace(id="asst_1")),
                update=AsyncMock(return_value=types.SimpleNamespace(id="asst_1")),
                delete=AsyncMock(),
            ),
            threads=types.SimpleNamespace(
                create=AsyncMock(return_value=types.SimpleNamespace(id="thread_1")),
                messages=types.SimpleNamespace(
                    create=AsyncMock(),
                    list=AsyncMock(return_value=types.SimpleNamespace(data=[])),
                ),
                runs=types.SimpleNamespace(
                    create=AsyncMock(return_value=types.SimpleNamespace(id="run_1", status="queued")),
                    retrieve=AsyncMock(return_value=types.SimpleNamespace(id="run_1", status="completed")),
                    cancel=AsyncMock(),
                ),
            ),
        ),
        vector_stores=types.SimpleNamespace(
            create=AsyncMock(return_value=types.SimpleNamespace(id="vs_abc")),
            delete=AsyncMock(),
            files=types.SimpleNamespace(create=AsyncMock()),
        ),
        files=types.SimpleNamespace(
            create=AsyncMock(return_value=types.SimpleNamespace(id="file_1", bytes=11, status="processed")),
            delete=AsyncMock(),
        ),
        models=types.SimpleNamespace(
            list=AsyncMock(
                return_value=types.SimpleNamespace(
                    data=[types.SimpleNamespace(id="gpt-4o"), types.SimpleNamespace(id="gpt-4o-mini")]
                )
            )
        ),
        close=AsyncMock(),
    )


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://api.openai.test/v1")


@pytest.fixture
def not_found_error() -> Callable[[], openai.NotFoundError]:
    """Build an OpenAI 404 error."""

    def build() -> openai.NotFoundError:
        return openai.NotFoundError("Not found", response=httpx.Response(404, request=_request()), body=None)

    return build


@pytest.fixture
def connection_error() -> Callable[[], openai.APIConnectionError]:
    """Build an OpenAI transport error."""

    def build() -> openai.APIConnectionError:
        return openai.APIConnectionError(request=_request())

    return build


@pytest.fixture
def bad_request_error() -> Callable[[str], openai.BadRequestError]:
    """Build an OpenAI 400 error with the given message."""

    def build(message: str = "Bad request") -> openai.BadRequestError:
        return openai.BadRequestError(message, response=httpx.Response(400, request=_request()), body=None)

    return build


@pytest.fixture
def openai_client() -> Any:
    """Provide a dummy OpenAI client."""
    return make_openai_client()


@pytest.fixture
def client_factory(openai_client: Any) -> Mock:
    """Client factory handing out the dummy client."""
    factory = Mock(spec=OpenAIClientFactory)
    factory.create_client.return_value = openai_client
    return factory


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec("assistant.example.test", "/var/www/html")


@pytest.fixture
def secret_repo() -> DummySecretRepository:
    """Provide a dummy secret repository."""
    return DummySecretRepository()


@pytest.fixture
def validator(client_factory: Mock) -> ApiKeyValidator:
    return ApiKeyValidator(client_factory)


@pytest.fixture
def credentials(
    codec: SecretCodec, validator: ApiKeyValidator, secret_repo: DummySecretRepository
) -> CredentialResolver:
    return CredentialResolver(codec, validator, secret_repo)


@pytest.fixture
def records() -> LocalRecordRepository:
    """In-memory record store."""
    return LocalRecordRepository()


@pytest_asyncio.fixture
async def configuration(records: LocalRecordRepository, codec: SecretCodec) -> Configuration:
    """A stored configuration with an encrypted key and no vector store yet."""
    return await records.create_configuration(Configuration(title="Support", api_key=codec.encrypt(API_KEY)))


@pytest.fixture
def service_config(tmp_path: Any) -> ServiceConfig:
    """Provide a test service configuration."""
    return ServiceConfig(
        environment="development",
        server_name="assistant.example.test",
        document_root="/var/www/html",
        upload_root=str(tmp_path),
        run_poll_interval=0,
        send_rate_limit=0,
        token_rate_limit=0,
    )
