"""API key format and liveness checks."""

from typing import Optional, Sequence

from openai import OpenAIError

from ..entities.config import DEFAULT_API_KEY_PREFIXES
from ..entities.errors import InvalidKey
from ..infrastructure import OpenAIClientFactory
from ..structured_logging import get_logger, mask_secret

logger = get_logger("API_KEY_VALIDATOR")


class ApiKeyValidator:
    """Checks keys against the accepted prefixes and against the provider's model list."""

    def __init__(
        self,
        client_factory: OpenAIClientFactory,
        prefixes: Optional[Sequence[str]] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client_factory = client_factory
        self.prefixes = tuple(prefixes if prefixes is not None else DEFAULT_API_KEY_PREFIXES)
        self.timeout = timeout

    def is_valid_format(self, key: Optional[str]) -> bool:
        if not key:
            return False
        return key.startswith(self.prefixes)

    async def validate_live(self, key: str) -> None:
        """List models with the key. Raises InvalidKey on any non-success or transport error."""
        client = self.client_factory.create_client(key, timeout=self.timeout, max_retries=0)
        try:
            await client.models.list()
        except OpenAIError as err:
            logger.error(
                "OpenAI API key validation failed",
                error_type=type(err).__name__,
                error=str(err),
                key=mask_secret(key),
            )
            raise InvalidKey(str(err)) from err
        finally:
            await client.close()
        logger.info("OpenAI API key validation successful", key=mask_secret(key))

    async def list_models(self, key: str) -> list[str]:
        """Sorted model ids available to the key. Empty on failure."""
        client = self.client_factory.create_client(key, timeout=30.0)
        try:
            page = await client.models.list()
            model_ids = sorted({model.id for model in page.data if getattr(model, "id", None)})
        except OpenAIError as err:
            logger.error("Failed to fetch OpenAI models", error_type=type(err).__name__, error=str(err))
            return []
        finally:
            await client.close()
        logger.debug("Fetched OpenAI models", model_count=len(model_ids))
        return model_ids
