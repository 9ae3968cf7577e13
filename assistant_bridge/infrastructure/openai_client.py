"""OpenAI client factory."""

from typing import Any, Optional

from openai import AsyncOpenAI

from ..structured_logging import get_logger

logger = get_logger("OPENAI_CLIENT")


class OpenAIClientFactory:
    """Creates AsyncOpenAI clients bound to a configuration's API key.

    The key differs per configuration and may be rotated at any time, so clients
    are created per operation rather than once at startup.
    """

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = base_url

    def create_client(
        self, api_key: str, timeout: Optional[float] = None, max_retries: Optional[int] = None
    ) -> AsyncOpenAI:
        """Create a new AsyncOpenAI client instance.

        Args:
            api_key: Decrypted API key of the active configuration
            timeout: Optional request timeout in seconds, SDK default otherwise
            max_retries: Optional retry count, SDK default otherwise

        Returns:
            Configured AsyncOpenAI client
        """
        options: dict[str, Any] = {}
        if timeout is not None:
            options["timeout"] = timeout
        if max_retries is not None:
            options["max_retries"] = max_retries
        client = AsyncOpenAI(api_key=api_key, base_url=self.base_url, **options)
        logger.debug("OpenAI client created", base_url=self.base_url, **options)
        return client
