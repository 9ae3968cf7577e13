"""Resolution of a configuration's usable API key."""

from ..entities import Configuration
from ..entities.errors import NoApiKey
from ..repositories import BaseSecretRepository
from ..structured_logging import get_logger
from .api_key_validator import ApiKeyValidator
from .secret_codec import SecretCodec

logger = get_logger("CREDENTIALS")


def secret_suffix(config_id: int) -> str:
    return f"openai-api-key-{config_id}"


class CredentialResolver:
    """Turns a stored configuration key into a plaintext key of valid format.

    A per-configuration secret (``OPENAI_API_KEY_<id>`` locally) takes precedence
    over the stored value.
    """

    def __init__(
        self, codec: SecretCodec, validator: ApiKeyValidator, secret_repository: BaseSecretRepository
    ) -> None:
        self.codec = codec
        self.validator = validator
        self.secret_repository = secret_repository

    async def resolve(self, configuration: Configuration) -> str:
        override = await self.secret_repository.access_secret(secret_suffix(configuration.id))
        if override:
            source = "secret"
            api_key = override
        else:
            source = "stored"
            api_key = self.codec.decode_stored(configuration.api_key)

        if not api_key or not self.validator.is_valid_format(api_key):
            logger.error(
                "Invalid API key format detected",
                config_id=configuration.id,
                source=source,
                stored_length=len(configuration.api_key or ""),
            )
            raise NoApiKey()
        return api_key
