"""Get-or-create of the vector store bound to a configuration."""

import asyncio
from typing import Any, Optional

from openai import OpenAIError

from ..entities.errors import KnowledgeStoreCreationFailed, NoConfiguration
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .credentials import CredentialResolver

logger = get_logger("KNOWLEDGE_STORE")


class KnowledgeStoreProvisioner:
    """Creates a configuration's vector store once and reuses it afterwards.

    Creation is serialized so two concurrent uploads cannot create two stores.
    """

    def __init__(
        self,
        records: BaseRecordRepository,
        credentials: CredentialResolver,
        client_factory: OpenAIClientFactory,
    ) -> None:
        self.records = records
        self.credentials = credentials
        self.client_factory = client_factory
        self._lock = asyncio.Lock()

    async def ensure(self, config_id: int, client: Optional[Any] = None) -> str:
        """Return the configuration's vector store id, creating the store if needed.

        Args:
            config_id: Configuration record id
            client: Optional OpenAI client to reuse; one is created from the configuration's key otherwise

        Raises:
            NoConfiguration: the configuration does not exist
            KnowledgeStoreCreationFailed: the provider rejected the creation; nothing is persisted
        """
        configuration = await self.records.get_configuration(config_id)
        if configuration is None:
            raise NoConfiguration()
        if configuration.vector_store_id:
            return configuration.vector_store_id

        async with self._lock:
            configuration = await self.records.get_configuration(config_id)
            if configuration is None:
                raise NoConfiguration()
            if configuration.vector_store_id:
                return configuration.vector_store_id

            owns_client = client is None
            if client is None:
                client = self.client_factory.create_client(await self.credentials.resolve(configuration))
            try:
                store = await client.vector_stores.create(name=configuration.title)
            except OpenAIError as err:
                logger.error(
                    "Failed to create vector store",
                    config_id=config_id,
                    error_type=type(err).__name__,
                    error=str(err),
                )
                raise KnowledgeStoreCreationFailed(f"Failed to create vector store: {err}") from err
            finally:
                if owns_client:
                    await client.close()

            await self.records.update_configuration(configuration.model_copy(update={"vector_store_id": store.id}))
            logger.info("Vector store created", config_id=config_id, vector_store_id=store.id)
            return store.id
