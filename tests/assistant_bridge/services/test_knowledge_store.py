import asyncio
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from assistant_bridge.entities import Configuration
from assistant_bridge.entities.errors import KnowledgeStoreCreationFailed, NoConfiguration
from assistant_bridge.repositories import LocalRecordRepository
from assistant_bridge.services import CredentialResolver, KnowledgeStoreProvisioner


@pytest.fixture
def provisioner(
    records: LocalRecordRepository, credentials: CredentialResolver, client_factory: Mock
) -> KnowledgeStoreProvisioner:
    return KnowledgeStoreProvisioner(records, credentials, client_factory)


class TestEnsure:
    @pytest.mark.asyncio
    async def test_creates_store_named_after_configuration(
        self,
        provisioner: KnowledgeStoreProvisioner,
        records: LocalRecordRepository,
        configuration: Configuration,
        openai_client: Any,
    ) -> None:
        assert await provisioner.ensure(configuration.id) == "vs_abc"

        openai_client.vector_stores.create.assert_awaited_once_with(name="Support")
        stored = await records.get_configuration(configuration.id)
        assert stored.vector_store_id == "vs_abc"
        openai_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_call_reuses_store(
        self, provisioner: KnowledgeStoreProvisioner, configuration: Configuration, openai_client: Any, client_factory
    ) -> None:
        await provisioner.ensure(configuration.id)
        openai_client.vector_stores.create.reset_mock()
        client_factory.create_client.reset_mock()

        assert await provisioner.ensure(configuration.id) == "vs_abc"
        openai_client.vector_stores.create.assert_not_awaited()
        client_factory.create_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_calls_create_one_store(
        self, provisioner: KnowledgeStoreProvisioner, configuration: Configuration, openai_client: Any
    ) -> None:
        results = await asyncio.gather(*(provisioner.ensure(configuration.id) for _ in range(5)))

        assert results == ["vs_abc"] * 5
        assert openai_client.vector_stores.create.await_count == 1

    @pytest.mark.asyncio
    async def test_borrowed_client_is_not_closed(
        self, provisioner: KnowledgeStoreProvisioner, configuration: Configuration, openai_client: Any, client_factory
    ) -> None:
        await provisioner.ensure(configuration.id, client=openai_client)

        client_factory.create_client.assert_not_called()
        openai_client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_persists_nothing(
        self,
        provisioner: KnowledgeStoreProvisioner,
        records: LocalRecordRepository,
        configuration: Configuration,
        openai_client: Any,
        connection_error: Any,
    ) -> None:
        openai_client.vector_stores.create = AsyncMock(side_effect=connection_error())

        with pytest.raises(KnowledgeStoreCreationFailed):
            await provisioner.ensure(configuration.id)
        assert (await records.get_configuration(configuration.id)).vector_store_id is None

    @pytest.mark.asyncio
    async def test_unknown_configuration(self, provisioner: KnowledgeStoreProvisioner) -> None:
        with pytest.raises(NoConfiguration):
            await provisioner.ensure(404)
