import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from assistant_bridge.entities import Assistant, AssistantStatus, Configuration, CustomModel, FileRecord, KnownModel
from assistant_bridge.entities.errors import (
    InvalidKey,
    NoKnowledgeStore,
    NoModel,
    RecordNotFound,
    SingletonViolation,
    ValidationFailed,
)
from assistant_bridge.entities.schemas import AssistantInput
from assistant_bridge.repositories import LocalRecordRepository
from assistant_bridge.services import (
    ApiKeyValidator,
    AssistantProvisioner,
    AssistantService,
    CascadeDeleter,
    ConfigurationService,
    CredentialResolver,
    FileIngestionPipeline,
    FileResolver,
    FileService,
    IdempotencyCache,
    KnowledgeStoreProvisioner,
    SecretCodec,
)

API_KEY = "sk-proj-" + "x" * 48
ROTATED_KEY = "sk-proj-" + "y" * 48


@pytest.fixture
def configurations(
    records: LocalRecordRepository,
    codec: SecretCodec,
    validator: ApiKeyValidator,
    credentials: CredentialResolver,
    client_factory: Mock,
) -> ConfigurationService:
    cascade = CascadeDeleter(records, credentials, client_factory)
    return ConfigurationService(records, codec, validator, credentials, cascade)


@pytest.fixture
def assistants(
    records: LocalRecordRepository, credentials: CredentialResolver, client_factory: Mock
) -> AssistantService:
    provisioner = AssistantProvisioner(records, credentials, client_factory)
    return AssistantService(records, provisioner, credentials, client_factory)


@pytest.fixture
def files(
    records: LocalRecordRepository, credentials: CredentialResolver, client_factory: Mock, tmp_path: Path
) -> FileService:
    (tmp_path / "guide.pdf").write_bytes(b"hello world")
    pipeline = FileIngestionPipeline(
        records,
        credentials,
        KnowledgeStoreProvisioner(records, credentials, client_factory),
        client_factory,
        FileResolver(str(tmp_path)),
    )
    return FileService(records, pipeline, credentials, client_factory, IdempotencyCache())


@pytest_asyncio.fixture
async def indexed_configuration(records: LocalRecordRepository, configuration: Configuration) -> Configuration:
    return await records.update_configuration(configuration.model_copy(update={"vector_store_id": "vs_abc"}))


def _form(**changes: Any) -> AssistantInput:
    fields: dict[str, Any] = {
        "name": "Helpdesk",
        "system_instructions": "Be brief.\r\nCite the handbook.  ",
        "model": "gpt-4o",
        "temperature": 0.3,
    }
    fields.update(changes)
    return AssistantInput(**fields)


class TestConfigurationService:
    @pytest.mark.asyncio
    async def test_create_encrypts_validated_key(
        self, configurations: ConfigurationService, codec: SecretCodec, openai_client: Any
    ) -> None:
        configuration = await configurations.create("  Support  ", f" {API_KEY} ")

        assert configuration.title == "Support"
        assert configuration.api_key != API_KEY
        assert codec.decode_stored(configuration.api_key) == API_KEY
        openai_client.models.list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_only_one_configuration(
        self, configurations: ConfigurationService, configuration: Configuration
    ) -> None:
        with pytest.raises(SingletonViolation) as exc_info:
            await configurations.create("Second", API_KEY)

        assert exc_info.value.kind == "configuration"
        assert exc_info.value.existing_id == configuration.id

    @pytest.mark.asyncio
    async def test_bad_format_is_rejected_without_live_check(
        self, configurations: ConfigurationService, openai_client: Any
    ) -> None:
        with pytest.raises(InvalidKey, match="Invalid API key format"):
            await configurations.create("Support", "pk-not-a-key")
        openai_client.models.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_live_check_failure_stores_nothing(
        self,
        configurations: ConfigurationService,
        records: LocalRecordRepository,
        openai_client: Any,
        connection_error: Any,
    ) -> None:
        openai_client.models.list = AsyncMock(side_effect=connection_error())

        with pytest.raises(InvalidKey):
            await configurations.create("Support", API_KEY)
        assert await records.list_configurations() == []

    @pytest.mark.asyncio
    async def test_update_title_and_rotate_key(
        self, configurations: ConfigurationService, configuration: Configuration, codec: SecretCodec
    ) -> None:
        updated = await configurations.update(configuration.id, title="Sales", api_key=ROTATED_KEY)

        assert updated.title == "Sales"
        assert codec.decode_stored(updated.api_key) == ROTATED_KEY

    @pytest.mark.asyncio
    async def test_update_without_key_keeps_key(
        self, configurations: ConfigurationService, configuration: Configuration
    ) -> None:
        updated = await configurations.update(configuration.id, title="Sales", api_key="")
        assert updated.api_key == configuration.api_key

    @pytest.mark.asyncio
    async def test_update_rejects_empty_title(
        self, configurations: ConfigurationService, configuration: Configuration
    ) -> None:
        with pytest.raises(ValidationFailed):
            await configurations.update(configuration.id, title="   ")

    @pytest.mark.asyncio
    async def test_delete_cascades_and_removes_records(
        self,
        configurations: ConfigurationService,
        records: LocalRecordRepository,
        indexed_configuration: Configuration,
        openai_client: Any,
        connection_error: Any,
    ) -> None:
        await records.create_assistant(
            Assistant(
                config_id=indexed_configuration.id,
                name="Helpdesk",
                model=KnownModel(id="gpt-4o"),
                openai_assistant_id="asst_1",
            )
        )
        openai_client.vector_stores.delete = AsyncMock(side_effect=connection_error())

        outcome = await configurations.delete(indexed_configuration.id)

        assert (outcome.attempted, outcome.succeeded, outcome.failed) == (2, 1, 1)
        assert await records.get_configuration(indexed_configuration.id) is None
        assert await records.list_assistants(indexed_configuration.id) == []

    @pytest.mark.asyncio
    async def test_delete_proceeds_when_secret_backend_fails(
        self,
        configurations: ConfigurationService,
        records: LocalRecordRepository,
        indexed_configuration: Configuration,
        secret_repo: Any,
        openai_client: Any,
    ) -> None:
        secret_repo.access_secret = AsyncMock(side_effect=RuntimeError("secret manager unavailable"))

        outcome = await configurations.delete(indexed_configuration.id)

        assert outcome.attempted == 0
        assert await records.get_configuration(indexed_configuration.id) is None
        openai_client.vector_stores.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_unknown(self, configurations: ConfigurationService) -> None:
        with pytest.raises(RecordNotFound):
            await configurations.delete(5)

    @pytest.mark.asyncio
    async def test_list_models(self, configurations: ConfigurationService, configuration: Configuration) -> None:
        assert await configurations.list_models(configuration.id) == ["gpt-4o", "gpt-4o-mini"]


class TestAssistantService:
    @pytest.mark.asyncio
    async def test_create_provisions_assistant(
        self, assistants: AssistantService, indexed_configuration: Configuration
    ) -> None:
        assistant = await assistants.create(indexed_configuration.id, _form())

        assert assistant.status == AssistantStatus.ACTIVE
        assert assistant.openai_assistant_id == "asst_1"
        assert assistant.system_instructions == "Be brief.\nCite the handbook."
        assert assistant.model == KnownModel(id="gpt-4o")

    @pytest.mark.asyncio
    async def test_only_one_assistant_per_configuration(
        self, assistants: AssistantService, indexed_configuration: Configuration
    ) -> None:
        first = await assistants.create(indexed_configuration.id, _form())

        with pytest.raises(SingletonViolation) as exc_info:
            await assistants.create(indexed_configuration.id, _form(name="Second"))
        assert exc_info.value.existing_id == first.id

    @pytest.mark.asyncio
    async def test_manual_model_requires_name(
        self, assistants: AssistantService, records: LocalRecordRepository, indexed_configuration: Configuration
    ) -> None:
        with pytest.raises(NoModel, match="custom model name"):
            await assistants.create(indexed_configuration.id, _form(model="manual", model_manual=" "))
        assert await records.list_assistants(indexed_configuration.id) == []

    @pytest.mark.asyncio
    async def test_manual_model_is_custom(
        self, assistants: AssistantService, indexed_configuration: Configuration, openai_client: Any
    ) -> None:
        assistant = await assistants.create(
            indexed_configuration.id, _form(model="manual", model_manual="ft:gpt-4o:acme")
        )

        assert assistant.model == CustomModel(name="ft:gpt-4o:acme")
        assert openai_client.beta.assistants.create.call_args.kwargs["model"] == "ft:gpt-4o:acme"

    @pytest.mark.asyncio
    async def test_create_without_knowledge_store_keeps_failed_record(
        self, assistants: AssistantService, records: LocalRecordRepository, configuration: Configuration
    ) -> None:
        with pytest.raises(NoKnowledgeStore):
            await assistants.create(configuration.id, _form())

        (stored,) = await records.list_assistants(configuration.id)
        assert stored.status == AssistantStatus.FAILED

    @pytest.mark.asyncio
    async def test_update_pushes_changes_to_existing_remote(
        self, assistants: AssistantService, indexed_configuration: Configuration, openai_client: Any
    ) -> None:
        assistant = await assistants.create(indexed_configuration.id, _form())

        updated = await assistants.update(assistant.id, _form(name="Helpdesk v2", temperature=1.5))

        args, kwargs = openai_client.beta.assistants.update.call_args
        assert args == ("asst_1",)
        assert (kwargs["name"], kwargs["temperature"]) == ("Helpdesk v2", 1.5)
        assert updated.name == "Helpdesk v2"
        assert updated.status == AssistantStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing_remote(
        self,
        assistants: AssistantService,
        records: LocalRecordRepository,
        indexed_configuration: Configuration,
        openai_client: Any,
        not_found_error: Any,
    ) -> None:
        assistant = await assistants.create(indexed_configuration.id, _form())
        openai_client.beta.assistants.delete = AsyncMock(side_effect=not_found_error())

        await assistants.delete(assistant.id)

        openai_client.beta.assistants.delete.assert_awaited_once_with("asst_1")
        assert await records.get_assistant(assistant.id) is None


class TestFileService:
    @pytest.mark.asyncio
    async def test_upload_creates_initiating_record(
        self, files: FileService, records: LocalRecordRepository, configuration: Configuration
    ) -> None:
        report = await files.upload(configuration.id, ["guide.pdf"])

        (stored,) = await files.list_for(configuration.id)
        assert report.record_id == stored.id
        assert stored.openai_file_id == "file_1"

    @pytest.mark.asyncio
    async def test_repeated_idempotency_key_creates_no_second_record(
        self, files: FileService, configuration: Configuration, openai_client: Any
    ) -> None:
        first = await files.upload(configuration.id, ["guide.pdf"], idempotency_key="upload-1")
        second = await files.upload(configuration.id, ["guide.pdf"], idempotency_key="upload-1")

        assert second == first
        assert len(await files.list_for(configuration.id)) == 1
        assert openai_client.files.create.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_repeat_of_idempotency_key_creates_no_second_record(
        self, files: FileService, configuration: Configuration, openai_client: Any
    ) -> None:
        first, second = await asyncio.gather(
            files.upload(configuration.id, ["guide.pdf"], idempotency_key="upload-1"),
            files.upload(configuration.id, ["guide.pdf"], idempotency_key="upload-1"),
        )

        assert second == first
        assert len(await files.list_for(configuration.id)) == 1
        assert openai_client.files.create.await_count == 1

    @pytest.mark.asyncio
    async def test_record_of_other_configuration(
        self, files: FileService, records: LocalRecordRepository, configuration: Configuration
    ) -> None:
        foreign = await records.create_file(FileRecord(config_id=configuration.id + 100))

        with pytest.raises(RecordNotFound):
            await files.upload(configuration.id, ["guide.pdf"], record_id=foreign.id)

    @pytest.mark.asyncio
    async def test_delete_removes_remote_file_then_record(
        self,
        files: FileService,
        records: LocalRecordRepository,
        configuration: Configuration,
        openai_client: Any,
        connection_error: Any,
    ) -> None:
        stored = await records.create_file(
            FileRecord(config_id=configuration.id, filename="guide.pdf", openai_file_id="file_9")
        )
        openai_client.files.delete = AsyncMock(side_effect=connection_error())

        await files.delete(stored.id)

        openai_client.files.delete.assert_awaited_once_with("file_9")
        assert await records.get_file(stored.id) is None
