"""Admin workflows: configuration, assistant and file records together with their remote side."""

import asyncio
from functools import partial
from typing import Optional, Sequence

from ..entities import (
    Assistant,
    CascadeOutcome,
    Configuration,
    FileRecord,
    UploadReport,
    model_from_form,
    normalize_instructions,
)
from ..entities.errors import InvalidKey, NoApiKey, RecordNotFound, SingletonViolation, ValidationFailed
from ..entities.schemas import AssistantInput
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .api_key_validator import ApiKeyValidator
from .assistant_provisioner import AssistantProvisioner
from .cascade import CascadeDeleter
from .credentials import CredentialResolver
from .file_ingestion import FileIngestionPipeline
from .idempotency import IdempotencyCache, derive_key
from .openai_helpers import delete_remote
from .secret_codec import SecretCodec

logger = get_logger("ADMIN")


class ConfigurationService:
    """The single configuration: key validation, encryption at rest and cascading delete."""

    def __init__(
        self,
        records: BaseRecordRepository,
        codec: SecretCodec,
        validator: ApiKeyValidator,
        credentials: CredentialResolver,
        cascade: CascadeDeleter,
    ) -> None:
        self.records = records
        self.codec = codec
        self.validator = validator
        self.credentials = credentials
        self.cascade = cascade
        self._lock = asyncio.Lock()

    async def get(self, config_id: int) -> Configuration:
        configuration = await self.records.get_configuration(config_id)
        if configuration is None:
            raise RecordNotFound("Configuration", config_id)
        return configuration

    async def list_all(self) -> list[Configuration]:
        return await self.records.list_configurations()

    async def _checked_key(self, api_key: str) -> str:
        api_key = api_key.strip()
        if not self.validator.is_valid_format(api_key):
            raise InvalidKey("Invalid API key format")
        await self.validator.validate_live(api_key)
        return api_key

    async def create(self, title: str, api_key: str) -> Configuration:
        """Create the configuration. Raises SingletonViolation when one already exists."""
        async with self._lock:
            existing = await self.records.list_configurations()
            if existing:
                raise SingletonViolation("configuration", existing[0].id)
            api_key = await self._checked_key(api_key)
            configuration = await self.records.create_configuration(
                Configuration(title=title.strip(), api_key=self.codec.encrypt(api_key))
            )
        logger.info("Configuration created", config_id=configuration.id, key_length=len(api_key))
        return configuration

    async def update(self, config_id: int, title: Optional[str] = None, api_key: Optional[str] = None) -> Configuration:
        configuration = await self.get(config_id)
        changes: dict[str, str] = {}
        if title is not None:
            if not title.strip():
                raise ValidationFailed("Title must not be empty")
            changes["title"] = title.strip()
        if api_key:
            changes["api_key"] = self.codec.encrypt(await self._checked_key(api_key))
            logger.info("API key rotated", config_id=config_id)
        if not changes:
            return configuration
        return await self.records.update_configuration(configuration.model_copy(update=changes))

    async def delete(self, config_id: int) -> CascadeOutcome:
        """Tear down remote resources best-effort, then delete the records regardless of the outcome."""
        await self.get(config_id)
        outcome = await self.cascade.on_configuration_delete(config_id)
        if outcome.failed:
            logger.warning("Deleting configuration with remote orphans", config_id=config_id, errors=outcome.errors)
        await self.records.delete_configuration(config_id)
        logger.info("Configuration deleted", config_id=config_id)
        return outcome

    async def list_models(self, config_id: int) -> list[str]:
        configuration = await self.get(config_id)
        return await self.validator.list_models(await self.credentials.resolve(configuration))


class AssistantService:
    """The single assistant of a configuration."""

    def __init__(
        self,
        records: BaseRecordRepository,
        provisioner: AssistantProvisioner,
        credentials: CredentialResolver,
        client_factory: OpenAIClientFactory,
    ) -> None:
        self.records = records
        self.provisioner = provisioner
        self.credentials = credentials
        self.client_factory = client_factory
        self._lock = asyncio.Lock()

    async def get(self, assistant_id: int) -> Assistant:
        assistant = await self.records.get_assistant(assistant_id)
        if assistant is None:
            raise RecordNotFound("Assistant", assistant_id)
        return assistant

    async def create(self, config_id: int, form: AssistantInput) -> Assistant:
        """Store the assistant as pending and provision it. Raises SingletonViolation for a second one."""
        async with self._lock:
            if await self.records.get_configuration(config_id) is None:
                raise RecordNotFound("Configuration", config_id)
            existing = await self.records.list_assistants(config_id)
            if existing:
                raise SingletonViolation("assistant", existing[0].id)
            assistant = await self.records.create_assistant(
                Assistant(
                    config_id=config_id,
                    name=form.name,
                    description=form.description,
                    system_instructions=normalize_instructions(form.system_instructions),
                    model=model_from_form(form.model, form.model_manual),
                    temperature=form.temperature,
                    top_p=form.top_p,
                    max_tokens=form.max_tokens,
                )
            )
        return await self.provisioner.create_or_update(assistant.id)

    async def update(self, assistant_id: int, form: AssistantInput) -> Assistant:
        assistant = await self.get(assistant_id)
        changed = assistant.model_copy(
            update={
                "name": form.name,
                "description": form.description,
                "system_instructions": normalize_instructions(form.system_instructions),
                "model": model_from_form(form.model, form.model_manual),
                "temperature": form.temperature,
                "top_p": form.top_p,
                "max_tokens": form.max_tokens,
            }
        )
        await self.records.update_assistant(changed)
        return await self.provisioner.create_or_update(assistant_id)

    async def delete(self, assistant_id: int) -> None:
        """Delete the remote assistant best-effort, then the record."""
        assistant = await self.get(assistant_id)
        if assistant.openai_assistant_id:
            await _delete_remote_best_effort(
                self.records,
                self.credentials,
                self.client_factory,
                assistant.config_id,
                "assistant",
                assistant.openai_assistant_id,
            )
        await self.records.delete_assistant(assistant_id)
        logger.info("Assistant deleted", assistant_id=assistant_id)


class FileService:
    """File records of a configuration."""

    def __init__(
        self,
        records: BaseRecordRepository,
        pipeline: FileIngestionPipeline,
        credentials: CredentialResolver,
        client_factory: OpenAIClientFactory,
        cache: IdempotencyCache,
    ) -> None:
        self.records = records
        self.pipeline = pipeline
        self.credentials = credentials
        self.client_factory = client_factory
        self.cache = cache

    async def list_for(self, config_id: int) -> list[FileRecord]:
        return await self.records.list_files(config_id)

    async def upload(
        self,
        config_id: int,
        file_refs: Sequence[str],
        record_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> UploadReport:
        """Ingest files into the configuration.

        Without ``record_id`` a new initiating record is created. A caller's ``idempotency_key``
        is held for the whole request, so a concurrent repeat creates no second record. The
        pipeline also caches under a key derived from the initiating record and the references.
        """
        if not idempotency_key:
            return await self._upload(config_id, file_refs, record_id)
        async with self.cache.hold(idempotency_key):
            cached = await self.cache.get(idempotency_key)
            if cached is not None:
                return cached
            report = await self._upload(config_id, file_refs, record_id)
            await self.cache.set(idempotency_key, report)
            return report

    async def _upload(self, config_id: int, file_refs: Sequence[str], record_id: Optional[int]) -> UploadReport:
        if await self.records.get_configuration(config_id) is None:
            raise RecordNotFound("Configuration", config_id)

        if record_id is not None:
            initiating = await self.records.get_file(record_id)
            if initiating is None or initiating.config_id != config_id:
                raise RecordNotFound("File", record_id)
        else:
            initiating = await self.records.create_file(FileRecord(config_id=config_id))

        key = derive_key("files", initiating.id, file_refs)
        return await self.pipeline.ingest(config_id, file_refs, initiating.id, idempotency_key=key, cache=self.cache)

    async def delete(self, file_id: int) -> None:
        """Delete the remote file best-effort, then the record."""
        file_record = await self.records.get_file(file_id)
        if file_record is None:
            raise RecordNotFound("File", file_id)
        if file_record.openai_file_id:
            await _delete_remote_best_effort(
                self.records,
                self.credentials,
                self.client_factory,
                file_record.config_id,
                "file",
                file_record.openai_file_id,
            )
        await self.records.delete_file(file_id)
        logger.info("File deleted", file_id=file_id)


async def _delete_remote_best_effort(
    records: BaseRecordRepository,
    credentials: CredentialResolver,
    client_factory: OpenAIClientFactory,
    config_id: int,
    kind: str,
    remote_id: str,
) -> None:
    configuration = await records.get_configuration(config_id)
    if configuration is None:
        return
    try:
        api_key = await credentials.resolve(configuration)
    except NoApiKey:
        logger.error(f"No API key, {kind} left on OpenAI", config_id=config_id, remote_id=remote_id)
        return
    except Exception as err:  # noqa: BLE001
        logger.error(
            f"Could not resolve API key, {kind} left on OpenAI",
            config_id=config_id,
            remote_id=remote_id,
            error_type=type(err).__name__,
            error=str(err),
        )
        return

    client = client_factory.create_client(api_key)
    delete = client.beta.assistants.delete if kind == "assistant" else client.files.delete
    try:
        await delete_remote(kind, remote_id, partial(delete, remote_id))
    except Exception as err:  # noqa: BLE001
        logger.error(f"Error deleting {kind}", remote_id=remote_id, error_type=type(err).__name__, error=str(err))
    finally:
        await client.close()
