"""Best-effort teardown of a configuration's remote resources."""

from functools import partial
from typing import Any, Awaitable, Callable

from ..entities import CascadeError, CascadeOutcome
from ..entities.errors import NoApiKey
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .credentials import CredentialResolver
from .openai_helpers import delete_remote

logger = get_logger("CASCADE")


class CascadeDeleter:
    """Deletes assistants, then files, then the vector store. Never raises.

    A 404 counts as success. Failures are reported in the outcome and logged for
    manual cleanup; they never abort the remaining steps.
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

    async def on_configuration_delete(self, config_id: int) -> CascadeOutcome:
        outcome = CascadeOutcome()
        try:
            configuration = await self.records.get_configuration(config_id)
            if configuration is None:
                return outcome
            assistants = await self.records.list_assistants(config_id)
            file_records = await self.records.list_files(config_id)
        except Exception as err:  # noqa: BLE001
            logger.error(
                "Could not read records, remote resources left in place",
                config_id=config_id,
                error_type=type(err).__name__,
                error=str(err),
            )
            return outcome
        try:
            api_key = await self.credentials.resolve(configuration)
        except NoApiKey:
            logger.warning("No usable API key, remote resources left in place", config_id=config_id)
            return outcome
        except Exception as err:  # noqa: BLE001
            logger.error(
                "Could not resolve API key, remote resources left in place",
                config_id=config_id,
                error_type=type(err).__name__,
                error=str(err),
            )
            return outcome

        client = self.client_factory.create_client(api_key)
        try:
            for assistant in assistants:
                if assistant.openai_assistant_id:
                    await self._attempt(
                        outcome,
                        "assistant",
                        assistant.openai_assistant_id,
                        partial(client.beta.assistants.delete, assistant.openai_assistant_id),
                    )
            for file_record in file_records:
                if file_record.openai_file_id:
                    await self._attempt(
                        outcome,
                        "file",
                        file_record.openai_file_id,
                        partial(client.files.delete, file_record.openai_file_id),
                    )
            if configuration.vector_store_id:
                await self._attempt(
                    outcome,
                    "vector_store",
                    configuration.vector_store_id,
                    partial(client.vector_stores.delete, configuration.vector_store_id),
                )
        finally:
            await client.close()

        logger.info(
            "Remote cleanup finished",
            config_id=config_id,
            attempted=outcome.attempted,
            succeeded=outcome.succeeded,
            failed=outcome.failed,
        )
        return outcome

    async def _attempt(
        self, outcome: CascadeOutcome, kind: str, remote_id: str, delete: Callable[[], Awaitable[Any]]
    ) -> None:
        outcome.attempted += 1
        try:
            await delete_remote(kind, remote_id, delete)
        except Exception as err:  # noqa: BLE001
            logger.error(
                f"Failed to delete {kind}, manual cleanup needed",
                remote_id=remote_id,
                error_type=type(err).__name__,
                error=str(err),
            )
            outcome.failed += 1
            outcome.errors.append(CascadeError(kind=kind, remote_id=remote_id, error=str(err)))
            return
        outcome.succeeded += 1
