"""Create-or-update of the remote assistant bound to the configuration's vector store."""

from typing import Any

from openai import OpenAIError

from ..entities import Assistant, AssistantEvent, AssistantStatus, decode_instructions
from ..entities.errors import (
    AssistantBridgeError,
    AssistantProvisioningFailed,
    IncompatibleModel,
    NoConfiguration,
    NoKnowledgeStore,
    NoModel,
    RecordNotFound,
)
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .credentials import CredentialResolver

logger = get_logger("ASSISTANT_PROVISIONER")

TEST_ASSISTANT_NAME = "Test Assistant"
TEST_ASSISTANT_INSTRUCTIONS = "Test assistant for model validation"


def build_assistant_body(assistant: Assistant, vector_store_id: str) -> dict[str, Any]:
    """Request body shared by assistant create and update."""
    return {
        "name": assistant.name,
        "instructions": decode_instructions(assistant.system_instructions),
        "model": assistant.model.model_id,
        "temperature": float(assistant.temperature),
        "top_p": float(assistant.top_p),
        "tools": [{"type": "file_search"}],
        "tool_resources": {"file_search": {"vector_store_ids": [vector_store_id]}},
    }


class AssistantProvisioner:
    """Pushes an assistant record to OpenAI and tracks the outcome in its status.

    ``pending|active|failed -> creating -> active|failed``. Checks that fail before
    creation starts move the record straight to ``failed``.
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

    async def validate_model_compatibility(self, client: Any, model_id: str) -> None:
        """Create and delete a throwaway assistant to prove the model works with the Assistants API."""
        logger.info("Validating model compatibility", model=model_id)
        try:
            trial = await client.beta.assistants.create(
                name=TEST_ASSISTANT_NAME, instructions=TEST_ASSISTANT_INSTRUCTIONS, model=model_id, tools=[]
            )
        except OpenAIError as err:
            logger.error("Model is not compatible", model=model_id, error_type=type(err).__name__, error=str(err))
            raise IncompatibleModel(model_id) from err
        try:
            await client.beta.assistants.delete(trial.id)
        except OpenAIError as err:
            logger.warning(
                "Failed to delete test assistant", assistant_id=trial.id, error_type=type(err).__name__, error=str(err)
            )

    async def _mark_failed(self, assistant: Assistant, cause: str) -> Assistant:
        return await self.records.update_assistant(assistant.with_event(AssistantEvent.FAIL, cause=cause))

    async def create_or_update(self, assistant_id: int) -> Assistant:
        """Create the remote assistant, or replace all fields of the existing one.

        Raises the cause after recording ``failed`` on the assistant, so the admin can fix and save again.
        """
        assistant = await self.records.get_assistant(assistant_id)
        if assistant is None:
            raise RecordNotFound("Assistant", assistant_id)
        if assistant.status == AssistantStatus.CREATING:
            logger.warning("Assistant was left in creating, resetting", assistant_id=assistant_id)
            assistant = await self._mark_failed(assistant, "Previous provisioning was interrupted")

        logger.info(
            "Starting assistant creation/update process",
            assistant_id=assistant_id,
            assistant_name=assistant.name,
            config_id=assistant.config_id,
            model=assistant.model.model_id,
        )

        try:
            configuration = await self.records.get_configuration(assistant.config_id)
            if configuration is None:
                raise NoConfiguration()
            api_key = await self.credentials.resolve(configuration)
            model_id = assistant.model.model_id.strip()
            if not model_id:
                raise NoModel()
            vector_store_id = configuration.vector_store_id
            if not vector_store_id:
                raise NoKnowledgeStore()
        except AssistantBridgeError as err:
            logger.error(err.message, assistant_id=assistant_id, config_id=assistant.config_id)
            await self._mark_failed(assistant, err.message)
            raise

        client = self.client_factory.create_client(api_key)
        try:
            try:
                await self.validate_model_compatibility(client, model_id)
            except IncompatibleModel as err:
                await self._mark_failed(assistant, err.message)
                raise

            assistant = await self.records.update_assistant(assistant.with_event(AssistantEvent.SUBMIT))
            body = build_assistant_body(assistant, vector_store_id)
            try:
                if assistant.openai_assistant_id:
                    logger.info("Updating existing assistant", openai_assistant_id=assistant.openai_assistant_id)
                    remote = await client.beta.assistants.update(assistant.openai_assistant_id, **body)
                else:
                    logger.info("Creating new assistant", assistant_name=assistant.name, model=model_id)
                    remote = await client.beta.assistants.create(**body)
            except OpenAIError as err:
                logger.error(
                    "Failed to create/update assistant",
                    assistant_id=assistant_id,
                    error_type=type(err).__name__,
                    error=str(err),
                )
                message = f"Failed to create/update assistant: {err}"
                await self._mark_failed(assistant, message)
                raise AssistantProvisioningFailed(message) from err

            if not getattr(remote, "id", None):
                await self._mark_failed(assistant, "Invalid response from OpenAI API")
                raise AssistantProvisioningFailed("Invalid response from OpenAI API")
        finally:
            await client.close()

        activated = assistant.with_event(AssistantEvent.SUCCEED).model_copy(update={"openai_assistant_id": remote.id})
        assistant = await self.records.update_assistant(activated)
        logger.info(
            "Assistant successfully created/updated", openai_assistant_id=remote.id, assistant_name=assistant.name
        )
        return assistant
