"""One chat turn against the active assistant: thread, message, run, reply."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, MutableMapping, Optional

from ..entities import Assistant, CancelCheck, Configuration, HistoryEntry, IConversationOrchestrator
from ..entities.errors import (
    NoAssistant,
    NoAssistantResponse,
    NoConfiguration,
    RunCancelled,
    RunFailed,
    RunTimeout,
)
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .credentials import CredentialResolver
from .openai_helpers import cancel_run_safely

logger = get_logger("CONVERSATION")

THREAD_SESSION_KEY = "openai_thread_id"
HISTORY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
RUN_COMPLETED = "completed"
RUN_FAILURE_STATUSES = ("failed", "cancelled", "expired")


def extract_reply(messages: Iterable[Any]) -> str:
    """Text of the first text block of the first assistant message. Messages come newest first."""
    for message in messages:
        if message.role != "assistant" or not message.content:
            continue
        for block in message.content:
            if block.type == "text":
                return block.text.value
    raise NoAssistantResponse()


def _first_text(message: Any) -> str:
    if not message.content:
        return ""
    text = getattr(message.content[0], "text", None)
    return getattr(text, "value", None) or ""


def to_history(messages: Iterable[Any]) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            role=message.role,
            content=_first_text(message),
            timestamp=datetime.fromtimestamp(message.created_at).strftime(HISTORY_TIMESTAMP_FORMAT),
        )
        for message in messages
        if message.role in ("user", "assistant")
    ]


class ConversationOrchestrator(IConversationOrchestrator):
    """Drives a message through the Assistants API.

    The thread id lives in the caller's session and is reused as-is. Adding the
    message, creating the run and polling it happen strictly one after another.
    """

    def __init__(
        self,
        records: BaseRecordRepository,
        credentials: CredentialResolver,
        client_factory: OpenAIClientFactory,
        poll_interval: float = 1.0,
        max_poll_attempts: int = 60,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.records = records
        self.credentials = credentials
        self.client_factory = client_factory
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep

    async def get_active_config(self) -> Configuration:
        configuration = await self.records.find_active_configuration()
        if configuration is None:
            raise NoConfiguration()
        return configuration

    async def get_active_assistant(self, config_id: int) -> Assistant:
        assistant = await self.records.find_active_assistant(config_id)
        if assistant is None or not assistant.openai_assistant_id:
            raise NoAssistant()
        return assistant

    async def send_message(
        self, session: MutableMapping[str, Any], message: str, should_cancel: Optional[CancelCheck] = None
    ) -> str:
        configuration = await self.get_active_config()
        assistant = await self.get_active_assistant(configuration.id)
        api_key = await self.credentials.resolve(configuration)

        client = self.client_factory.create_client(api_key)
        try:
            thread_id = await self._resolve_thread(client, session)
            await client.beta.threads.messages.create(thread_id=thread_id, role="user", content=message)
            run = await self.create_run(client, thread_id, assistant)
            await self.wait_for_run(client, thread_id, run.id, should_cancel)
            page = await client.beta.threads.messages.list(thread_id=thread_id)
            reply = extract_reply(page.data)
        finally:
            await client.close()

        logger.info("Assistant replied", thread_id=thread_id, run_id=run.id, reply_length=len(reply))
        return reply

    async def _resolve_thread(self, client: Any, session: MutableMapping[str, Any]) -> str:
        thread_id = session.get(THREAD_SESSION_KEY)
        if thread_id:
            return thread_id
        thread = await client.beta.threads.create()
        session[THREAD_SESSION_KEY] = thread.id
        logger.info("New thread created", thread_id=thread.id)
        return thread.id

    async def create_run(self, client: Any, thread_id: str, assistant: Assistant) -> Any:
        """Start a run. Only temperature is forwarded; top_p and max_tokens stay on the assistant."""
        if assistant.max_tokens > 0:
            logger.info(
                "max_tokens is not forwarded to runs",
                max_tokens=assistant.max_tokens,
                assistant_id=assistant.openai_assistant_id,
            )
        run = await client.beta.threads.runs.create(
            thread_id=thread_id,
            assistant_id=assistant.openai_assistant_id,
            temperature=float(assistant.temperature),
        )
        logger.debug("Run created", thread_id=thread_id, run_id=run.id)
        return run

    async def wait_for_run(
        self, client: Any, thread_id: str, run_id: str, should_cancel: Optional[CancelCheck] = None
    ) -> Any:
        """Poll the run until it completes.

        Every attempt sleeps first and then fetches the run. Unknown statuses keep polling.

        Raises:
            RunFailed: the run ended failed, cancelled or expired
            RunTimeout: still not completed after ``max_poll_attempts`` fetches
            RunCancelled: ``should_cancel`` reported true; the run is cancelled best-effort
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            await self._sleep(self.poll_interval)
            if should_cancel is not None and await should_cancel():
                logger.info("Caller went away, cancelling run", thread_id=thread_id, run_id=run_id, attempt=attempt)
                await cancel_run_safely(client, thread_id, run_id)
                raise RunCancelled()

            run = await client.beta.threads.runs.retrieve(thread_id=thread_id, run_id=run_id)
            if run.status == RUN_COMPLETED:
                logger.debug("Run completed", thread_id=thread_id, run_id=run_id, attempts=attempt)
                return run
            if run.status in RUN_FAILURE_STATUSES:
                logger.error("Run ended without completing", thread_id=thread_id, run_id=run_id, status=run.status)
                raise RunFailed(run.status)

        logger.error("Run timed out", thread_id=thread_id, run_id=run_id, attempts=self.max_poll_attempts)
        raise RunTimeout(self.max_poll_attempts)

    async def get_thread_history(self, session: MutableMapping[str, Any]) -> list[HistoryEntry]:
        thread_id = session.get(THREAD_SESSION_KEY)
        if not thread_id:
            return []
        try:
            configuration = await self.get_active_config()
            api_key = await self.credentials.resolve(configuration)
            client = self.client_factory.create_client(api_key)
            try:
                page = await client.beta.threads.messages.list(thread_id=thread_id)
            finally:
                await client.close()
            return to_history(page.data)
        except Exception as err:  # noqa: BLE001
            logger.error(
                "Failed to get thread history", thread_id=thread_id, error_type=type(err).__name__, error=str(err)
            )
            return []

    def clear_thread(self, session: MutableMapping[str, Any]) -> None:
        session.pop(THREAD_SESSION_KEY, None)
        logger.info("Cleared OpenAI thread from session")
