"""Small wrappers around OpenAI calls that must not break the surrounding flow."""

from typing import Any, Awaitable, Callable, Optional

from openai import NotFoundError

from ..structured_logging import get_logger, get_or_create_correlation_id

logger = get_logger("OPENAI_HELPERS")

TERMINAL_RUN_STATUSES = ("completed", "failed", "cancelled", "expired")


async def retrieve_run(client: Any, thread_id: str, run_id: str) -> Optional[Any]:
    """Safely retrieve a run, logging errors."""
    correlation_id = get_or_create_correlation_id()
    try:
        result = await client.beta.threads.runs.retrieve(thread_id=thread_id, run_id=run_id)
        logger.debug("Run retrieved successfully", thread_id=thread_id, run_id=run_id, correlation_id=correlation_id)
        return result
    except Exception as err:  # noqa: BLE001
        logger.error(
            "Failed to retrieve run",
            error=str(err),
            thread_id=thread_id,
            run_id=run_id,
            correlation_id=correlation_id,
            error_type=type(err).__name__,
        )
        return None


async def cancel_run_safely(client: Any, thread_id: str, run_id: str) -> bool:
    """Safely cancel a run, returning True if successful or already in terminal state."""
    correlation_id = get_or_create_correlation_id()
    try:
        run = await retrieve_run(client, thread_id, run_id)
        if run and run.status in TERMINAL_RUN_STATUSES:
            logger.info(
                f"Run already in terminal state: {run.status}",
                thread_id=thread_id,
                run_id=run_id,
                correlation_id=correlation_id,
                status=run.status,
            )
            return True

        await client.beta.threads.runs.cancel(thread_id=thread_id, run_id=run_id)
        logger.info("Successfully cancelled run", thread_id=thread_id, run_id=run_id, correlation_id=correlation_id)
        return True

    except Exception as err:  # noqa: BLE001
        logger.error(
            "Failed to cancel run",
            error=str(err),
            thread_id=thread_id,
            run_id=run_id,
            correlation_id=correlation_id,
            error_type=type(err).__name__,
        )
        return False


async def delete_remote(kind: str, remote_id: str, delete: Callable[[], Awaitable[Any]]) -> bool:
    """Delete a remote resource, treating 404 as already gone.

    Returns True when the resource was deleted, False when it no longer existed.
    Any other error propagates.
    """
    try:
        await delete()
    except NotFoundError:
        logger.info(f"{kind} already deleted on OpenAI", remote_id=remote_id)
        return False
    logger.info(f"{kind} deleted on OpenAI", remote_id=remote_id)
    return True
