"""Abstract base classes defining interfaces for assistant bridge components."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, MutableMapping, Optional

from .schemas import HistoryEntry

CancelCheck = Callable[[], Awaitable[bool]]


class IConversationOrchestrator(ABC):
    """Interface for one chat turn against the active assistant."""

    @abstractmethod
    async def send_message(
        self, session: MutableMapping[str, Any], message: str, should_cancel: Optional[CancelCheck] = None
    ) -> str:
        """Submit a user message and return the assistant's reply.

        Args:
            session: Session-scoped storage holding the thread id
            message: The user's raw message text
            should_cancel: Optional check polled between run status fetches

        Returns:
            The reply text of the first assistant message
        """
        pass

    @abstractmethod
    async def get_thread_history(self, session: MutableMapping[str, Any]) -> list[HistoryEntry]:
        """Return the session thread's user and assistant messages, empty on any failure."""
        pass

    @abstractmethod
    def clear_thread(self, session: MutableMapping[str, Any]) -> None:
        pass
