"""Server-side chat sessions keyed by a cookie: thread id, CSRF token and rate limits."""

import hmac
import secrets
import time
from typing import Any, Callable, Optional

from ..structured_logging import get_logger

logger = get_logger("SESSIONS")

CSRF_TOKEN_KEY = "csrf_token"
LAST_REQUEST_KEY = "ai_chat_last_request"
LAST_TOKEN_REQUEST_KEY = "ai_chat_last_token_request"


class SessionStore:
    """In-memory sessions. Sessions idle for longer than ``max_idle`` seconds are dropped."""

    def __init__(self, max_idle: float = 24 * 3600, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_idle = max_idle
        self.clock = clock
        self._sessions: dict[str, dict[str, Any]] = {}
        self._seen: dict[str, float] = {}

    def get_or_create(self, session_id: Optional[str]) -> tuple[str, dict[str, Any]]:
        now = self.clock()
        self._prune(now)
        if session_id and session_id in self._sessions:
            self._seen[session_id] = now
            return session_id, self._sessions[session_id]
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = {}
        self._seen[session_id] = now
        logger.debug("Session created", active_sessions=len(self._sessions))
        return session_id, self._sessions[session_id]

    def _prune(self, now: float) -> None:
        expired = [sid for sid, seen in self._seen.items() if now - seen > self.max_idle]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._seen.pop(sid, None)


def rate_limited(session: dict[str, Any], key: str, interval: float, now: float) -> bool:
    """True when the previous call was less than ``interval`` seconds ago. Otherwise records this call."""
    last = session.get(key)
    if last is not None and now - last < interval:
        return True
    session[key] = now
    return False


def issue_csrf_token(session: dict[str, Any]) -> str:
    token = secrets.token_urlsafe(32)
    session[CSRF_TOKEN_KEY] = token
    return token


def is_valid_csrf_token(session: dict[str, Any], token: str) -> bool:
    expected = session.get(CSRF_TOKEN_KEY)
    if not expected or not token:
        return False
    return hmac.compare_digest(expected, token)
