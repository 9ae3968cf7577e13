"""HTTP header and cookie constants for the assistant bridge."""

HEADER_CORRELATION_ID = "X-Correlation-ID"
HEADER_CSRF_TOKEN = "X-CSRF-Token"
HEADER_ACCEPT_LANGUAGE = "Accept-Language"
HEADER_LOCATION = "Location"

SESSION_COOKIE = "assistant_bridge_session"
