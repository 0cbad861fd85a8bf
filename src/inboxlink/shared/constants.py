"""Shared constants for the token and realtime layers."""

# Tokens expiring within this window are already due for renewal (seconds)
REFRESH_THRESHOLD_SECONDS = 5 * 60

# Cooldown before a failed scheduled refresh is rescheduled (seconds)
SCHEDULED_REFRESH_RETRY_SECONDS = 60

# Validity assumed when a token payload cannot be decoded (seconds)
FALLBACK_TOKEN_LIFETIME_SECONDS = 60 * 60

DEFAULT_NEGOTIATE_MAX_RETRIES = 3
DEFAULT_NEGOTIATE_RETRY_DELAY_SECONDS = 1.0

# Transport reconnect schedule, first attempt immediately (seconds)
DEFAULT_RECONNECT_DELAYS = (0.0, 2.0, 10.0, 30.0)

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30
