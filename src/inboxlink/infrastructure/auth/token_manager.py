"""TokenManager - cached bearer tokens with deduplicated, proactive refresh"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from loguru import logger

from inboxlink.domain.models import CachedToken, Event, EventType, TokenStatus
from inboxlink.shared.constants import (
    REFRESH_THRESHOLD_SECONDS,
    SCHEDULED_REFRESH_RETRY_SECONDS,
)
from inboxlink.shared.exceptions import ConfigurationError, InboxLinkError

if TYPE_CHECKING:
    from inboxlink.application.events.event_bus import EventBus

ConfigT = TypeVar("ConfigT")


def utcnow() -> datetime:
    """Current UTC instant"""
    return datetime.now(timezone.utc)


class TokenManager(ABC, Generic[ConfigT]):
    """Manages one cached bearer token for one identity source

    Responsibilities:
    - Return a cached token while it is outside the refresh threshold
    - Funnel concurrent refreshes through a single in-flight future
    - Proactive renewal via a self-healing background task

    Subclasses implement ``_acquire`` for their identity source.
    """

    name = "TokenManager"
    REFRESH_THRESHOLD = timedelta(seconds=REFRESH_THRESHOLD_SECONDS)

    def __init__(
        self,
        config: ConfigT | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry_cooldown: float = SCHEDULED_REFRESH_RETRY_SECONDS,
        event_bus: "EventBus | None" = None,
    ) -> None:
        """Initialize token manager

        Args:
            config: Default configuration used when callers pass none
            clock: Source of the current UTC instant
            retry_cooldown: Seconds to wait after a failed scheduled refresh
            event_bus: Optional bus receiving token events
        """
        self._config = config
        self._validated_config: ConfigT | None = None
        self._clock = clock
        self._retry_cooldown = retry_cooldown
        self._event_bus = event_bus

        self._cached: CachedToken | None = None
        self._inflight: asyncio.Future[CachedToken] | None = None
        self._generation = 0
        self._auto_refresh_task: asyncio.Task | None = None
        self._last_error: str | None = None

    @abstractmethod
    async def _acquire(self, config: ConfigT, background: bool) -> CachedToken:
        """Obtain a brand new token from the identity source

        Args:
            config: Resolved configuration
            background: True when called from the auto-refresh task; sources
                that can prompt the user must stay silent

        Raises:
            InboxLinkError: On any acquisition failure
        """

    def _default_config(self) -> ConfigT:
        """Configuration used when neither caller nor constructor gave one"""
        raise ConfigurationError(f"{self.name}: configuration is required")

    def _validate_config(self, config: ConfigT) -> None:
        """Hook for subclasses to fail fast on bad configuration"""

    def _resolve_config(self, config: ConfigT | None) -> ConfigT:
        if config is None:
            config = self._config if self._config is not None else self._default_config()
        if config is not self._validated_config:
            self._validate_config(config)
            self._validated_config = config
        self._config = config
        return config

    @property
    def is_authenticated(self) -> bool:
        """True once a token has been acquired and not cleared"""
        return self._cached is not None

    @property
    def is_refreshing(self) -> bool:
        """True while an acquisition is in flight"""
        return self._inflight is not None

    @property
    def auto_refresh_running(self) -> bool:
        """True while the background renewal task is scheduled"""
        return (
            self._auto_refresh_task is not None
            and not self._auto_refresh_task.done()
        )

    def _is_fresh(self, token: CachedToken) -> bool:
        return token.expires_at - self._clock() > self.REFRESH_THRESHOLD

    def is_token_valid(self) -> bool:
        """Check if the cached token is outside the refresh threshold"""
        return self._cached is not None and self._is_fresh(self._cached)

    def time_until_expiry(self) -> float | None:
        """Seconds until the cached token expires, None without a token"""
        if self._cached is None:
            return None
        return self._cached.seconds_until_expiry(self._clock())

    def time_until_refresh(self) -> float | None:
        """Seconds until the cached token enters the refresh threshold"""
        remaining = self.time_until_expiry()
        if remaining is None:
            return None
        return max(0.0, remaining - self.REFRESH_THRESHOLD.total_seconds())

    def get_token_status(self) -> TokenStatus:
        """Get token status information for monitoring"""
        return TokenStatus(
            is_authenticated=self.is_authenticated,
            has_valid_token=self.is_token_valid(),
            time_until_expiry=self.time_until_expiry(),
            time_until_refresh=self.time_until_refresh(),
            is_refreshing=self.is_refreshing,
            error=self._last_error,
        )

    async def get_token(self, config: ConfigT | None = None) -> str:
        """Get a valid access token, refreshing if necessary

        Concurrent callers share one acquisition and observe the same
        result or the same error.

        Args:
            config: Configuration; the last used one when omitted

        Returns:
            Bearer token valid for longer than the refresh threshold

        Raises:
            InboxLinkError: If acquisition fails
        """
        return await self._get_token(config, background=False)

    async def _get_token(self, config: ConfigT | None, background: bool) -> str:
        resolved = self._resolve_config(config)

        cached = self._cached
        if cached is not None and self._is_fresh(cached):
            return cached.value

        inflight = self._inflight
        if inflight is None:
            logger.info(f"{self.name}: Acquiring new token")
            inflight = asyncio.ensure_future(
                self._refresh(resolved, background, self._generation)
            )
            inflight.add_done_callback(self._release_inflight)
            self._inflight = inflight
        else:
            logger.debug(f"{self.name}: Waiting for in-progress token refresh")

        # Waiter cancellation must not cancel the shared acquisition
        token = await asyncio.shield(inflight)
        return token.value

    async def _refresh(
        self, config: ConfigT, background: bool, generation: int
    ) -> CachedToken:
        try:
            token = await self._acquire(config, background)
        except InboxLinkError as e:
            self._last_error = str(e)
            logger.warning(
                f"{self.name}: Token acquisition failed ({type(e).__name__}): {e}"
            )
            self._publish(
                EventType.TOKEN_REFRESH_FAILED,
                {"source": self.name, "error": type(e).__name__},
            )
            raise

        # A forced refresh or clear() while this was in flight wins
        if generation == self._generation:
            self._cached = token
            self._last_error = None
            logger.info(
                f"{self.name}: Token acquired, expires at "
                f"{token.expires_at.isoformat()}"
            )
            self._publish(
                EventType.TOKEN_REFRESHED,
                {"source": self.name, "expires_at": token.expires_at},
            )
        return token

    def _release_inflight(self, future: asyncio.Future) -> None:
        if self._inflight is future:
            self._inflight = None

    async def force_refresh(self, config: ConfigT | None = None) -> str:
        """Discard the cached token and in-flight refresh, then acquire

        Args:
            config: Configuration; the last used one when omitted

        Returns:
            Freshly acquired bearer token
        """
        self._generation += 1
        self._cached = None
        self._inflight = None
        return await self.get_token(config)

    def start_auto_refresh(self, config: ConfigT | None = None) -> bool:
        """Start proactive renewal at ``expires_at - REFRESH_THRESHOLD``

        Must be called from a running event loop.

        Args:
            config: Configuration; the last used one when omitted

        Returns:
            True if renewal was scheduled, False without a cached token
        """
        resolved = self._resolve_config(config)

        if self._cached is None:
            logger.warning(
                f"{self.name}: Cannot start auto-refresh - no cached token"
            )
            return False

        self.stop_auto_refresh()
        self._auto_refresh_task = asyncio.get_running_loop().create_task(
            self._auto_refresh_loop(resolved),
            name=f"{self.name}-auto-refresh",
        )
        logger.info(f"{self.name}: Auto-refresh started")
        return True

    def stop_auto_refresh(self) -> None:
        """Stop proactive renewal, an in-flight acquisition keeps running"""
        if self._auto_refresh_task is not None:
            self._auto_refresh_task.cancel()
            self._auto_refresh_task = None
            logger.info(f"{self.name}: Auto-refresh stopped")

    async def _auto_refresh_loop(self, config: ConfigT) -> None:
        """Sleep until the refresh point, renew, reschedule from new expiry"""
        while True:
            delay = self.time_until_refresh()
            if delay is None:
                delay = 0.0
            logger.info(
                f"{self.name}: Scheduling next refresh in {round(delay)} seconds"
            )
            await asyncio.sleep(delay)

            try:
                await self._get_token(config, background=True)
            except Exception as e:
                logger.warning(
                    f"{self.name}: Scheduled refresh failed "
                    f"({type(e).__name__}), retrying in {self._retry_cooldown}s"
                )
                await asyncio.sleep(self._retry_cooldown)
                continue

            if not self.is_token_valid():
                # Source issued a token already inside the threshold
                await asyncio.sleep(self._retry_cooldown)

    def clear(self) -> None:
        """Clear all token manager state (sign-out/teardown)"""
        self.stop_auto_refresh()
        self._generation += 1
        had_token = self._cached is not None
        self._cached = None
        self._inflight = None
        self._last_error = None
        if had_token:
            self._publish(EventType.TOKEN_CLEARED, {"source": self.name})
        logger.info(f"{self.name}: State cleared")

    async def close(self) -> None:
        """Clear state and release resources"""
        self.clear()

    def _publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.publish_sync(Event(type=event_type, data=data))
