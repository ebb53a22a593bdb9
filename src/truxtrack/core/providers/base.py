"""
Provider base classes and interfaces.

Defines the contract every tracking provider satisfies and the shared
browser-driven lookup flow used by the carrier portal providers.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Generic, TypeVar

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from truxtrack.core.cancellation import CancelScope, ScopeCancelled
from truxtrack.core.logging import ContextualLogger, get_contextual_logger
from truxtrack.core.models import (
    NO_MATCH,
    Found,
    ProviderOutcome,
    StatusRecord,
    TruxTrackError,
)
from truxtrack.core.retries import RetryConfig, retry_async
from truxtrack.core.session import RemoteSession, SessionFactory

if TYPE_CHECKING:
    from playwright.async_api import Page

Located = TypeVar("Located")


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(TruxTrackError):
    """Base exception for provider failures."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        tracking_number: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.tracking_number = tracking_number
        self.cause = cause


class NavigationTimeout(ProviderError):
    """Tracking page didn't load in time."""
    pass


class ElementNotFound(ProviderError):
    """Selector didn't match any element."""
    pass


class ProducerAlreadyUsedError(ProviderError):
    """A deferred result producer was invoked a second time."""
    pass


# =============================================================================
# Provider Interface
# =============================================================================


class Provider(ABC):
    """A tracking data source.

    ``lookup`` must be safe to run concurrently with other providers for the
    same tracking number, must stop promptly when ``scope`` is cancelled and
    reports "not found" as NO_MATCH rather than raising.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    @abstractmethod
    async def lookup(
        self,
        tracking_number: str,
        scope: CancelScope,
        log: ContextualLogger | None = None,
    ) -> ProviderOutcome:
        """Detect whether this provider knows the tracking number.

        Args:
            tracking_number: Tracking number to look up
            scope: Cancellation scope owned by this attempt
            log: Logger carrying client/tracking context

        Returns:
            Found with a deferred producer, or NO_MATCH
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


# =============================================================================
# Browser Provider
# =============================================================================


class BrowserProvider(Provider, Generic[Located]):
    """Provider that drives a private browser session per attempt.

    Subclasses implement two steps:
    - ``_locate``: navigate and search, returning a handle to the status rows
      (or None when the portal has no history for the number)
    - ``_extract``: read StatusRecords from the located rows

    The session is released on every path: NoMatch, failure, cancellation,
    and after the producer runs.
    """

    provider_name = "browser"

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        url: str,
        timeout: float | None = None,
        max_attempts: int = 2,
    ) -> None:
        """Initialize the provider.

        Args:
            session_factory: Creates a fresh session for each attempt
            url: Tracking page URL
            timeout: Seconds before detection self-cancels (None = no limit)
            max_attempts: Navigation attempts before giving up
        """
        self.session_factory = session_factory
        self.url = url
        self.timeout = timeout
        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            retry_exceptions=(NavigationTimeout,),
        )

    @property
    def name(self) -> str:
        return self.provider_name

    async def _navigate(self, page: Page, log: ContextualLogger) -> None:
        """Open the tracking page, retrying navigation timeouts."""
        async def goto() -> None:
            try:
                await page.goto(self.url)
            except PlaywrightTimeoutError as e:
                raise NavigationTimeout(
                    f"Navigation timeout: {self.url}",
                    provider=self.name,
                    cause=e,
                ) from e

        await retry_async(goto, config=self.retry_config)
        log.debug(f"Loaded {page.url}")

    @abstractmethod
    async def _locate(
        self,
        session: RemoteSession,
        tracking_number: str,
        log: ContextualLogger,
    ) -> Located | None:
        pass

    @abstractmethod
    async def _extract(
        self,
        session: RemoteSession,
        located: Located,
        tracking_number: str,
        log: ContextualLogger,
    ) -> list[StatusRecord]:
        pass

    async def lookup(
        self,
        tracking_number: str,
        scope: CancelScope,
        log: ContextualLogger | None = None,
    ) -> ProviderOutcome:
        log = (log or get_contextual_logger("providers")).with_context(
            provider=self.name,
            tracking_number=tracking_number,
        )
        attempt = scope.child(name=f"{self.name}:{tracking_number}")

        timer: asyncio.TimerHandle | None = None
        if self.timeout:
            timer = asyncio.get_running_loop().call_later(
                self.timeout, attempt.cancel, f"{self.name} timed out after {self.timeout:g}s"
            )

        session = self.session_factory()
        session.bind(attempt)
        located: Located | None = None

        try:
            log.info("Opening page...")
            await attempt.run(session.open())
            located = await attempt.run(self._locate(session, tracking_number, log))
            if located is None:
                log.info("No status history found")
                return NO_MATCH
        except ScopeCancelled as e:
            log.info(f"Lookup cancelled: {e.reason or 'cancelled'}")
            return NO_MATCH
        except ProviderError as e:
            log.warning(f"Lookup failed: {e}")
            return NO_MATCH
        except Exception as e:
            log.exception(f"Unexpected lookup error: {e!r}")
            return NO_MATCH
        finally:
            if timer is not None:
                timer.cancel()
            if located is None:
                await session.close()
                attempt.detach()

        log.info("Status history located")
        return Found(_OnceProducer(self, session, located, tracking_number, attempt, log))


class _OnceProducer(Generic[Located]):
    """Deferred extraction for a located history; callable once."""

    def __init__(
        self,
        provider: BrowserProvider[Located],
        session: RemoteSession,
        located: Located,
        tracking_number: str,
        scope: CancelScope,
        log: ContextualLogger,
    ) -> None:
        self.provider = provider
        self.session = session
        self.located = located
        self.tracking_number = tracking_number
        self.scope = scope
        self.log = log
        self.calls = 0

    async def __call__(self) -> list[StatusRecord]:
        self.calls += 1
        if self.calls > 1:
            raise ProducerAlreadyUsedError(
                "Result producer already used",
                provider=self.provider.name,
                tracking_number=self.tracking_number,
            )

        try:
            records = await self.scope.run(
                self.provider._extract(self.session, self.located, self.tracking_number, self.log)
            )
        finally:
            await self.session.close()
            self.scope.detach()

        if records:
            self.log.info(f"Successfully extracted {len(records)} status entries.")
        else:
            self.log.warning("Table loaded, but no status rows found.")
        return records

    def __repr__(self) -> str:
        return f"<producer {self.provider.name}:{self.tracking_number} calls={self.calls}>"
