"""
Remote browsing sessions with guaranteed release.

Every provider attempt owns exactly one session. The session is opened
before navigation and closed on every exit path: normal completion,
exception, or cancellation of the attempt's scope.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

from .models import TruxTrackError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

    from .cancellation import CancelScope
    from .config.models import BrowserConfig

logger = logging.getLogger(__name__)


class SessionError(TruxTrackError):
    """Session could not be opened or used."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


# =============================================================================
# Session Base
# =============================================================================


class RemoteSession(ABC):
    """Open -> use -> close lifecycle for an expensive remote resource.

    ``close()`` is idempotent: the first call releases the resource, later
    and concurrent calls wait for that same release and return.
    """

    def __init__(self) -> None:
        self._open_task: asyncio.Future[None] | None = None
        self._close_task: asyncio.Future[None] | None = None

    @property
    def opened(self) -> bool:
        return self._open_task is not None and self._open_task.done()

    @property
    def closed(self) -> bool:
        return self._close_task is not None

    async def open(self) -> "RemoteSession":
        """Acquire the resource.

        Raises:
            SessionError: If the session was already closed or acquisition failed
        """
        if self.closed:
            raise SessionError("Session already closed")
        if self._open_task is None:
            self._open_task = asyncio.ensure_future(self._open())
        await self._open_task
        return self

    async def close(self) -> None:
        """Release the resource exactly once."""
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._release())
        await asyncio.shield(self._close_task)

    async def _release(self) -> None:
        # A close racing an in-flight open waits for the open to settle first
        if self._open_task is not None:
            await asyncio.wait({self._open_task})
        await self._close()

    def bind(self, scope: CancelScope) -> None:
        """Close this session as soon as ``scope`` is cancelled."""
        scope.add_callback(self.close)

    @abstractmethod
    async def _open(self) -> None:
        pass

    @abstractmethod
    async def _close(self) -> None:
        pass

    async def __aenter__(self) -> "RemoteSession":
        try:
            return await self.open()
        except BaseException:
            await self.close()
            raise

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


SessionFactory = Callable[[], RemoteSession]


# =============================================================================
# Playwright Session
# =============================================================================


class PlaywrightSession(RemoteSession):
    """A private Playwright browser, context and page for one provider attempt."""

    def __init__(
        self,
        headless: bool = True,
        browser_type: str = "chromium",
        timeout: float = 60.0,
        launch_timeout: float = 60.0,
        user_agent: str | None = None,
    ):
        """Initialize the session (nothing is launched until ``open()``).

        Args:
            headless: Run browser in headless mode
            browser_type: Browser to use (chromium, firefox, webkit)
            timeout: Default timeout for page operations, in seconds
            launch_timeout: Timeout for launching the browser, in seconds
            user_agent: Custom user agent string
        """
        super().__init__()
        self.headless = headless
        self.browser_type = browser_type
        self.timeout_ms = int(timeout * 1000)
        self.launch_timeout_ms = int(launch_timeout * 1000)
        self.user_agent = user_agent

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @classmethod
    def factory(cls, config: BrowserConfig) -> SessionFactory:
        """Build a session factory from browser configuration."""
        def create() -> RemoteSession:
            return cls(
                headless=config.headless,
                browser_type=config.browser.value,
                timeout=config.timeout_seconds,
                launch_timeout=config.launch_timeout_seconds,
                user_agent=config.user_agent,
            )
        return create

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionError("Session is not open")
        return self._page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise SessionError("Session is not open")
        return self._context

    async def _open(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()

        if self.browser_type == "firefox":
            browser_launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            browser_launcher = self._playwright.webkit
        else:
            browser_launcher = self._playwright.chromium

        try:
            self._browser = await browser_launcher.launch(
                headless=self.headless,
                timeout=self.launch_timeout_ms,
            )
        except Exception as e:
            raise SessionError(
                f"Failed to launch {self.browser_type} browser. "
                "Run: playwright install chromium",
                cause=e,
            ) from e

        context_options: dict[str, Any] = {"java_script_enabled": True}
        if self.user_agent:
            context_options["user_agent"] = self.user_agent

        self._context = await self._browser.new_context(**context_options)
        self._context.set_default_timeout(self.timeout_ms)
        self._page = await self._context.new_page()

        logger.debug(f"Opened {self.browser_type} session (headless={self.headless})")

    def expect_popup(self) -> asyncio.Future[Page]:
        """Return a future resolved with the next page opened in this context.

        Register before the action that opens the popup.
        """
        future: asyncio.Future[Page] = asyncio.get_running_loop().create_future()

        def _on_page(page: Page) -> None:
            if not future.done():
                future.set_result(page)

        self.context.once("page", _on_page)
        return future

    async def _close(self) -> None:
        # Each step is attempted even if an earlier one fails
        steps = [
            ("page", self._page, "close"),
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ]
        for label, target, method in steps:
            if target is None:
                continue
            if label == "page" and target.is_closed():
                continue
            try:
                await getattr(target, method)()
            except Exception as e:
                logger.debug(f"Ignoring error closing {label}: {e}")

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        logger.debug("Closed browser session")
