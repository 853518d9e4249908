"""
Capture surfaces: the separate browsing context a recording is observed in.

The controller only needs to launch a surface, let the capture agent
instrument it, navigate, poll whether the user closed it, and close it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
    Error as PlaywrightError,
)

from ..core.exceptions import SurfaceInjectionError

BindingCallback = Callable[..., Any]


class CaptureSurface(ABC):
    """Abstract browsing surface driven by the session controller."""

    @abstractmethod
    async def launch(self) -> None:
        """Open the surface without loading the target page."""

    @abstractmethod
    async def expose_binding(self, name: str, callback: BindingCallback) -> None:
        """Expose ``callback`` to page scripts as ``window[name]``."""

    @abstractmethod
    async def add_init_script(self, script: str) -> None:
        """Run ``script`` in every document loaded by the surface."""

    @abstractmethod
    async def navigate(self, url: str) -> None:
        """Load the target page."""

    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the surface has been closed (by the user or by us)."""

    @abstractmethod
    async def close(self) -> None:
        """Close the surface; safe to call more than once."""


class PlaywrightCaptureSurface(CaptureSurface):
    """Chromium window driven through Playwright."""

    def __init__(
        self,
        headless: bool = False,
        viewport: Optional[dict] = None,
        navigation_timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.headless = headless
        self.viewport = viewport or {"width": 1200, "height": 800}
        self.navigation_timeout = navigation_timeout
        self.logger = logger or logging.getLogger(__name__)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = True

    @property
    def page(self) -> Optional[Page]:
        """The recorded page, once launched."""
        return self._page

    async def launch(self) -> None:
        self.logger.info(
            f"Launching capture surface ({'headless' if self.headless else 'headed'})"
        )
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless
            )
            self._context = await self._browser.new_context(viewport=self.viewport)
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise SurfaceInjectionError(
                f"Failed to launch capture surface: {e}", stage="launch"
            )

        self._closed = False
        self._page.on("close", self._on_page_closed)
        self._browser.on("disconnected", self._on_page_closed)

    def _on_page_closed(self, *_args) -> None:
        self._closed = True

    async def expose_binding(self, name: str, callback: BindingCallback) -> None:
        if self._context is None:
            raise SurfaceInjectionError("Capture surface not launched", stage="binding")
        try:
            await self._context.expose_binding(name, callback)
        except PlaywrightError as e:
            raise SurfaceInjectionError(
                f"Failed to expose binding {name}: {e}", stage="binding"
            )

    async def add_init_script(self, script: str) -> None:
        if self._context is None:
            raise SurfaceInjectionError("Capture surface not launched", stage="script")
        try:
            await self._context.add_init_script(script=script)
        except PlaywrightError as e:
            raise SurfaceInjectionError(
                f"Failed to install init script: {e}", stage="script"
            )

    async def navigate(self, url: str) -> None:
        if self._page is None:
            raise SurfaceInjectionError(
                "Capture surface not launched", url=url, stage="navigate"
            )
        try:
            await self._page.goto(url, timeout=self.navigation_timeout * 1000)
        except PlaywrightError as e:
            raise SurfaceInjectionError(
                f"Failed to load {url}: {e}", url=url, stage="navigate"
            )

    def is_closed(self) -> bool:
        if self._page is None:
            return True
        return self._closed or self._page.is_closed()

    async def close(self) -> None:
        self._closed = True
        # Tear down innermost first; each step is best effort
        for resource, closer in (
            (self._context, "close"),
            (self._browser, "close"),
            (self._playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, closer)()
            except PlaywrightError as e:
                self.logger.debug(f"Ignoring error while closing surface: {e}")
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
