"""Headless Chromium renderer sessions and the bounded pool they are checked out from."""

import asyncio
import itertools
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from playwright.async_api import async_playwright

# Opens collapsible regions so their content ends up in the printed document
EXPAND_SCRIPT = """() => {
    if (window.jQuery) {
        window.jQuery('.rwui_expand').parent().addClass('rw_open').removeClass('rw_active');
    } else {
        document.querySelectorAll('.rwui_expand').forEach((el) => {
            if (el.parentElement) {
                el.parentElement.classList.add('rw_open');
                el.parentElement.classList.remove('rw_active');
            }
        });
    }
    document.querySelectorAll('.expand-container').forEach((el) => {
        el.classList.add('expand-container-open');
        el.querySelectorAll('.expand-content').forEach((content) => {
            content.classList.remove('expand-hidden');
            content.style.display = 'block';
            content.style.opacity = '1';
        });
    });
    document.querySelectorAll('details').forEach((el) => { el.open = true; });
}"""


class RendererPoolExhausted(RuntimeError):
    """Every session of the pool was lost and none could be recreated."""
    pass


class RendererSession:
    """One isolated browser context with a single page."""

    def __init__(self, context, page, session_id: int):
        self.context = context
        self.page = page
        self.session_id = session_id

    async def navigate(self, url: str) -> None:
        """Open a URL without a navigation timeout; large pages may take a while."""
        await self.page.goto(url, timeout=0)

    async def evaluate(self, script: str) -> Any:
        return await self.page.evaluate(script)

    async def print_to_pdf(self, path: Path, pdf_format: str = 'A2', margin: str = '10px') -> None:
        """
        Print the current page.

        Args:
            path: Output file
            pdf_format: Paper format name (e.g., "A2", "A4", "Letter")
            margin: CSS length applied to all four sides
        """
        await self.page.pdf(
            path=str(path),
            format=pdf_format,
            margin={'top': margin, 'right': margin, 'bottom': margin, 'left': margin},
            print_background=True
        )

    async def close(self) -> None:
        await self.context.close()

    def __repr__(self) -> str:
        return f"RendererSession(id={self.session_id})"


class PlaywrightSessionFactory:
    """Launches one headless browser and creates isolated sessions from it."""

    def __init__(
        self,
        extra_headers: Optional[Dict[str, str]] = None,
        headless: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            extra_headers: Headers sent with every request of every session (e.g., Authorization)
            headless: Run Chromium without a window
            logger: Logger instance
        """
        self.extra_headers = dict(extra_headers or {})
        self.headless = headless
        self.logger = logger or logging.getLogger('confluence_offline_copy.renderer')
        self._playwright = None
        self._browser = None
        self._ids = itertools.count(1)

    async def start(self) -> 'PlaywrightSessionFactory':
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        self.logger.info(f"Launched Chromium (headless={self.headless})")
        return self

    async def create_session(self) -> RendererSession:
        if self._browser is None:
            raise RuntimeError("PlaywrightSessionFactory.start() must be awaited first")

        context = await self._browser.new_context(extra_http_headers=self.extra_headers)
        page = await context.new_page()
        session = RendererSession(context, page, next(self._ids))
        self.logger.debug(f"Created {session}")
        return session

    async def stop(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Chromium stopped")

    async def __aenter__(self) -> 'PlaywrightSessionFactory':
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


class RendererPool:
    """
    Fixed-size pool of renderer sessions with checkout/return semantics.

    A session is held by at most one task at a time. Sessions that may be in
    an unknown state (e.g. after a timed-out render) are replaced instead of
    returned. If a replacement cannot be created the pool shrinks; once it is
    empty every waiting and future ``acquire`` raises ``RendererPoolExhausted``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Awaitable[Any]],
        size: int,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            session_factory: Coroutine function returning a new session with an async ``close()``
            size: Number of sessions
            logger: Logger instance
        """
        if size < 1:
            raise ValueError("Renderer pool size must be a positive integer")

        self.session_factory = session_factory
        self.size = size
        self.logger = logger or logging.getLogger('confluence_offline_copy.renderer')
        self._available: Optional[asyncio.Queue] = None
        self._checked_out: Set[Any] = set()
        self._live = 0

    @property
    def in_use(self) -> int:
        return len(self._checked_out)

    @property
    def live_sessions(self) -> int:
        return self._live

    async def open(self) -> 'RendererPool':
        """Create all sessions up front."""
        self._available = asyncio.Queue()
        for _ in range(self.size):
            self._available.put_nowait(await self.session_factory())
            self._live += 1
        self.logger.info(f"Renderer pool opened with {self._live} session(s)")
        return self

    async def acquire(self):
        """Wait for a free session and check it out."""
        if self._available is None:
            raise RuntimeError("RendererPool.open() must be awaited first")

        session = await self._available.get()
        if session is None:
            # Pass the exhaustion marker on to the next waiter
            self._available.put_nowait(None)
            raise RendererPoolExhausted("No renderer sessions left in the pool")

        self._checked_out.add(session)
        return session

    def release(self, session) -> None:
        """Return a healthy session to the pool."""
        self._checked_out.discard(session)
        self._available.put_nowait(session)

    async def replace(self, session) -> None:
        """Discard a possibly broken session and add a fresh one in its place."""
        self._checked_out.discard(session)
        self._live -= 1

        try:
            await session.close()
        except Exception as e:
            self.logger.warning(f"Failed to close discarded session {session}: {e}")

        try:
            fresh = await self.session_factory()
        except Exception as e:
            self.logger.error(f"Could not recreate renderer session, pool shrinks to {self._live}: {e}",
                              exc_info=True)
            if self._live == 0:
                self._available.put_nowait(None)
            return

        self._live += 1
        self._available.put_nowait(fresh)
        self.logger.info(f"Replaced renderer session {session} with {fresh}")

    async def close(self) -> None:
        """Close every session currently in the pool."""
        if self._available is None:
            return

        while not self._available.empty():
            session = self._available.get_nowait()
            if session is None:
                continue
            try:
                await session.close()
            except Exception as e:
                self.logger.warning(f"Failed to close session {session}: {e}")
        self._live = 0
        self.logger.info("Renderer pool closed")


__all__ = [
    'EXPAND_SCRIPT',
    'PlaywrightSessionFactory',
    'RendererPool',
    'RendererPoolExhausted',
    'RendererSession'
]
