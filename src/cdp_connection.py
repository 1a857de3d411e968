import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

import requests
from playwright.async_api import Browser, Error as PlaywrightError, Frame, Page, Playwright, async_playwright
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_none

from automation_config import Constants, port_window
from frame_query import FrameQueryEngine
from page_payload import PAYLOAD_SCRIPT, VERSION_PROBE

logger = logging.getLogger("AutoAccept.Connection")


def _log_retry_before_sleep(retry_state):
    """Log retry attempt and include exception details when available."""
    exc = None
    try:
        exc = retry_state.outcome.exception()
    except Exception:
        exc = None

    attempt = getattr(retry_state, "attempt_number", "unknown")
    if exc:
        logger.debug(
            f"Payload injection failed (attempt {attempt}/{Constants.RETRY_STOP_ATTEMPTS}), retrying... "
            f"Exception: {type(exc).__name__}: {exc}"
        )
    else:
        logger.debug(f"Payload injection failed (attempt {attempt}/{Constants.RETRY_STOP_ATTEMPTS}), retrying...")


@dataclass
class AttachmentResult:
    available: bool
    connection_count: int


class TargetSurface:
    """One attached page of the editor and the frames that carry the payload."""

    def __init__(self, page: Page, key: str):
        self.page = page
        self.key = key
        self.alive = True
        self.payload_version: Optional[int] = None
        self.instrumented: Set[Frame] = set()
        page.on("close", self._on_close)
        page.on("framenavigated", self._forget_frame)
        page.on("framedetached", self._forget_frame)

    def _on_close(self, _page):
        logger.debug(f"Surface {self.key} closed")
        self.alive = False

    def _forget_frame(self, frame: Frame):
        # A navigated frame has a fresh window without the payload
        self.instrumented.discard(frame)

    @property
    def live(self) -> bool:
        return self.alive and not self.page.is_closed()


class ConnectionManager:
    """
    Finds the editor's remote-debugging endpoint, attaches to its pages and
    keeps the payload installed in every frame.

    Never launches or terminates the editor. A failed probe is reported, not
    retried; the caller's next poll tick tries again.
    """

    def __init__(self, default_port: int = Constants.DEFAULT_PORT, offset: int = Constants.PORT_OFFSET,
                 query: Optional[FrameQueryEngine] = None):
        self.ports = port_window(default_port, offset)
        self.query = query or FrameQueryEngine()
        self.port: Optional[int] = None
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.injection_count = 0
        self._surfaces: Dict[Page, TargetSurface] = {}
        self._keys = itertools.count(1)

    def probe(self) -> Optional[int]:
        """First port in the window whose endpoint answers, or None."""
        for port in self.ports:
            try:
                response = requests.get(f"http://127.0.0.1:{port}/json/version", timeout=Constants.TIMEOUT_PROBE / 1000)
                if response.ok:
                    logger.debug(f"Remote debugging endpoint found on port {port}")
                    return port
            except requests.RequestException:
                continue
        return None

    async def is_available(self) -> bool:
        return await asyncio.to_thread(self.probe) is not None

    def surfaces(self) -> List[TargetSurface]:
        return [s for s in self._surfaces.values() if s.live]

    @property
    def connection_count(self) -> int:
        return len(self.surfaces())

    async def ensure_attached(self) -> AttachmentResult:
        port = await asyncio.to_thread(self.probe)
        if port is None:
            logger.debug(f"No remote debugging endpoint on ports {self.ports}")
            return AttachmentResult(available=False, connection_count=0)

        try:
            browser = await self._connect(port)
        except PlaywrightError as e:
            logger.warning(f"Could not attach to port {port}: {e}")
            return AttachmentResult(available=False, connection_count=0)

        for context in browser.contexts:
            for page in context.pages:
                surface = self._surfaces.get(page)
                if surface is None:
                    surface = TargetSurface(page, key=f"page-{next(self._keys)}")
                    self._surfaces[page] = surface
                    logger.info(f"Attached to surface {surface.key}: {page.url}")
                if surface.live:
                    await self.inject(surface)

        for page in [p for p, s in self._surfaces.items() if not s.live]:
            del self._surfaces[page]
        return AttachmentResult(available=True, connection_count=self.connection_count)

    async def _connect(self, port: int) -> Browser:
        if self.browser is not None and self.browser.is_connected() and self.port == port:
            return self.browser
        if self.browser is not None:
            logger.info("Connection to the editor dropped, reconnecting...")
            await self._disconnect()
        if self.playwright is None:
            self.playwright = await async_playwright().start()
        logger.debug(f"Connecting Playwright to port {port}...")
        self.browser = await self.playwright.chromium.connect_over_cdp(
            f"http://127.0.0.1:{port}", timeout=Constants.TIMEOUT_CONNECT
        )
        self.port = port
        return self.browser

    async def inject(self, surface: TargetSurface):
        """Install the payload in every frame of the surface that lacks the current version."""
        for frame in list(self.query.iter_frames(surface.page)):
            if frame in surface.instrumented:
                continue
            try:
                await self._install(frame)
                surface.instrumented.add(frame)
            except PlaywrightError as e:
                logger.debug(f"Payload injection skipped for frame {frame.url!r}: {e}")
        if surface.instrumented:
            surface.payload_version = Constants.PAYLOAD_VERSION

    @retry(
        stop=stop_after_attempt(Constants.RETRY_STOP_ATTEMPTS),
        wait=wait_none(),
        retry=retry_if_exception_type(PlaywrightError),
        before_sleep=_log_retry_before_sleep,
        reraise=True,
    )
    async def _install(self, frame: Frame):
        version = await frame.evaluate(VERSION_PROBE)
        if version == Constants.PAYLOAD_VERSION:
            return
        if await frame.evaluate(PAYLOAD_SCRIPT, Constants.PAYLOAD_VERSION):
            self.injection_count += 1
            logger.debug(f"Payload v{Constants.PAYLOAD_VERSION} injected into {frame.url!r}")

    async def _disconnect(self):
        self._surfaces.clear()
        if self.browser:
            try:
                await self.browser.close()
            except Exception as e:
                logger.warning(f'Error closing browser connection: {e}')
        self.browser = None
        self.port = None

    async def close(self):
        await self._disconnect()
        if self.playwright:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning(f'Error stopping Playwright: {e}')
            self.playwright = None
