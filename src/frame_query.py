import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from playwright.async_api import ElementHandle, Error as PlaywrightError, Frame, Page

logger = logging.getLogger("AutoAccept.FrameQuery")

Selectors = Union[str, Sequence[str]]

TEXTS_SCRIPT = "els => els.map(el => (el.textContent || '').trim())"


def _selector_group(selectors: Selectors) -> str:
    if isinstance(selectors, str):
        return selectors
    return ", ".join(selectors)


class FrameQueryEngine:
    """
    Runs selector queries across a page and every nested frame in it.

    Frames are visited depth-first, parent before children. A frame that
    fails (detached, navigating, not yet attached) is skipped and the
    traversal goes on with the rest. Queries never modify the page.
    Returned handles pin their nodes in the page until released, so every
    caller hands them back to release() once it is done with them.
    """

    def iter_frames(self, page: Page) -> Iterator[Frame]:
        def walk(frame: Frame) -> Iterator[Frame]:
            yield frame
            try:
                children = list(frame.child_frames)
            except PlaywrightError as e:
                logger.debug(f"Skipping children of frame {frame.url!r}: {e}")
                return
            for child in children:
                if child.is_detached():
                    continue
                yield from walk(child)

        yield from walk(page.main_frame)

    async def query_all(self, page: Page, selectors: Selectors) -> List[ElementHandle]:
        """Concatenated matches from every frame.

        Several selectors are combined into one selector list, so within a
        frame each element is returned once even if more than one selector
        matches it. Elements from different frames are always distinct.
        """
        group = _selector_group(selectors)
        results: List[ElementHandle] = []
        for frame in self.iter_frames(page):
            try:
                results.extend(await frame.query_selector_all(group))
            except PlaywrightError as e:
                logger.debug(f"Query {group!r} failed in frame {frame.url!r}, skipping: {e}")
        return results

    async def release(self, handles: Iterable[ElementHandle]):
        """Dispose handles returned by a query so the page can collect their nodes."""
        for handle in handles:
            try:
                await handle.dispose()
            except PlaywrightError as e:
                logger.debug(f"Could not dispose element handle: {e}")

    async def collect_texts(self, page: Page, selector: str) -> List[str]:
        """Trimmed text content of every match, across all frames."""
        texts: List[str] = []
        for frame in self.iter_frames(page):
            try:
                texts.extend(await frame.eval_on_selector_all(selector, TEXTS_SCRIPT))
            except PlaywrightError as e:
                logger.debug(f"Text query {selector!r} failed in frame {frame.url!r}, skipping: {e}")
        return texts

    async def first_match(self, page: Page, selectors: Sequence[str]) -> Tuple[Optional[str], List[ElementHandle]]:
        """Try selectors in priority order; return the first one with results."""
        for selector in selectors:
            found = await self.query_all(page, selector)
            if found:
                return selector, found
        return None, []
