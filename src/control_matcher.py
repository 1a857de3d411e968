import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from automation_config import Constants
from frame_query import FrameQueryEngine
from page_payload import DESCRIBE_CALL
from selector_registry import ACCEPT_PATTERNS, REJECT_PATTERNS, SelectorRegistry
from session_lifecycle import AutomationContext

logger = logging.getLogger("AutoAccept.Matcher")

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


@dataclass
class ElementSnapshot:
    """What the page reports about one candidate control."""
    text: str
    width: float = 0.0
    display: str = ''
    pointer_events: str = ''
    disabled: bool = False
    context: str = ''

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ElementSnapshot":
        return cls(
            text=data.get('text') or '',
            width=float(data.get('width') or 0),
            display=data.get('display') or '',
            pointer_events=data.get('pointerEvents') or '',
            disabled=bool(data.get('disabled')),
            context=data.get('context') or '',
        )

    @property
    def normalized_text(self) -> str:
        return self.text.strip().lower()

    @property
    def interactive(self) -> bool:
        return (
            self.width > 0
            and self.display != 'none'
            and self.pointer_events != 'none'
            and not self.disabled
        )


def matches_accept_text(text: str, accept_patterns: Sequence[str] = ACCEPT_PATTERNS,
                        reject_patterns: Sequence[str] = REJECT_PATTERNS) -> bool:
    """Text-only part of the classification; reject patterns win over accept patterns."""
    normalized = (text or '').strip().lower()
    if len(normalized) == 0 or len(normalized) > Constants.MAX_CANDIDATE_TEXT:
        return False
    if any(pattern in normalized for pattern in reject_patterns):
        return False
    return any(pattern in normalized for pattern in accept_patterns)


def is_activation_candidate(snapshot: ElementSnapshot, registry: Optional[SelectorRegistry] = None) -> bool:
    accept = registry.accept_patterns if registry else ACCEPT_PATTERNS
    reject = registry.reject_patterns if registry else REJECT_PATTERNS
    return matches_accept_text(snapshot.text, accept, reject) and snapshot.interactive


def find_banned_pattern(context: str, banned_commands: Sequence[str]) -> Optional[str]:
    """First banned pattern contained in the command context (case-sensitive)."""
    if not context:
        return None
    for pattern in banned_commands:
        if pattern and pattern in context:
            return pattern
    return None


def parse_badge_count(text: str) -> Optional[int]:
    match = _LEADING_INT.match(text or '')
    return int(match.group(1)) if match else None


async def activate(element: ElementHandle):
    """Dispatch a synthetic primary click; it bubbles and is cancelable."""
    await element.dispatch_event('click', {'button': 0})


class ControlMatcher:
    def __init__(self, context: AutomationContext, query: FrameQueryEngine):
        self.context = context
        self.query = query

    async def describe(self, element: ElementHandle, registry: SelectorRegistry) -> Optional[ElementSnapshot]:
        data = await element.evaluate(DESCRIBE_CALL, list(registry.command_elements))
        if data is None:
            # The frame has not received the payload yet; the next sync installs it.
            return None
        return ElementSnapshot.from_payload(data)

    async def find_and_activate(self, page: Page, registry: SelectorRegistry,
                                banned_commands: Sequence[str] = (),
                                session_id: Optional[int] = None) -> int:
        """Click every accept control on the page and return how many were clicked."""
        candidates = await self.query.query_all(page, registry.accept_buttons)
        clicked = 0
        try:
            for element in candidates:
                if session_id is not None and not self.context.is_current(session_id):
                    logger.debug(f"Session {session_id} superseded, abandoning batch")
                    break
                try:
                    snapshot = await self.describe(element, registry)
                    if snapshot is None or not is_activation_candidate(snapshot, registry):
                        continue
                    button_text = snapshot.text.strip()
                    banned = find_banned_pattern(snapshot.context, banned_commands)
                    if banned is not None:
                        logger.warning(f'Not clicking "{button_text}": command matches banned pattern {banned!r}')
                        continue
                    logger.info(f'Clicking: "{button_text}"')
                    await activate(element)
                    clicked += 1
                except PlaywrightError as e:
                    logger.debug(f"Activation failed for a candidate, continuing: {e}")
        finally:
            await self.query.release(candidates)
        return clicked

    async def has_blocking_errors(self, page: Page, registry: SelectorRegistry) -> bool:
        for text in await self.query.collect_texts(page, registry.error_badges):
            count = parse_badge_count(text)
            if count is not None and count > 0:
                return True
        squiggles = await self.query.collect_texts(page, registry.error_squiggles)
        return len(squiggles) > 0
