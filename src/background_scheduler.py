import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from automation_config import Timings
from control_matcher import ControlMatcher, activate
from frame_query import FrameQueryEngine
from page_payload import LABEL_CALL, TEXT_CALL
from selector_registry import CyclingStrategy, SelectorRegistry
from session_lifecycle import AutomationContext, Session

logger = logging.getLogger("AutoAccept.Scheduler")

_TIME_SUFFIX = re.compile(r'\s*\d+[smh]$')


class TabStatus(Enum):
    PENDING = "pending"
    DONE = "done"
    DONE_WITH_ERRORS = "done-with-errors"


@dataclass
class TabDescriptor:
    raw_name: str
    name: str
    status: TabStatus = TabStatus.PENDING
    badges_on_arrival: int = 0


def strip_time_suffix(text: str) -> str:
    """'Fix bug 5m' -> 'Fix bug'"""
    return _TIME_SUFFIX.sub('', (text or '').strip()).strip()


def deduplicate_names(names: Iterable[str]) -> List[str]:
    counts: Dict[str, int] = {}
    result = []
    for name in names:
        if name not in counts:
            counts[name] = 1
            result.append(name)
        else:
            counts[name] += 1
            result.append(f"{name} ({counts[name]})")
    return result


class TabStatusTracker:
    """
    Completion status per deduplicated tab name for one session.

    Descriptors are rebuilt from every fresh tab list; statuses survive
    across cycles and only ever move away from pending.
    """

    def __init__(self):
        self.tabs: List[TabDescriptor] = []
        self._status: Dict[str, TabStatus] = {}
        self._arrival_badges: Dict[str, int] = {}

    def update(self, raw_names: List[str]) -> List[TabDescriptor]:
        self.tabs = [
            TabDescriptor(
                raw_name=raw,
                name=name,
                status=self.status_of(name),
                badges_on_arrival=self._arrival_badges.get(name, 0),
            )
            for raw, name in zip(raw_names, deduplicate_names(raw_names))
        ]
        return self.tabs

    def status_of(self, name: str) -> TabStatus:
        return self._status.get(name, TabStatus.PENDING)

    def mark(self, name: str, status: TabStatus) -> bool:
        if status is TabStatus.PENDING or self.status_of(name) is not TabStatus.PENDING:
            return False
        self._status[name] = status
        for tab in self.tabs:
            if tab.name == name:
                tab.status = status
        logger.info(f'[TabLoop] Tab "{name}" marked {status.value}')
        return True

    def record_arrival(self, name: str, badge_count: int):
        self._arrival_badges[name] = badge_count
        for tab in self.tabs:
            if tab.name == name:
                tab.badges_on_arrival = badge_count


@dataclass
class SurfaceCycleState:
    index: int = 0
    cycle: int = 0
    no_tab_cycles: int = 0
    # Deduplicated name of the tab on screen, i.e. the one the next cycle leaves
    current_tab: Optional[str] = None
    tracker: TabStatusTracker = field(default_factory=TabStatusTracker)


class TabCycler:
    """One step of round-robin tab cycling on a single surface."""

    def __init__(self, context: AutomationContext, query: FrameQueryEngine, matcher: ControlMatcher,
                 registry: SelectorRegistry, timings: Timings):
        self.context = context
        self.query = query
        self.matcher = matcher
        self.registry = registry
        self.timings = timings

    async def _pause(self, session: Session, seconds: float) -> bool:
        await asyncio.sleep(seconds)
        return self.context.is_current(session.session_id)

    async def _reveal_tabs(self, page: Page, session: Session) -> bool:
        return True

    async def _find_tabs(self, page: Page) -> List[ElementHandle]:
        raise NotImplementedError

    async def _label(self, tab: ElementHandle) -> str:
        raise NotImplementedError

    async def _labels(self, tabs: List[ElementHandle]) -> List[str]:
        labels = []
        for tab in tabs:
            try:
                labels.append(await self._label(tab) or 'unnamed')
            except PlaywrightError as e:
                logger.debug(f"Could not read tab label: {e}")
                labels.append('unnamed')
        return labels

    async def badge_snapshot(self, page: Page) -> List[str]:
        texts = await self.query.collect_texts(page, self.registry.badge_tag)
        return [t for t in texts if t in self.registry.badge_texts]

    async def cycle(self, page: Page, state: SurfaceCycleState, session: Session) -> bool:
        """Run one cycle; False when the session was superseded part-way."""
        state.cycle += 1

        # Badges on screen now belong to the tab we are about to leave
        before = await self.badge_snapshot(page)
        has_errors = bool(before) and await self.matcher.has_blocking_errors(page, self.registry)
        logger.debug(f"[TabLoop] Cycle {state.cycle}: {len(before)} badges on current tab")

        if not await self._reveal_tabs(page, session):
            return False

        tabs = await self._find_tabs(page)
        try:
            if not tabs:
                state.no_tab_cycles += 1
                logger.info(f"[TabLoop] Cycle {state.cycle}: No tabs found (consecutive: {state.no_tab_cycles})")
            else:
                state.no_tab_cycles = 0

            descriptors = state.tracker.update(await self._labels(tabs))

            if state.current_tab is not None and before:
                status = TabStatus.DONE_WITH_ERRORS if has_errors else TabStatus.DONE
                state.tracker.mark(state.current_tab, status)

            if not tabs:
                state.current_tab = None
                return True

            position = state.index % len(tabs)
            target = descriptors[position]
            logger.info(f'[TabLoop] Cycle {state.cycle}: Switching to tab "{target.name[:40]}"')
            try:
                await activate(tabs[position])
            except PlaywrightError as e:
                # The previous tab stays on screen; the next cycle moves past this one
                logger.debug(f'[TabLoop] Cycle {state.cycle}: Could not switch to "{target.name[:40]}": {e}')
                return True
            finally:
                state.index += 1
            state.current_tab = target.name
        finally:
            await self.query.release(tabs)

        if not await self._pause(session, self.timings.settle):
            return False

        after = await self.badge_snapshot(page)
        state.tracker.record_arrival(target.name, len(after))
        logger.debug(f"[TabLoop] Cycle {state.cycle}: {len(descriptors)} tabs, {len(after)} badges after switch")
        return True


class ListTabCycler(TabCycler):
    """Tabs are always listed; the list is re-queried fresh every cycle."""

    async def _find_tabs(self, page: Page) -> List[ElementHandle]:
        selector, tabs = await self.query.first_match(page, self.registry.tabs)
        if selector:
            logger.debug(f"[TabLoop] {len(tabs)} tabs via {selector!r}")
        return tabs

    async def _label(self, tab: ElementHandle) -> str:
        return await tab.evaluate(LABEL_CALL)


class PanelToggleTabCycler(TabCycler):
    """The tab list is hidden until the new-conversation toggle reveals it."""

    async def _reveal_tabs(self, page: Page, session: Session) -> bool:
        toggles = await self.query.query_all(page, self.registry.new_conversation)
        try:
            if toggles:
                await activate(toggles[0])
        finally:
            await self.query.release(toggles)
        return await self._pause(session, self.timings.settle)

    async def _find_tabs(self, page: Page) -> List[ElementHandle]:
        return await self.query.query_all(page, self.registry.tabs)

    async def _label(self, tab: ElementHandle) -> str:
        return strip_time_suffix(await tab.evaluate(TEXT_CALL))


_CYCLERS = {
    CyclingStrategy.LIST: ListTabCycler,
    CyclingStrategy.PANEL_TOGGLE: PanelToggleTabCycler,
}


def make_cycler(context: AutomationContext, query: FrameQueryEngine, matcher: ControlMatcher,
                registry: SelectorRegistry, timings: Timings) -> TabCycler:
    return _CYCLERS[registry.strategy](context, query, matcher, registry, timings)


class BackgroundScheduler:
    """Cycles tabs on every attached surface for one background-mode session."""

    def __init__(self, context: AutomationContext, cycler: TabCycler,
                 surfaces: Callable[[], Iterable], timings: Timings):
        self.context = context
        self.cycler = cycler
        self.surfaces = surfaces
        self.timings = timings
        self.states: Dict[str, SurfaceCycleState] = {}

    @property
    def no_tab_cycles(self) -> int:
        return max((s.no_tab_cycles for s in self.states.values()), default=0)

    def report(self) -> Dict[str, List[TabDescriptor]]:
        return {key: list(state.tracker.tabs) for key, state in self.states.items()}

    async def run_cycle(self, session: Session) -> bool:
        surfaces = list(self.surfaces())
        live = {surface.key for surface in surfaces}
        for key in [k for k in self.states if k not in live]:
            logger.debug(f"[TabLoop] Dropping state of closed surface {key}")
            del self.states[key]

        for surface in surfaces:
            if not self.context.is_current(session.session_id):
                return False
            state = self.states.setdefault(surface.key, SurfaceCycleState())
            try:
                if not await self.cycler.cycle(surface.page, state, session):
                    return False
            except Exception:
                logger.exception(f"[TabLoop] Cycle {state.cycle} failed on surface {surface.key}")
        return self.context.is_current(session.session_id)

    async def run(self, session: Session):
        logger.info(f"[TabLoop] {self.cycler.registry.environment.value} tab cycling started")
        while self.context.is_current(session.session_id):
            if not await self.run_cycle(session):
                break
            await asyncio.sleep(self.timings.cycle)
        logger.info(f"[TabLoop] {self.cycler.registry.environment.value} tab cycling stopped")
