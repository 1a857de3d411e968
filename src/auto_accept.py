import logging
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from automation_config import (
    AutomationConfig, Constants, Mode, Timings, normalize_banned_commands, normalize_poll_interval,
)
from background_scheduler import BackgroundScheduler, TabDescriptor, make_cycler
from cdp_connection import AttachmentResult, ConnectionManager
from control_matcher import ControlMatcher
from frame_query import FrameQueryEngine
from relauncher import AvailabilityProbe, EnablementResult, EndpointEnabler, RestartConfirmer
from selector_registry import ANTIGRAVITY_TABS, CURSOR_TABS, Environment, registry_for
from session_lifecycle import AutomationContext, Session, SessionLifecycle

logger = logging.getLogger("AutoAccept")

PANEL_MIN_WIDTH = 50


class AutoAccept:
    """
    Host-side controller: owns one automation context and wires the
    connection manager, matcher, scheduler and lifecycle together.
    """
    context: AutomationContext
    lifecycle: SessionLifecycle
    connections: ConnectionManager
    matcher: ControlMatcher
    probe: AvailabilityProbe
    scheduler: Optional[BackgroundScheduler]
    enabled: bool

    def __init__(self, *args, **kwargs):
        raise RuntimeError(
            "Direct instantiation is not supported. "
            "Use 'await AutoAccept.create(...)' instead."
        )

    @classmethod
    async def create(cls, environment: Environment = Environment.CODE, port: int = Constants.DEFAULT_PORT,
                     poll_frequency: Any = Constants.POLL_DEFAULT, banned_commands: Any = None,
                     background_mode: bool = False, timings: Optional[Timings] = None,
                     connections: Optional[ConnectionManager] = None,
                     enabler: Optional[EndpointEnabler] = None,
                     confirm_restart: Optional[RestartConfirmer] = None,
                     launch_args: Optional[Sequence[str]] = None):
        """Create an AutoAccept instance and report whether the endpoint is reachable."""
        self = object.__new__(cls)
        self.context = AutomationContext()
        self.lifecycle = SessionLifecycle(self.context)
        self.query = FrameQueryEngine()
        self.connections = connections or ConnectionManager(port, query=self.query)
        self.matcher = ControlMatcher(self.context, self.query)
        self.environment = environment
        self.registry = registry_for(environment)
        self.probe = AvailabilityProbe(self.connections, environment, enabler, confirm_restart, launch_args)
        self.timings = timings or Timings()
        self.scheduler = None
        self.enabled = False
        self.poll_frequency = normalize_poll_interval(poll_frequency)
        self._banned_commands = (
            list(Constants.DEFAULT_BANNED_COMMANDS) if banned_commands is None
            else normalize_banned_commands(banned_commands)
        )
        self.background_mode = bool(background_mode)
        self._warned_no_tabs = False

        available = await self.probe.is_available()
        logger.info(f"Detected environment: {environment.value.upper()}, debugging endpoint available = {available}")
        if not available:
            logger.info(f"Debugging endpoint not found on ports {self.connections.ports}.")
        return self

    # === Status accessors ===

    @property
    def banned_commands(self) -> List[str]:
        return list(self._banned_commands)

    @property
    def connection_count(self) -> int:
        return self.connections.connection_count

    @property
    def away_action_count(self) -> int:
        return self.context.away_action_count

    @property
    def click_count(self) -> int:
        return self.context.click_count

    @property
    def session_id(self) -> int:
        return self.context.current_session_id

    @property
    def no_tab_cycles(self) -> int:
        return self.scheduler.no_tab_cycles if self.scheduler else 0

    def tab_report(self) -> Dict[str, List[TabDescriptor]]:
        return self.scheduler.report() if self.scheduler else {}

    def config(self) -> AutomationConfig:
        return AutomationConfig(
            mode=Mode.BACKGROUND if self.background_mode else Mode.SIMPLE,
            environment=self.environment,
            poll_interval_ms=self.poll_frequency,
            banned_commands=tuple(self._banned_commands),
        )

    # === Host shell operations ===

    async def set_enabled(self, enabled: bool):
        self.enabled = bool(enabled)
        if self.enabled:
            logger.info("Auto Accept: Enabled")
            await self.sync()
            self._start_session()
        else:
            logger.info("Auto Accept: Disabled")
            self.lifecycle.stop()

    async def toggle(self) -> bool:
        await self.set_enabled(not self.enabled)
        return self.enabled

    async def set_poll_frequency(self, value: Any) -> int:
        self.poll_frequency = normalize_poll_interval(value)
        logger.info(f"Poll frequency updated to: {self.poll_frequency}ms")
        if self.lifecycle.running:
            self.lifecycle.update_config(poll_interval_ms=self.poll_frequency)
            self.lifecycle.spawn("click", self._click_loop)
        return self.poll_frequency

    async def set_banned_commands(self, commands: Any) -> List[str]:
        self._banned_commands = normalize_banned_commands(commands)
        logger.info(f"Banned commands updated: {len(self._banned_commands)} patterns")
        if self._banned_commands:
            preview = ', '.join(self._banned_commands[:5])
            logger.info(f"Banned patterns: {preview}{'...' if len(self._banned_commands) > 5 else ''}")
        if self.enabled:
            self._start_session()
        return self.banned_commands

    async def set_background_mode(self, enabled: bool):
        self.background_mode = bool(enabled)
        logger.info(f"Background mode toggled: {self.background_mode}")
        if self.enabled:
            self._start_session()

    def set_focus_state(self, focused: bool):
        self.context.set_focused(focused)
        if focused and self.enabled and self.away_action_count > 0:
            logger.info(f"Auto Accept handled {self.away_action_count} action(s) while you were away.")

    async def is_available(self) -> bool:
        return await self.probe.is_available()

    async def ensure_endpoint_enabled(self) -> EnablementResult:
        return await self.probe.ensure_endpoint_enabled()

    # === Session and loops ===

    def _start_session(self):
        session_id = self.lifecycle.start(self.config())
        self._warned_no_tabs = False
        self.scheduler = None
        self.lifecycle.spawn("sync", self._sync_loop)
        self.lifecycle.spawn("click", self._click_loop)
        if self.background_mode:
            self.scheduler = BackgroundScheduler(
                self.context,
                make_cycler(self.context, self.query, self.matcher, self.registry, self.timings),
                self.connections.surfaces,
                self.timings,
            )
            self.lifecycle.spawn("tabs", self.scheduler.run)
        return session_id

    async def sync(self) -> AttachmentResult:
        result = await self.connections.ensure_attached()
        if not result.available:
            logger.debug("Debugging endpoint not reachable; will retry on the next sync")
        if self.scheduler and self.scheduler.no_tab_cycles >= Constants.NO_TAB_WARNING_CYCLES:
            if not self._warned_no_tabs:
                logger.warning(
                    f"No tabs found for {self.scheduler.no_tab_cycles} cycles; selectors may be stale"
                )
                self._warned_no_tabs = True
        else:
            self._warned_no_tabs = False
        return result

    async def click_once(self, session: Session) -> int:
        clicked = 0
        for surface in self.connections.surfaces():
            if not self.context.is_current(session.session_id):
                break
            try:
                clicked += await self.matcher.find_and_activate(
                    surface.page, self.registry, session.config.banned_commands, session.session_id
                )
            except PlaywrightError as e:
                logger.debug(f"Click pass failed on surface {surface.key}: {e}")
        self.context.record_clicks(clicked)
        return clicked

    async def _click_loop(self, session: Session):
        await self.lifecycle.repeat(
            session, lambda: session.config.poll_interval, lambda: self.click_once(session), "click"
        )

    async def _sync_loop(self, session: Session):
        await self.lifecycle.repeat(session, lambda: self.timings.sync, self.sync, "sync")

    # === Diagnostics ===

    async def probe_selectors(self) -> List[Dict[str, Any]]:
        """Which selectors currently match on each attached surface."""
        reports = []
        for surface in self.connections.surfaces():
            page = surface.page
            report: Dict[str, Any] = {'surface': surface.key, 'url': page.url, 'tabs': None, 'buttons': {}, 'panel': None}

            selector, tabs = await self.query.first_match(page, CURSOR_TABS)
            if selector:
                report['tabs'] = {'selector': selector, 'count': len(tabs), 'type': Environment.CURSOR.value}
            else:
                selector, tabs = await self.query.first_match(page, ANTIGRAVITY_TABS)
                if selector:
                    report['tabs'] = {'selector': selector, 'count': len(tabs), 'type': Environment.ANTIGRAVITY.value}
            await self.query.release(tabs)

            for selector in registry_for(Environment.ANTIGRAVITY).accept_buttons:
                found = await self.query.query_all(page, selector)
                if found:
                    report['buttons'][selector] = len(found)
                await self.query.release(found)

            for selector in self.registry.panels:
                panels = await self.query.query_all(page, selector)
                try:
                    for panel in panels:
                        try:
                            width = await panel.evaluate("el => el.offsetWidth")
                        except PlaywrightError:
                            continue
                        if width > PANEL_MIN_WIDTH:
                            report['panel'] = selector
                            break
                finally:
                    await self.query.release(panels)
                if report['panel']:
                    break
            reports.append(report)
        return reports

    async def close(self):
        logger.info('Closing Auto Accept...')
        self.enabled = False
        self.lifecycle.stop()
        await self.connections.close()
        logger.info('Auto Accept closed.')
