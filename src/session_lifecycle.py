import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Coroutine, Dict, Optional

from automation_config import AutomationConfig

logger = logging.getLogger("AutoAccept.Lifecycle")


@dataclass
class Session:
    session_id: int
    config: AutomationConfig
    running: bool = True


class AutomationContext:
    """
    State shared by every component of one automation engine.

    The current session id is the cancellation token: a loop captures the
    id it was started with and exits as soon as it no longer matches.
    Only SessionLifecycle mutates the session fields; the counters are
    updated by the loops that perform clicks.
    """

    def __init__(self):
        self.current_session_id = 0
        self.session: Optional[Session] = None
        self.click_count = 0
        self.away_action_count = 0
        self.focused = True

    def is_current(self, session_id: int) -> bool:
        return (
            self.session is not None
            and self.session.running
            and self.session.session_id == session_id
            and self.current_session_id == session_id
        )

    def record_clicks(self, count: int):
        if count <= 0:
            return
        self.click_count += count
        if not self.focused:
            self.away_action_count += count

    def set_focused(self, focused: bool):
        if self.focused and not focused:
            self.away_action_count = 0
        self.focused = focused


class SessionLifecycle:
    """Start/stop of automation sessions and the loop tasks they own."""

    def __init__(self, context: AutomationContext):
        self.context = context
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return self.context.session is not None and self.context.session.running

    @property
    def session(self) -> Optional[Session]:
        return self.context.session if self.running else None

    def start(self, config: AutomationConfig) -> int:
        if self.running:
            logger.info("Already running, stopping first...")
            self.stop()
        self.context.current_session_id += 1
        session = Session(session_id=self.context.current_session_id, config=config)
        self.context.session = session
        logger.info(
            f"Starting session {session.session_id}: {config.mode.value} mode for {config.environment.value} "
            f"(poll {config.poll_interval_ms}ms, {len(config.banned_commands)} banned patterns)"
        )
        return session.session_id

    def stop(self):
        session = self.context.session
        if session is None or not session.running:
            return
        session.running = False
        # Outstanding activations are not awaited; cancelling only clears the timers.
        for name, task in self._tasks.items():
            if not task.done():
                task.cancel()
                logger.debug(f"Cancelled {name} loop of session {session.session_id}")
        self._tasks.clear()
        logger.info(f"Session {session.session_id} stopped")

    def update_config(self, **changes) -> AutomationConfig:
        """Replace fields of the running session's snapshot without a new session id."""
        session = self.session
        if session is None:
            raise RuntimeError("No running session to update.")
        session.config = replace(session.config, **changes)
        return session.config

    def spawn(self, name: str, factory: Callable[[Session], Coroutine]) -> asyncio.Task:
        """Run a loop owned by the current session, replacing any loop with the same name."""
        session = self.session
        if session is None:
            raise RuntimeError("Cannot spawn a loop without a running session.")
        previous = self._tasks.pop(name, None)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.get_running_loop().create_task(
            factory(session), name=f"{name}-{session.session_id}"
        )
        self._tasks[name] = task
        return task

    def has_task(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    async def repeat(self, session: Session, interval: Callable[[], float], body: Callable[[], Awaitable[None]], name: str):
        """Fixed-interval loop that lives exactly as long as its session is current.

        A failing iteration is logged and the loop goes on with the next one.
        """
        iteration = 0
        while self.context.is_current(session.session_id):
            iteration += 1
            try:
                await body()
            except Exception:
                logger.exception(f"{name} loop iteration {iteration} of session {session.session_id} failed")
            await asyncio.sleep(interval())
        logger.debug(f"{name} loop of session {session.session_id} exited after {iteration} iterations")
