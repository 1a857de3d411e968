import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from cdp_connection import ConnectionManager
from selector_registry import Environment

logger = logging.getLogger("AutoAccept.Relauncher")

DEBUG_FLAG = "--remote-debugging-port"


class EndpointEnabler(Protocol):
    """Platform-specific steps that add the debugging flag to the editor's launch configuration."""

    def enable(self, environment: Environment, port: int) -> bool:
        ...


# Shows the message to the user and restarts the editor only if they agree.
RestartConfirmer = Callable[[str], bool]


@dataclass
class EnablementResult:
    enabled: bool
    restart_requested: bool = False


def has_debug_flag(launch_args: Optional[Sequence[str]], port: int) -> bool:
    """Accepts both '--remote-debugging-port=9000' and '--remote-debugging-port 9000'."""
    args = list(launch_args or ())
    for i, arg in enumerate(args):
        if arg == f"{DEBUG_FLAG}={port}":
            return True
        if arg == DEBUG_FLAG and i + 1 < len(args) and args[i + 1] == str(port):
            return True
    return False


class AvailabilityProbe:
    def __init__(self, connections: ConnectionManager, environment: Environment,
                 enabler: Optional[EndpointEnabler] = None,
                 confirm_restart: Optional[RestartConfirmer] = None,
                 launch_args: Optional[Sequence[str]] = None):
        self.connections = connections
        self.environment = environment
        self.enabler = enabler
        self.confirm_restart = confirm_restart
        self.launch_args = launch_args

    @property
    def port(self) -> int:
        return self.connections.ports[0]

    @property
    def editor_name(self) -> str:
        return self.environment.value.capitalize()

    async def is_available(self) -> bool:
        return await self.connections.is_available()

    async def _request_restart(self, message: str) -> bool:
        if self.confirm_restart is None:
            logger.info(message)
            return False
        return bool(await asyncio.to_thread(self.confirm_restart, message))

    async def ensure_endpoint_enabled(self) -> EnablementResult:
        if await self.is_available():
            return EnablementResult(enabled=True)

        if has_debug_flag(self.launch_args, self.port):
            logger.info("Debugging flag present but port inactive. Prompting for restart.")
            restart = await self._request_restart(
                f"The debugging flag is present, but port {self.port} is not responding. "
                f"Please completely close and restart {self.editor_name}."
            )
            return EnablementResult(enabled=True, restart_requested=restart)

        if self.enabler is None:
            logger.warning(
                f"Cannot enable the debugging endpoint automatically. Add --remote-debugging-port={self.port} "
                f"to your {self.editor_name} shortcut manually, then restart."
            )
            return EnablementResult(enabled=False)

        logger.info(f"Debugging flag missing. Enabling port {self.port} for {self.editor_name}...")
        try:
            enabled = bool(await asyncio.to_thread(self.enabler.enable, self.environment, self.port))
        except Exception as e:
            logger.error(f"Enabling the debugging endpoint failed: {e}")
            return EnablementResult(enabled=False)
        if not enabled:
            return EnablementResult(enabled=False)

        restart = await self._request_restart(
            f"The debugging endpoint is configured. Restart {self.editor_name} completely for it to take effect."
        )
        return EnablementResult(enabled=True, restart_requested=restart)
