import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Tuple

from selector_registry import Environment

logger = logging.getLogger("AutoAccept.Config")


# Constants
class Constants:
    # Ports
    DEFAULT_PORT = 9000
    PORT_OFFSET = 3

    # Timeouts (in milliseconds)
    TIMEOUT_PROBE = 500
    TIMEOUT_CONNECT = 5_000

    # Poll frequency of the click loop (in milliseconds)
    POLL_DEFAULT = 300
    POLL_MIN = 100
    POLL_MAX = 2000

    # Loop delays (in seconds)
    SYNC_INTERVAL = 5.0
    SETTLE_DELAY = 1.5
    CYCLE_DELAY = 3.0

    # Consecutive empty tab cycles before stale selectors are reported
    NO_TAB_WARNING_CYCLES = 5

    # Candidates with longer text are content blocks, not buttons
    MAX_CANDIDATE_TEXT = 50

    # Bumped whenever the in-page helper changes shape
    PAYLOAD_VERSION = 3

    # Payload injection gets one immediate second try; later retries wait for the next sync
    RETRY_STOP_ATTEMPTS = 2

    DEFAULT_BANNED_COMMANDS = (
        'rm -rf /',
        'rm -rf ~',
        'rm -rf *',
        'format c:',
        'del /f /s /q',
        'rmdir /s /q',
        ':(){:|:&};:',
        'dd if=',
        'mkfs.',
        '> /dev/sda',
        'chmod -R 777 /',
    )


class Mode(Enum):
    SIMPLE = "simple"
    BACKGROUND = "background"


@dataclass(frozen=True)
class Timings:
    """Delays used by the background scheduler, in seconds."""
    settle: float = Constants.SETTLE_DELAY
    cycle: float = Constants.CYCLE_DELAY
    sync: float = Constants.SYNC_INTERVAL


@dataclass(frozen=True)
class AutomationConfig:
    """Configuration snapshot recorded when a session starts."""
    mode: Mode = Mode.SIMPLE
    environment: Environment = Environment.CODE
    poll_interval_ms: int = Constants.POLL_DEFAULT
    banned_commands: Tuple[str, ...] = field(default_factory=lambda: Constants.DEFAULT_BANNED_COMMANDS)

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000


def port_window(default_port: int = Constants.DEFAULT_PORT, offset: int = Constants.PORT_OFFSET) -> List[int]:
    """Ports probed for the debugging endpoint, default first, then outward."""
    ports = [default_port]
    for delta in range(1, offset + 1):
        ports.extend([default_port + delta, default_port - delta])
    return [p for p in ports if 0 < p < 65536]


def normalize_poll_interval(value: Any) -> int:
    try:
        interval = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric poll frequency {value!r}, using {Constants.POLL_DEFAULT}ms")
        return Constants.POLL_DEFAULT
    clamped = max(Constants.POLL_MIN, min(Constants.POLL_MAX, interval))
    if clamped != interval:
        logger.info(f"Poll frequency {interval}ms clamped to {clamped}ms")
    return clamped


def normalize_banned_commands(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        if value is not None:
            logger.warning(f"Banned commands must be a list, got {type(value).__name__}; using an empty list")
        return []
    return [item for item in value if isinstance(item, str) and item]
