"""
Selector registry for the supported editors.

Every CSS selector used by the automation lives here; no other module
hardcodes selectors. Each role maps to one or more query expressions that
are tried in priority order where the role allows fallbacks.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class Environment(Enum):
    CURSOR = "cursor"
    ANTIGRAVITY = "antigravity"
    CODE = "code"

    @classmethod
    def detect(cls, app_name: str) -> "Environment":
        """Identify the editor from its application name."""
        name = (app_name or "").lower()
        if "cursor" in name:
            return cls.CURSOR
        if "antigravity" in name:
            return cls.ANTIGRAVITY
        return cls.CODE

    @classmethod
    def parse(cls, value: str) -> "Environment":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.detect(value)


class CyclingStrategy(Enum):
    LIST = "list"
    PANEL_TOGGLE = "panel-toggle"


# Button text patterns, matched against trimmed lower-cased text.
ACCEPT_PATTERNS = ('accept', 'run', 'retry', 'apply', 'execute', 'confirm', 'allow once', 'allow')
REJECT_PATTERNS = ('skip', 'reject', 'cancel', 'close', 'refine')

PANELS = (
    r'#antigravity\.agentPanel',
    r'#workbench\.parts\.auxiliarybar',
    '.auxiliary-bar-container',
    r'#workbench\.parts\.sidebar',
)

CURSOR_TABS = (
    r'#workbench\.parts\.auxiliarybar ul[role="tablist"] li[role="tab"]',
    '.monaco-pane-view .monaco-list-row[role="listitem"]',
    'div[role="tablist"] div[role="tab"]',
    '.chat-session-item',
)
ANTIGRAVITY_TABS = ('button.grow',)

CURSOR_BUTTONS = ('button', '[class*="button"]', '[class*="anysphere"]')
ANTIGRAVITY_BUTTONS = ('.bg-ide-button-background',)

NEW_CONVERSATION = "[data-tooltip-id='new-conversation-tooltip']"

BADGE_TAG = 'span'
BADGE_TEXTS = ('Good', 'Bad')

ERROR_BADGES = '.codicon-error, .codicon-warning, [class*="marker-count"]'
ERROR_SQUIGGLES = '.squiggly-error, .monaco-editor .squiggly-error'

COMMAND_ELEMENTS = ('pre', 'code', 'pre code')


@dataclass(frozen=True)
class SelectorRegistry:
    environment: Environment
    strategy: CyclingStrategy
    tabs: Tuple[str, ...]
    accept_buttons: Tuple[str, ...]
    panels: Tuple[str, ...] = PANELS
    new_conversation: str = NEW_CONVERSATION
    badge_tag: str = BADGE_TAG
    badge_texts: Tuple[str, ...] = BADGE_TEXTS
    error_badges: str = ERROR_BADGES
    error_squiggles: str = ERROR_SQUIGGLES
    command_elements: Tuple[str, ...] = COMMAND_ELEMENTS
    accept_patterns: Tuple[str, ...] = ACCEPT_PATTERNS
    reject_patterns: Tuple[str, ...] = REJECT_PATTERNS


_CURSOR = SelectorRegistry(
    environment=Environment.CURSOR,
    strategy=CyclingStrategy.LIST,
    tabs=CURSOR_TABS,
    accept_buttons=CURSOR_BUTTONS,
)

_REGISTRIES = {
    Environment.CURSOR: _CURSOR,
    Environment.CODE: SelectorRegistry(
        environment=Environment.CODE,
        strategy=CyclingStrategy.LIST,
        tabs=CURSOR_TABS,
        accept_buttons=CURSOR_BUTTONS,
    ),
    Environment.ANTIGRAVITY: SelectorRegistry(
        environment=Environment.ANTIGRAVITY,
        strategy=CyclingStrategy.PANEL_TOGGLE,
        tabs=ANTIGRAVITY_TABS,
        accept_buttons=ANTIGRAVITY_BUTTONS + CURSOR_BUTTONS,
    ),
}


def registry_for(environment: Environment) -> SelectorRegistry:
    return _REGISTRIES.get(environment, _CURSOR)
