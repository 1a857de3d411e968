import pytest

from automation_config import AutomationConfig, Constants, normalize_banned_commands, normalize_poll_interval, port_window
from selector_registry import CyclingStrategy, Environment, registry_for


def test_port_window_goes_outward_from_default():
    assert port_window(9000, 3) == [9000, 9001, 8999, 9002, 8998, 9003, 8997]
    assert port_window(1, 2) == [1, 2, 3]


@pytest.mark.parametrize("value,expected", [
    (50, Constants.POLL_MIN),
    (100, 100),
    (750, 750),
    (2000, 2000),
    (60000, Constants.POLL_MAX),
    ("400", 400),
    ("fast", Constants.POLL_DEFAULT),
    (None, Constants.POLL_DEFAULT),
])
def test_normalize_poll_interval(value, expected):
    assert normalize_poll_interval(value) == expected


def test_normalize_banned_commands():
    assert normalize_banned_commands("rm -rf /") == []
    assert normalize_banned_commands(None) == []
    assert normalize_banned_commands(["rm -rf /", None, "", "mkfs."]) == ["rm -rf /", "mkfs."]
    assert normalize_banned_commands(("dd if=",)) == ["dd if="]


def test_default_config():
    config = AutomationConfig()
    assert config.poll_interval == 0.3
    assert config.banned_commands == Constants.DEFAULT_BANNED_COMMANDS


@pytest.mark.parametrize("app_name,expected", [
    ("Cursor", Environment.CURSOR),
    ("Google Antigravity", Environment.ANTIGRAVITY),
    ("Visual Studio Code", Environment.CODE),
    ("", Environment.CODE),
])
def test_environment_detection(app_name, expected):
    assert Environment.detect(app_name) is expected


def test_environment_parse_accepts_names_and_app_names():
    assert Environment.parse("antigravity") is Environment.ANTIGRAVITY
    assert Environment.parse(" CURSOR ") is Environment.CURSOR
    assert Environment.parse("Cursor Nightly") is Environment.CURSOR


def test_registries():
    antigravity = registry_for(Environment.ANTIGRAVITY)
    assert antigravity.strategy is CyclingStrategy.PANEL_TOGGLE
    assert antigravity.accept_buttons[0] == ".bg-ide-button-background"
    assert "button" in antigravity.accept_buttons
    assert registry_for(Environment.CURSOR).strategy is CyclingStrategy.LIST
