import os
import subprocess
import sys

from auto_accept_cli import EXIT_UNAVAILABLE, parse_args

CLI = os.path.join(os.path.dirname(__file__), "..", "src", "auto_accept_cli.py")


def test_parse_args_defaults():
    args = parse_args([])
    assert args.ide == "code"
    assert args.frequency == 300
    assert args.port == 9000
    assert args.banned is None
    assert not args.background


def test_parse_args_repeatable_banned_patterns():
    args = parse_args(["--ide", "cursor", "-b", "--banned", "rm -rf /", "--banned", "dd if=", "-f", "500"])
    assert args.banned == ["rm -rf /", "dd if="]
    assert args.background
    assert args.frequency == 500


def test_check_reports_unreachable_endpoint():
    result = subprocess.run(
        [sys.executable, CLI, "--check", "--port", "47391"],
        capture_output=True, text=True, timeout=60,
    )
    assert result.returncode == EXIT_UNAVAILABLE
    assert "not reachable" in result.stdout
