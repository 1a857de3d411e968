import time

import pytest
import requests

import cdp_connection
from automation_config import Constants
from cdp_connection import ConnectionManager
from fakes import FakeBrowser, FakeFrame, FakePage


class FakeResponse:
    ok = True


def attached_manager(*pages):
    manager = ConnectionManager()
    manager.browser = FakeBrowser(pages)
    manager.port = 9000
    manager.probe = lambda: 9000
    return manager


def test_probe_walks_port_window_in_order(monkeypatch):
    requested = []

    def fake_get(url, timeout):
        requested.append(url)
        if ":9001/" in url:
            return FakeResponse()
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(cdp_connection.requests, "get", fake_get)

    assert ConnectionManager().probe() == 9001
    assert requested == [
        "http://127.0.0.1:9000/json/version",
        "http://127.0.0.1:9001/json/version",
    ]


def test_probe_reports_none_when_nothing_answers(monkeypatch):
    requested = []

    def fake_get(url, timeout):
        requested.append(url)
        raise requests.Timeout("no answer")

    monkeypatch.setattr(cdp_connection.requests, "get", fake_get)

    assert ConnectionManager(default_port=9000, offset=1).probe() is None
    assert len(requested) == 3


@pytest.mark.asyncio
async def test_unreachable_endpoint_is_reported_not_raised():
    manager = ConnectionManager()
    manager.probe = lambda: None

    result = await manager.ensure_attached()

    assert not result.available
    assert result.connection_count == 0
    assert not await manager.is_available()


@pytest.mark.asyncio
async def test_repeated_sync_injects_each_frame_once():
    child = FakeFrame(url="webview")
    main = FakeFrame(url="workbench", children=[child])
    manager = attached_manager(FakePage(main))

    first = await manager.ensure_attached()
    evaluations = len(main.evaluations) + len(child.evaluations)
    second = await manager.ensure_attached()

    assert first.available and second.available
    assert second.connection_count == 1
    assert manager.injection_count == 2
    assert len(main.evaluations) + len(child.evaluations) == evaluations
    assert main.payload_version == child.payload_version == Constants.PAYLOAD_VERSION


@pytest.mark.asyncio
async def test_frame_with_current_payload_is_left_alone():
    frame = FakeFrame(payload_version=Constants.PAYLOAD_VERSION)
    manager = attached_manager(FakePage(frame))

    await manager.ensure_attached()

    assert manager.injection_count == 0
    assert cdp_connection.PAYLOAD_SCRIPT not in frame.evaluations


@pytest.mark.asyncio
async def test_navigated_frame_is_instrumented_again():
    frame = FakeFrame()
    page = FakePage(frame)
    manager = attached_manager(page)
    await manager.ensure_attached()

    frame.payload_version = None
    page.emit("framenavigated", frame)
    await manager.ensure_attached()

    assert manager.injection_count == 2


@pytest.mark.asyncio
async def test_closed_page_is_dropped():
    kept, closed = FakePage(), FakePage()
    manager = attached_manager(kept, closed)
    assert (await manager.ensure_attached()).connection_count == 2

    closed.close()
    result = await manager.ensure_attached()

    assert result.connection_count == 1
    assert [s.page for s in manager.surfaces()] == [kept]


@pytest.mark.asyncio
async def test_failing_frame_does_not_block_other_frames():
    healthy = FakeFrame(url="healthy")
    main = FakeFrame(url="workbench", children=[FakeFrame(url="broken", fail=True), healthy])
    manager = attached_manager(FakePage(main))

    result = await manager.ensure_attached()

    assert result.available
    assert manager.injection_count == 2
    assert healthy.payload_version == Constants.PAYLOAD_VERSION


@pytest.mark.asyncio
async def test_close_releases_browser():
    manager = attached_manager(FakePage())
    browser = manager.browser
    await manager.ensure_attached()

    await manager.close()

    assert not browser.is_connected()
    assert manager.browser is None
    assert manager.surfaces() == []


@pytest.mark.asyncio
async def test_failing_frame_waits_for_next_sync():
    broken = FakeFrame(url="broken", fail=True)
    manager = attached_manager(FakePage(FakeFrame(url="workbench", children=[broken])))

    started = time.monotonic()
    await manager.ensure_attached()
    elapsed = time.monotonic() - started

    assert elapsed < 0.5
    assert broken.attempts == Constants.RETRY_STOP_ATTEMPTS

    await manager.ensure_attached()
    assert broken.attempts == 2 * Constants.RETRY_STOP_ATTEMPTS


@pytest.mark.asyncio
async def test_payload_version_only_recorded_when_a_frame_is_instrumented():
    failing = FakePage(FakeFrame(fail=True))
    working = FakePage(FakeFrame())
    manager = attached_manager(failing, working)

    await manager.ensure_attached()

    versions = {s.page: s.payload_version for s in manager.surfaces()}
    assert versions[failing] is None
    assert versions[working] == Constants.PAYLOAD_VERSION
