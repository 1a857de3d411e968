"""Minimal stand-ins for the parts of the Playwright async API the engine uses."""
from playwright.async_api import Error as PlaywrightError

from page_payload import DESCRIBE_CALL, LABEL_CALL, PAYLOAD_SCRIPT, TEXT_CALL, VERSION_PROBE


class FakeElement:
    def __init__(self, text='', matches=(), width=40.0, display='block', pointer_events='auto',
                 disabled=False, context='', label=None, on_click=None, fail_click=False, instrumented=True):
        self.text = text
        self.matches = set(matches)
        self.width = width
        self.display = display
        self.pointer_events = pointer_events
        self.disabled = disabled
        self.context = context
        self.label = label
        self.on_click = on_click
        self.fail_click = fail_click
        self.instrumented = instrumented
        self.events = []
        self.disposed = 0

    @property
    def clicks(self):
        return len(self.events)

    async def evaluate(self, script, arg=None):
        if script == DESCRIBE_CALL:
            if not self.instrumented:
                return None
            return {
                'text': self.text,
                'width': self.width,
                'display': self.display,
                'pointerEvents': self.pointer_events,
                'disabled': self.disabled,
                'context': self.context,
            }
        if script == LABEL_CALL:
            return self.label or self.text.strip()
        if script == TEXT_CALL:
            return self.text.strip()
        if 'offsetWidth' in script:
            return self.width
        raise AssertionError(f"unexpected script: {script}")

    async def dispose(self):
        self.disposed += 1

    async def dispatch_event(self, type, event_init=None):
        if self.fail_click:
            raise PlaywrightError("Element is not attached to the DOM")
        self.events.append((type, event_init))
        if self.on_click:
            self.on_click(self)


class FakeFrame:
    def __init__(self, elements=(), children=(), url='about:blank', fail=False, detached=False, payload_version=None):
        self.elements = list(elements)
        self.child_frames = list(children)
        self.url = url
        self.fail = fail
        self.detached = detached
        self.payload_version = payload_version
        self.evaluations = []
        self.attempts = 0

    def is_detached(self):
        return self.detached

    async def query_selector_all(self, group):
        if self.fail:
            raise PlaywrightError("Frame was detached")
        selectors = {s.strip() for s in group.split(', ')}
        return [el for el in self.elements if el.matches & selectors]

    async def eval_on_selector_all(self, selector, script):
        return [el.text.strip() for el in await self.query_selector_all(selector)]

    async def evaluate(self, script, arg=None):
        self.attempts += 1
        if self.fail:
            raise PlaywrightError("Execution context was destroyed")
        self.evaluations.append(script)
        if script == VERSION_PROBE:
            return self.payload_version
        if script == PAYLOAD_SCRIPT:
            if self.payload_version == arg:
                return False
            self.payload_version = arg
            return True
        raise AssertionError(f"unexpected script: {script}")


class FakePage:
    def __init__(self, main_frame=None, url='vscode-file://workbench.html'):
        self.main_frame = main_frame or FakeFrame()
        self.url = url
        self.closed = False
        self.handlers = {}

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, arg):
        for handler in self.handlers.get(event, []):
            handler(arg)

    def is_closed(self):
        return self.closed

    def close(self):
        self.closed = True
        self.emit('close', self)


class FakeContext:
    def __init__(self, pages):
        self.pages = list(pages)


class FakeBrowser:
    def __init__(self, pages):
        self.contexts = [FakeContext(pages)]
        self.connected = True

    def is_connected(self):
        return self.connected

    async def close(self):
        self.connected = False


class FakeSurface:
    def __init__(self, page, key='page-1'):
        self.page = page
        self.key = key


class FakeConnections:
    """Connection manager double with a fixed set of surfaces."""

    def __init__(self, pages=(), available=True):
        self.ports = [9000, 9001, 8999]
        self.available = available
        self.pages = list(pages)
        self.attach_calls = 0
        self.closed = False

    async def is_available(self):
        return self.available

    async def ensure_attached(self):
        from cdp_connection import AttachmentResult
        self.attach_calls += 1
        if not self.available:
            return AttachmentResult(available=False, connection_count=0)
        return AttachmentResult(available=True, connection_count=self.connection_count)

    def surfaces(self):
        return [FakeSurface(page, key=f"page-{i}") for i, page in enumerate(self.pages, 1)]

    @property
    def connection_count(self):
        return len(self.pages)

    async def close(self):
        self.closed = True
