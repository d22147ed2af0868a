"""
Shared fakes for the capture tests.

FakePage and FakeBrowserContext implement the slice of playwright's async API
the service uses, so the engine can be exercised without launching Chromium.
Routes installed with context.route() are consulted on navigation, for every
sub-resource listed in ``page.subresources`` and for popups. Like Chromium,
a redirect of a continued request is followed without asking the route again,
while a redirect handed back with route.fulfill() comes through it as a new
request. ``page.reached`` lists every URL a request was actually sent to.
"""
from io import BytesIO
from typing import Dict, List, Optional
from urllib.parse import urljoin

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError

from capture_api import network_guard
from capture_api.browser import RenderingContext

RENDERED_HTML = "<html><head></head><body><h1>rendered</h1></body></html>"
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF"

FAKE_DNS = {
    "example.com": ["93.184.216.34", "2606:2800:220:1:248:1893:25c8:1946"],
    "cdn.example.com": ["151.101.1.1"],
    "intranet.corp": ["10.20.30.40"],
    "rebind.example.com": ["93.184.216.35", "127.0.0.1"],
}


def image_bytes(image_type: str = "png", size=(8, 6)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buffer, format="JPEG" if image_type == "jpeg" else "PNG")
    return buffer.getvalue()


class FakeRequest:
    def __init__(self, url: str):
        self.url = url


class FakeAPIResponse:
    def __init__(self, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.status = status
        self.headers = headers or {}


class FakeRoute:
    """One intercepted request; ``redirects`` maps a URL to the Location its server answers with."""

    def __init__(self, url: str, redirects: Optional[Dict[str, str]] = None, unreachable=()):
        self.request = FakeRequest(url)
        self.redirects = redirects or {}
        self.unreachable = unreachable
        self.aborted = False
        self.abort_reason: Optional[str] = None
        self.continued = False
        self.fetched = False
        self.fulfilled: Optional[FakeAPIResponse] = None

    async def abort(self, error_code: Optional[str] = None):
        self.aborted = True
        self.abort_reason = error_code

    async def continue_(self, **kwargs):
        self.continued = True

    async def fetch(self, max_redirects=None, **kwargs):
        url = self.request.url
        if url in self.unreachable:
            raise PlaywrightError(f"getaddrinfo ENOTFOUND {url}")
        self.fetched = True
        if url in self.redirects and max_redirects == 0:
            return FakeAPIResponse(302, {"location": self.redirects[url]})
        return FakeAPIResponse(200, {"content-type": "text/html"})

    async def fulfill(self, response=None, **kwargs):
        self.fulfilled = response


class FakeBrowserContext:
    """BrowserContext with its routes and a tiny model of per-context browser state."""

    def __init__(self):
        self.calls: List[str] = []
        self.routes = []
        self.redirects: Dict[str, str] = {}
        self.unreachable = set()
        self.storage: Dict[str, str] = {}
        self.permissions: List[str] = []
        self.pages: List["FakePage"] = []
        self.closed = False
        self.cookie_clears = 0

    async def new_page(self):
        return FakePage(self)

    async def route(self, pattern, handler):
        self.calls.append("route")
        self.routes.append((pattern, handler))

    async def unroute_all(self, behavior=None):
        self.calls.append("unroute_all")
        self.routes.clear()

    async def clear_cookies(self):
        self.calls.append("clear_cookies")
        self.cookie_clears += 1

    async def clear_permissions(self):
        self.calls.append("clear_permissions")
        self.permissions.clear()

    async def close(self):
        self.closed = True


class FakePage:
    def __init__(self, context: Optional[FakeBrowserContext] = None):
        self.context = context or FakeBrowserContext()
        self.context.pages.append(self)
        # shared with the context so one list shows the order of every step
        self.calls: List[str] = self.context.calls
        self.headers = {}
        self.viewport = None
        self.closed = False
        self.subresources: List[str] = []
        self.blocked: List[str] = []
        self.reached: List[str] = []
        self.navigated: List[str] = []
        self.html: Optional[str] = None
        self.screenshot_kwargs = None
        self.pdf_kwargs = None
        self.goto_error: Optional[Exception] = None
        self.capture_error: Optional[Exception] = None

    async def set_extra_http_headers(self, headers):
        self.calls.append("set_extra_http_headers")
        self.headers = dict(headers)

    async def set_viewport_size(self, size):
        self.calls.append("set_viewport_size")
        self.viewport = dict(size)

    def _redirect_chain(self, url: str) -> List[str]:
        chain = [url]
        while url in self.context.redirects:
            url = self.context.redirects[url]
            chain.append(url)
        return chain

    async def _request(self, url: str) -> bool:
        """Send one request the way Chromium does with the context routes in place."""
        while True:
            if not self.context.routes:
                self.reached.extend(self._redirect_chain(url))
                return True
            route = FakeRoute(url, self.context.redirects, self.context.unreachable)
            _pattern, handler = self.context.routes[-1]
            await handler(route)
            if route.aborted:
                self.blocked.append(url)
                return False
            if route.continued:
                # redirects of a continued request never reach the route again
                self.reached.extend(self._redirect_chain(url))
                return True
            if route.fetched:
                self.reached.append(url)
            response = route.fulfilled
            location = response.headers.get("location") if response is not None else None
            if response is None or not (300 <= response.status < 400 and location):
                return True
            # a fulfilled redirect comes back through the route as a new request
            url = urljoin(url, location)

    async def _load_subresources(self):
        for url in self.subresources:
            await self._request(url)

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append("goto")
        self.navigated.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        if not await self._request(url):
            raise PlaywrightError(f"net::ERR_BLOCKED_BY_CLIENT at {url}")
        await self._load_subresources()

    async def set_content(self, html, wait_until=None, timeout=None):
        self.calls.append("set_content")
        self.html = html
        await self._load_subresources()

    async def open_popup(self, url: str) -> "FakePage":
        """What window.open(url) does: a new page in the same context."""
        popup = FakePage(self.context)
        await popup._request(url)
        return popup

    async def wait_for_selector(self, selector, timeout=None):
        self.calls.append("wait_for_selector")

    async def wait_for_function(self, expression, timeout=None):
        self.calls.append("wait_for_function")

    async def wait_for_timeout(self, timeout):
        self.calls.append("wait_for_timeout")

    async def screenshot(self, **kwargs):
        self.calls.append("screenshot")
        if self.capture_error is not None:
            raise self.capture_error
        self.screenshot_kwargs = kwargs
        return image_bytes(kwargs.get("type", "png"))

    async def pdf(self, **kwargs):
        self.calls.append("pdf")
        if self.capture_error is not None:
            raise self.capture_error
        self.pdf_kwargs = kwargs
        return PDF_BYTES

    async def content(self):
        self.calls.append("content")
        if self.capture_error is not None:
            raise self.capture_error
        return RENDERED_HTML

    async def evaluate(self, expression, arg=None):
        self.calls.append("evaluate")
        return [{"name": f"https://example.com/{arg}", "entryType": arg, "duration": 12.5}]

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


class FakeBrowser:
    """Stands in for BrowserSession.new_context and remembers what it built."""

    def __init__(self):
        self.contexts: List[RenderingContext] = []
        # copied into every context built from here on
        self.redirects: Dict[str, str] = {}

    async def new_context(self, slot: int) -> RenderingContext:
        browser_context = FakeBrowserContext()
        browser_context.redirects.update(self.redirects)
        context = RenderingContext(browser_context, FakePage(browser_context), slot)
        self.contexts.append(context)
        return context

    @property
    def pages(self) -> List[FakePage]:
        return [c.page for c in self.contexts]


class RecordingReporter:
    def __init__(self):
        self.reports = []

    def report(self, error, *, task_id=None, attempt=None):
        self.reports.append((error, task_id, attempt))

    @property
    def attempts(self):
        return [attempt for _error, _task_id, attempt in self.reports if attempt is not None]


@pytest.fixture
def fake_dns(monkeypatch):
    async def resolve(host):
        return list(FAKE_DNS.get(host, []))

    monkeypatch.setattr(network_guard, "resolve_host_ips", resolve)
    return FAKE_DNS


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def reporter():
    return RecordingReporter()
