import io
from datetime import date
from pathlib import Path

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pricewatch.db.tables import metadata
from pricewatch.jobs.models import InputRow, RowResult
from pricewatch.jobs.runner import ReportRunner
from pricewatch.jobs.store import JobStore
from pricewatch.scraper import load_site_profile
from pricewatch.utils.storage import ReportStorage

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text(encoding="utf-8")


def xlsx_bytes(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine):
    return JobStore(engine)


@pytest.fixture()
def profile():
    return load_site_profile()


@pytest.fixture()
def three_rows():
    return [
        InputRow(article="OC90", brand="KNECHT"),
        InputRow(article="W71252", brand="MANN"),
        InputRow(article="GDB1330", brand="TRW"),
    ]


class FakeExtractor:
    """Scripted extractor: one entry per call, either a RowResult or an exception."""

    def __init__(self, script=None, default=None):
        self.script = list(script or [])
        self.default = default
        self.calls = []
        self.before_return = None

    async def extract(self, row, *, period_from, period_to, include_stats=True, log=None):
        self.calls.append((row, include_stats))
        item = self.script.pop(0) if self.script else self.default
        if self.before_return is not None:
            self.before_return(row)
        if isinstance(item, BaseException):
            raise item
        if item is None:
            return RowResult(article=row.article, brand=row.brand)
        return item


@pytest.fixture()
def fake_extractor():
    return FakeExtractor()


@pytest.fixture()
def runner(store, fake_extractor, tmp_path):
    storage = ReportStorage(output_dir=tmp_path / "reports")
    return ReportRunner(
        store,
        fake_extractor,
        storage=storage,
        log_dir=tmp_path / "logs",
        output_dir=tmp_path / "build",
    )


@pytest.fixture()
def period():
    return date(2024, 1, 1), date(2024, 3, 31)


# Minimal async stand-ins for the playwright objects the scraper touches.


class FakeResponse:
    def __init__(self, url, body="", content_type="application/json", status=200):
        self.url = url
        self.status = status
        self.headers = {"content-type": content_type}
        self._body = body

    async def text(self):
        return self._body


class FakeRequest:
    def __init__(self, url):
        self.url = url


class FakeLocator:
    def __init__(self, page, selector, present):
        self.page = page
        self.selector = selector
        self.present = present

    @property
    def first(self):
        return self

    async def count(self):
        return 1 if self.present else 0

    async def fill(self, value):
        self.page.filled[self.selector] = value

    async def click(self):
        self.page.clicked.append(self.selector)
        if self.page.on_click:
            self.page.on_click(self.page, self.selector)


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def press(self, key):
        self.page.pressed.append(key)
        if self.page.on_submit:
            self.page.on_submit(self.page)


class FakePage:
    def __init__(self, context):
        self.context = context
        self.url = "about:blank"
        self.html = ""
        self.filled = {}
        self.clicked = []
        self.pressed = []
        self.closed = False
        self.keyboard = FakeKeyboard(self)
        self.on_submit = context.on_submit
        self.on_click = context.on_click

    async def goto(self, url, **kwargs):
        self.context.visited.append(url)
        target = self.context.routes.get(url)
        if isinstance(target, BaseException):
            raise target
        if target is None:
            target = (404, "<html></html>")
        status, html = target
        self.url = url
        self.html = html
        for response in self.context.xhr.get(url, []):
            self.context.emit("request", FakeRequest(response.url))
            self.context.emit("response", response)
        return FakeResponse(url, html, "text/html", status)

    async def content(self):
        return self.html

    def locator(self, selector):
        return FakeLocator(self, selector, selector in self.context.present_selectors)

    def get_by_text(self, text, exact=False):
        return FakeLocator(self, f"text={text}", f"text={text}" in self.context.present_selectors)

    async def wait_for_load_state(self, state="load"):
        return None

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, routes=None, xhr=None, present_selectors=None):
        self.routes = dict(routes or {})
        self.xhr = dict(xhr or {})
        self.present_selectors = set(present_selectors or ())
        self.handlers = {}
        self.visited = []
        self.added_cookies = []
        self.jar = [{"name": "ASP.NET_SessionId", "value": "abc", "domain": ".zzap.ru", "path": "/"}]
        self.pages = []
        self.on_submit = None
        self.on_click = None

    async def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.handlers.get(event, []).remove(handler)

    def emit(self, event, payload):
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    async def add_cookies(self, cookies):
        self.added_cookies.extend(cookies)

    async def cookies(self):
        return list(self.jar)
