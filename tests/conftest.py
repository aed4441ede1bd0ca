"""Shared fixtures: a scripted in-memory page driver and a test source profile."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from selenium import webdriver

from listflow.config import CollectOptions
from listflow.driver.base import ElementHandle, NetworkResponse, PageDriver
from listflow.sources import SourceProfile

View = Dict[str, List["FakeElement"]]


class FakeElement(ElementHandle):
    def __init__(
        self,
        text: str = "",
        attrs: Optional[Dict[str, str]] = None,
        children: Optional[View] = None,
        visible: bool = True,
        on_click: Optional[Callable[[], None]] = None,
    ):
        self._text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self._visible = visible
        self.on_click = on_click
        self.clicks = 0

    async def text(self) -> str:
        return self._text

    async def attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    async def visible(self) -> bool:
        return self._visible

    async def query_all(self, selector: str) -> List[ElementHandle]:
        return list(self.children.get(selector, []))

    async def click(self) -> None:
        self.clicks += 1
        if self.on_click:
            self.on_click()


class FakeDriver(PageDriver):
    """Scripted driver: every scroll (or next click) reveals the next view.

    ``pages`` are successive views (selector -> elements).  The view before
    any interaction is empty unless ``start_index`` is 0.  ``chrome`` holds
    elements present in every view (headers, totals).  ``responses`` maps a
    view index to network responses delivered on the next ``wait``.
    """

    def __init__(
        self,
        pages: Optional[List[View]] = None,
        chrome: Optional[View] = None,
        responses: Optional[Dict[int, List[NetworkResponse]]] = None,
        fail: Optional[set] = None,
        landing_url: Optional[str] = None,
        detail_pages: Optional[Dict[str, View]] = None,
        failing_details: Optional[set] = None,
        start_index: int = -1,
    ):
        self.pages = pages or []
        self.chrome = chrome or {}
        self.responses = responses or {}
        self.fail = fail or set()
        self.landing_url = landing_url
        self.detail_pages = detail_pages or {}
        self.failing_details = failing_details or set()
        self.index = start_index
        self.url = ""
        self.calls: List[str] = []
        self.observers: list = []
        self.delivered: set = set()
        self.contexts: List["FakeContext"] = []
        self.closed = False

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise RuntimeError(f"{name} failed")

    def advance(self) -> None:
        if self.index < len(self.pages) - 1:
            self.index += 1

    @property
    def view(self) -> View:
        page = self.pages[self.index] if 0 <= self.index < len(self.pages) else {}
        return {**self.chrome, **page}

    async def navigate(self, url: str) -> None:
        self._record("navigate")
        self.url = url

    async def current_url(self) -> str:
        return self.landing_url or self.url

    async def query_all(self, selector: str) -> List[ElementHandle]:
        return list(self.view.get(selector, []))

    async def scroll_to_end(self, container: Optional[str] = None) -> None:
        self._record("scroll_to_end")
        self.advance()

    async def press_key(self, key: str) -> None:
        self._record("press_key")

    async def wheel(self, dx: int, dy: int) -> None:
        self._record("wheel")

    async def wait(self, ms: int) -> None:
        self.calls.append("wait")
        if self.index in self.delivered:
            return
        self.delivered.add(self.index)
        for response in self.responses.get(self.index, []):
            for predicate, handler in list(self.observers):
                if predicate(response):
                    await handler(response)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        self._record("wait_for_selector")

    async def evaluate(self, script: str, *args):
        return None

    def on_network_response(self, predicate, handler) -> None:
        self.observers.append((predicate, handler))

    def off_network_response(self, handler) -> None:
        self.observers = [(p, h) for p, h in self.observers if h is not handler]

    async def new_isolated_context(self) -> "FakeContext":
        context = FakeContext(self.detail_pages, self.failing_details)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakeContext(FakeDriver):
    """Isolated context serving detail pages by URL."""

    def __init__(self, detail_pages: Dict[str, View], failing: set):
        super().__init__()
        self._details = detail_pages
        self._failing = failing
        self.visited: List[str] = []
        self._current: View = {}

    async def navigate(self, url: str) -> None:
        self.visited.append(url)
        if url in self._failing:
            raise RuntimeError(f"cannot load {url}")
        self._current = self._details.get(url, {})

    @property
    def view(self) -> View:
        return self._current


def card(username: str, name: str = "", headline: str = "") -> FakeElement:
    """A list record for ``/in/<username>/``."""
    return FakeElement(children={
        "a": [FakeElement(attrs={"href": f"/in/{username}/"})],
        ".name": [FakeElement(text=name)] if name else [],
        ".headline": [FakeElement(text=headline)] if headline else [],
    })


def page(*cards: FakeElement) -> View:
    return {"li.card": list(cards)}


def detail(name: str = "", headline: str = "") -> View:
    children: View = {}
    if name:
        children["h1"] = [FakeElement(text=name)]
    if headline:
        children[".headline"] = [FakeElement(text=headline)]
    return {"body": [FakeElement(children=children)]}


def profile_url(username: str) -> str:
    return f"https://www.example.com/in/{username}/"


SOURCE_DATA = {
    "start_url": "https://www.example.com/list",
    "base_url": "https://www.example.com",
    "record_selector": "li.card",
    "identity": ["a@href"],
    "fields": {"name": [".name"], "headline": [".headline"]},
    "text_container": "main",
    "reference_patterns": [
        r"""https?://(?:www\.)?example\.com/in/[^"'<>\s\\]+""",
        r"""/in/[^"'<>\s\\]+""",
    ],
    "token_pattern": "/in/([^/?#]+)",
    "canonical_template": "https://www.example.com/in/{token}/",
    "target": {"selectors": ["h1.total"], "pattern": r"(\d[\d,]*)\s+connections"},
    "detail_fields": {"name": ["h1"], "headline": [".headline"]},
    "required_fields": ["name", "headline"],
    "auth_wall_markers": ["/login", "/authwall"],
    "session_cookie": "sid",
}


def make_source(**overrides) -> SourceProfile:
    return SourceProfile.from_mapping("test", {**SOURCE_DATA, **overrides})


@pytest.fixture
def source() -> SourceProfile:
    return make_source()


@pytest.fixture
def options() -> CollectOptions:
    return CollectOptions(
        interaction_delay_ms=0,
        jitter_ms=0,
        no_growth_threshold=1,
        max_passes=50,
        final_settle_ms=0,
        warmup_timeout_ms=10,
        enrichment_pause_ms=(0, 0),
        source="test",
    )


@pytest.fixture
def mock_driver():
    """Mock Selenium WebDriver for testing."""
    driver = MagicMock(spec=webdriver.Chrome)
    driver.get_log.return_value = []
    return driver
