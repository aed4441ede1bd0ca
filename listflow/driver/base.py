"""
Page automation driver capability.

The collector never talks to a browser library directly.  It consumes
the small asynchronous interface below, which a concrete driver
(:mod:`listflow.driver.selenium_driver`) or a test double implements.
Every call may fail or time out; the collector treats failures
according to the error taxonomy in :mod:`listflow.utils.outcome`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional


class NetworkResponse:
    """A network exchange observed by the driver.

    The body is fetched lazily through ``text()`` because reading it can
    be expensive (or fail) and most responses are filtered out first.
    """

    def __init__(
        self,
        url: str,
        method: str = "GET",
        status: int = 200,
        body_loader: Optional[Callable[[], Awaitable[str]]] = None,
    ) -> None:
        self.url = url
        self.method = method.upper()
        self.status = status
        self._body_loader = body_loader

    async def text(self) -> str:
        if self._body_loader is None:
            return ""
        return await self._body_loader()

    def __repr__(self) -> str:
        return f"NetworkResponse({self.method} {self.url} {self.status})"


ResponsePredicate = Callable[[NetworkResponse], bool]
ResponseHandler = Callable[[NetworkResponse], Awaitable[None]]


class ElementHandle(ABC):
    """A node of the rendered interface."""

    @abstractmethod
    async def text(self) -> str:
        """Visible text of the node."""

    @abstractmethod
    async def attribute(self, name: str) -> Optional[str]:
        """Attribute (or DOM property) value, ``None`` when absent."""

    @abstractmethod
    async def visible(self) -> bool:
        """Whether the node is currently displayed."""

    @abstractmethod
    async def query_all(self, selector: str) -> List["ElementHandle"]:
        """Descendants matching a CSS selector."""

    @abstractmethod
    async def click(self) -> None:
        """Click the node."""

    async def count(self, selector: str) -> int:
        return len(await self.query_all(selector))


class PageDriver(ABC):
    """One browsing context able to navigate, interact and observe traffic."""

    @abstractmethod
    async def navigate(self, url: str) -> None: ...

    @abstractmethod
    async def current_url(self) -> str: ...

    @abstractmethod
    async def query_all(self, selector: str) -> List[ElementHandle]: ...

    @abstractmethod
    async def scroll_to_end(self, container: Optional[str] = None) -> None:
        """Programmatically scroll ``container`` (and the window) to the end."""

    @abstractmethod
    async def press_key(self, key: str) -> None: ...

    @abstractmethod
    async def wheel(self, dx: int, dy: int) -> None: ...

    @abstractmethod
    async def wait(self, ms: int) -> None:
        """Yield for ``ms`` milliseconds while the interface settles."""

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        """Block until ``selector`` matches; raise on timeout."""

    @abstractmethod
    async def evaluate(self, script: str, *args: Any) -> Any:
        """Run a script in the page and return its result."""

    @abstractmethod
    def on_network_response(self, predicate: ResponsePredicate, handler: ResponseHandler) -> None: ...

    @abstractmethod
    def off_network_response(self, handler: ResponseHandler) -> None: ...

    @abstractmethod
    async def new_isolated_context(self) -> "PageDriver":
        """Open an independent browsing context sharing the session."""

    @abstractmethod
    async def close(self) -> None: ...
