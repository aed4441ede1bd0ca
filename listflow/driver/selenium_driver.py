"""
Selenium implementation of the page automation driver.

Module provides browser setup (random user agent and window size,
stealth settings, performance logging) and :class:`SeleniumDriver`, which
adapts a blocking Chrome WebDriver to the asynchronous
:class:`~listflow.driver.base.PageDriver` interface by running every
WebDriver call in the default executor.

Network observation relies on Chrome's performance log.  Each ``wait()``
drains the log and turns ``Network.*`` events into
:class:`~listflow.driver.base.NetworkResponse` objects whose bodies are
read on demand through the DevTools ``Network.getResponseBody`` command.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from fake_useragent import UserAgent
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from selenium_stealth import stealth
from webdriver_manager.chrome import ChromeDriverManager

from ..utils.outcome import ErrorKind, attempt
from .base import ElementHandle, NetworkResponse, PageDriver, ResponseHandler, ResponsePredicate
from .session import apply_cookies

logger = logging.getLogger(__name__)

# Type aliases
Driver = webdriver.Chrome
LogEntry = dict

SCREEN_SIZES: List[str] = [
    "1280x800",
    "1366x768",
    "1440x900",
    "1920x1080",
]
DEFAULT_TIMEOUT: float = 10.0
DEFAULT_SLEEP: float = 0.25

SCROLL_TO_END_JS = """
const selector = arguments[0];
const el = selector ? document.querySelector(selector) : null;
if (el) { el.scrollTop = el.scrollHeight; }
window.scrollTo(0, document.body.scrollHeight);
"""


@dataclass
class BrowserConfig:
    """Configuration settings for browser initialization."""
    user_agent: str
    screen_size: str
    debug: bool = False


def create_browser_config(debug: bool = False) -> BrowserConfig:
    """Create browser configuration with random user agent and screen size."""
    ua = UserAgent()
    return BrowserConfig(
        user_agent=ua.random,
        screen_size=random.choice(SCREEN_SIZES),
        debug=debug,
    )


def setup_chrome_options(config: BrowserConfig) -> Options:
    """Configure Chrome options; headless unless debugging."""
    options = Options()
    options.add_argument(f"user-agent={config.user_agent}")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument(f"--window-size={config.screen_size.replace('x', ',')}")
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.set_capability("goog:loggingPrefs", {"performance": "ALL"})
    options.page_load_strategy = "none"
    if not config.debug:
        options.add_argument("--headless=new")
    return options


def configure_stealth_settings(driver: Driver) -> None:
    """Apply anti-detection stealth settings to driver."""
    stealth(
        driver,
        languages=["en-US", "en"],
        vendor="Google Inc.",
        platform="Win32",
        webgl_vendor="Intel Inc.",
        renderer="Intel Iris OpenGL Engine",
        fix_hairline=True,
    )


def init_selenium(debug: bool = False) -> Driver:
    """Start a stealth-configured Chrome with performance logging enabled."""
    config = create_browser_config(debug)
    options = setup_chrome_options(config)
    driver = webdriver.Chrome(
        service=Service(ChromeDriverManager().install()),
        options=options,
    )
    driver.execute_cdp_cmd("Network.enable", {})
    configure_stealth_settings(driver)
    logger.debug("Chrome started (%s, %s)", config.screen_size, config.user_agent)
    return driver


@contextmanager
def wait_for_page_load(driver: Driver, timeout: float = DEFAULT_TIMEOUT, sleep: float = DEFAULT_SLEEP):
    """Wait after the body until document.readyState is complete (or timeout)."""
    end_time = time.time() + timeout
    yield
    while time.time() < end_time:
        if driver.execute_script("return document.readyState") == "complete":
            break
        time.sleep(sleep)
    time.sleep(sleep)


def navigate_and_wait(driver: Driver, url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Navigate to URL and wait for page load completion."""
    with wait_for_page_load(driver, timeout):
        driver.get(url)


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/"


def decode_performance_entry(entry: LogEntry) -> Tuple[Optional[str], Dict[str, Any]]:
    """Return ``(method, params)`` of a performance log entry."""
    try:
        message = json.loads(entry["message"])["message"]
    except (KeyError, TypeError, ValueError):
        return None, {}
    return message.get("method"), message.get("params", {})


async def _run(fn, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args))


class SeleniumElement(ElementHandle):
    """ElementHandle over a Selenium WebElement."""

    def __init__(self, element) -> None:
        self.element = element

    async def text(self) -> str:
        return await _run(lambda: self.element.text or "")

    async def attribute(self, name: str) -> Optional[str]:
        return await _run(self.element.get_attribute, name)

    async def visible(self) -> bool:
        return await _run(self.element.is_displayed)

    async def query_all(self, selector: str) -> List[ElementHandle]:
        found = await _run(self.element.find_elements, By.CSS_SELECTOR, selector)
        return [SeleniumElement(e) for e in found]

    async def click(self) -> None:
        await _run(self.element.click)


class SeleniumDriver(PageDriver):
    """PageDriver backed by one Chrome WebDriver instance.

    Args:
        driver: A started ``webdriver.Chrome`` (see :func:`init_selenium`).
        debug: Headed mode; inherited by isolated contexts.
    """

    def __init__(self, driver: Driver, debug: bool = False) -> None:
        self.driver = driver
        self.debug = debug
        self._observers: List[Tuple[ResponsePredicate, ResponseHandler]] = []
        self._requests: Dict[str, Dict[str, Any]] = {}
        self._session: Optional[Tuple[List[Dict[str, Any]], str]] = None
        self._session_lock: Optional[asyncio.Lock] = None

    @classmethod
    async def launch(cls, debug: bool = False) -> "SeleniumDriver":
        return cls(await _run(init_selenium, debug), debug=debug)

    async def navigate(self, url: str) -> None:
        await _run(navigate_and_wait, self.driver, url)

    async def current_url(self) -> str:
        return await _run(lambda: self.driver.current_url)

    async def query_all(self, selector: str) -> List[ElementHandle]:
        found = await _run(self.driver.find_elements, By.CSS_SELECTOR, selector)
        return [SeleniumElement(e) for e in found]

    async def scroll_to_end(self, container: Optional[str] = None) -> None:
        await _run(self.driver.execute_script, SCROLL_TO_END_JS, container)

    async def press_key(self, key: str) -> None:
        value = getattr(Keys, key.upper(), key)
        await _run(lambda: ActionChains(self.driver).send_keys(value).perform())

    async def wheel(self, dx: int, dy: int) -> None:
        await _run(lambda: ActionChains(self.driver).scroll_by_amount(dx, dy).perform())

    async def wait(self, ms: int) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)
        await attempt(self._pump_network, ErrorKind.INTERACTION, "Performance log read")

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        condition = EC.presence_of_element_located((By.CSS_SELECTOR, selector))
        await _run(lambda: WebDriverWait(self.driver, timeout_ms / 1000).until(condition))

    async def evaluate(self, script: str, *args: Any) -> Any:
        return await _run(self.driver.execute_script, script, *args)

    def on_network_response(self, predicate: ResponsePredicate, handler: ResponseHandler) -> None:
        self._observers.append((predicate, handler))

    def off_network_response(self, handler: ResponseHandler) -> None:
        self._observers = [(p, h) for p, h in self._observers if h is not handler]

    async def session_state(self) -> Tuple[List[Dict[str, Any]], str]:
        """Cookies and origin of this session, read once and then reused."""
        if self._session_lock is None:
            self._session_lock = asyncio.Lock()
        async with self._session_lock:
            if self._session is None:
                cookies = await _run(self.driver.get_cookies)
                self._session = (cookies, origin_of(await self.current_url()))
        return self._session

    async def new_isolated_context(self) -> "SeleniumDriver":
        """Launch a separate Chrome carrying this session's cookies."""
        cookies, origin = await self.session_state()
        context = await SeleniumDriver.launch(self.debug)
        try:
            await _run(apply_cookies, context.driver, cookies, origin)
        except BaseException:
            await close_quietly(context)
            raise
        return context

    async def close(self) -> None:
        self._observers.clear()
        await _run(self.driver.quit)

    async def _response_body(self, request_id: str) -> str:
        result = await _run(
            self.driver.execute_cdp_cmd, "Network.getResponseBody", {"requestId": request_id}
        )
        body = result.get("body", "")
        if result.get("base64Encoded"):
            body = base64.b64decode(body).decode("utf-8", errors="replace")
        return body

    async def _pump_network(self) -> None:
        """Drain the performance log and dispatch finished responses."""
        entries = await _run(self.driver.get_log, "performance")
        for entry in entries:
            method, params = decode_performance_entry(entry)
            request_id = params.get("requestId")
            if not request_id:
                continue
            if method == "Network.requestWillBeSent":
                request = params.get("request", {})
                self._requests[request_id] = {
                    "method": request.get("method", "GET"),
                    "url": request.get("url", ""),
                    "status": 0,
                }
            elif method == "Network.responseReceived":
                info = self._requests.setdefault(request_id, {"method": "GET"})
                response = params.get("response", {})
                info["url"] = response.get("url", info.get("url", ""))
                info["status"] = response.get("status", 0)
            elif method == "Network.loadingFinished":
                info = self._requests.pop(request_id, None)
                if info and info.get("url"):
                    await self._dispatch(request_id, info)
            elif method == "Network.loadingFailed":
                self._requests.pop(request_id, None)

    async def _dispatch(self, request_id: str, info: Dict[str, Any]) -> None:
        response = NetworkResponse(
            url=info["url"],
            method=info.get("method", "GET"),
            status=info.get("status", 0),
            body_loader=partial(self._response_body, request_id),
        )
        for predicate, handler in list(self._observers):
            if predicate(response):
                logger.debug("Captured %r", response)
                await attempt(lambda: handler(response), ErrorKind.EXTRACTION, "Network capture")


async def close_quietly(driver: PageDriver) -> None:
    """Close a driver, logging instead of raising if the browser is gone."""
    try:
        await driver.close()
    except WebDriverException as exc:
        logger.debug("Browser already closed: %s", exc)
