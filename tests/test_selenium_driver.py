"""Tests for the Selenium driver using a mocked WebDriver."""

from __future__ import annotations

import asyncio
import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options

from listflow.driver.selenium_driver import (
    SeleniumDriver,
    SeleniumElement,
    create_browser_config,
    decode_performance_entry,
    navigate_and_wait,
    setup_chrome_options,
    wait_for_page_load,
)


def perf(method, **params):
    return {"message": json.dumps({"message": {"method": method, "params": params}})}


def test_create_browser_config():
    """Test browser configuration creation."""
    config = create_browser_config(debug=False)

    assert isinstance(config.user_agent, str)
    assert "x" in config.screen_size
    assert config.debug is False


def test_setup_chrome_options():
    """Test Chrome options setup."""
    options = setup_chrome_options(create_browser_config(debug=False))

    assert isinstance(options, Options)
    assert "--disable-blink-features=AutomationControlled" in options.arguments
    assert any(arg.startswith("user-agent=") for arg in options.arguments)
    assert "--headless=new" in options.arguments
    assert options.to_capabilities()["goog:loggingPrefs"] == {"performance": "ALL"}

    debug_options = setup_chrome_options(create_browser_config(debug=True))
    assert not any(arg.startswith("--headless") for arg in debug_options.arguments)


def test_wait_for_page_load(mock_driver):
    mock_driver.execute_script.return_value = "complete"
    with wait_for_page_load(mock_driver, timeout=1, sleep=0.01):
        pass
    mock_driver.execute_script.assert_called_with("return document.readyState")


def test_navigate_and_wait(mock_driver):
    mock_driver.execute_script.return_value = "complete"
    url = "https://example.com"
    with patch("listflow.driver.selenium_driver.time.sleep"):
        navigate_and_wait(mock_driver, url, timeout=1)
    mock_driver.get.assert_called_once_with(url)


def test_decode_performance_entry():
    assert decode_performance_entry(perf("Network.loadingFinished", requestId="1")) == (
        "Network.loadingFinished", {"requestId": "1"},
    )
    assert decode_performance_entry({"message": "not json"}) == (None, {})


def test_query_all_wraps_elements(mock_driver):
    element = MagicMock()
    element.text = "Jane"
    element.get_attribute.return_value = "/in/jane/"
    mock_driver.find_elements.return_value = [element]
    driver = SeleniumDriver(mock_driver)

    async def scenario():
        found = await driver.query_all("a")
        return found, await found[0].text(), await found[0].attribute("href")

    found, text, href = asyncio.run(scenario())
    assert isinstance(found[0], SeleniumElement)
    assert text == "Jane"
    assert href == "/in/jane/"


def test_wait_dispatches_finished_matching_responses(mock_driver):
    body = base64.b64encode(b'{"u":"/in/amy/"}').decode()
    mock_driver.get_log.return_value = [
        perf("Network.requestWillBeSent", requestId="7", request={"method": "POST", "url": "https://x/pagination"}),
        perf("Network.responseReceived", requestId="7", response={"url": "https://x/pagination", "status": 200}),
        perf("Network.requestWillBeSent", requestId="8", request={"method": "GET", "url": "https://x/img.png"}),
        perf("Network.responseReceived", requestId="8", response={"url": "https://x/img.png", "status": 200}),
        perf("Network.loadingFinished", requestId="7"),
        perf("Network.loadingFailed", requestId="8"),
    ]
    mock_driver.execute_cdp_cmd.return_value = {"body": body, "base64Encoded": True}
    driver = SeleniumDriver(mock_driver)
    seen = []

    async def handler(response):
        seen.append((response.method, response.url, response.status, await response.text()))

    driver.on_network_response(lambda r: "pagination" in r.url, handler)
    asyncio.run(driver.wait(0))

    assert seen == [("POST", "https://x/pagination", 200, '{"u":"/in/amy/"}')]
    mock_driver.execute_cdp_cmd.assert_called_once_with("Network.getResponseBody", {"requestId": "7"})

    driver.off_network_response(handler)
    assert driver._observers == []


def test_handler_failure_does_not_break_wait(mock_driver):
    mock_driver.get_log.return_value = [
        perf("Network.responseReceived", requestId="1", response={"url": "https://x/a", "status": 500}),
        perf("Network.loadingFinished", requestId="1"),
    ]
    driver = SeleniumDriver(mock_driver)

    async def handler(response):
        raise ValueError("bad payload")

    driver.on_network_response(lambda r: True, handler)
    asyncio.run(driver.wait(0))


def test_scroll_and_close(mock_driver):
    driver = SeleniumDriver(mock_driver)
    asyncio.run(driver.scroll_to_end("main"))
    script, container = mock_driver.execute_script.call_args.args
    assert "scrollHeight" in script
    assert container == "main"

    asyncio.run(driver.close())
    mock_driver.quit.assert_called_once()


def test_new_isolated_context_copies_cookies(mock_driver):
    mock_driver.get_cookies.return_value = [{"name": "sid", "value": "v", "domain": ".example.com"}]
    mock_driver.current_url = "https://www.example.com/list?x=1"
    other = MagicMock()
    driver = SeleniumDriver(mock_driver, debug=True)

    with patch("listflow.driver.selenium_driver.init_selenium", return_value=other) as init:
        context = asyncio.run(driver.new_isolated_context())

    init.assert_called_once_with(True)
    assert context.driver is other
    other.get.assert_called_once_with("https://www.example.com/")
    other.add_cookie.assert_called_once_with({"name": "sid", "value": "v", "path": "/", "domain": ".example.com"})


def test_wait_survives_performance_log_failure(mock_driver):
    mock_driver.get_log.side_effect = WebDriverException("chrome not reachable")
    driver = SeleniumDriver(mock_driver)

    asyncio.run(driver.wait(0))
    mock_driver.get_log.assert_called_once_with("performance")


def test_isolated_context_is_closed_when_cookies_fail(mock_driver):
    mock_driver.get_cookies.return_value = [{"name": "sid", "value": "v"}]
    mock_driver.current_url = "https://www.example.com/list"
    other = MagicMock()
    other.get.side_effect = WebDriverException("net::ERR_CONNECTION_RESET")
    driver = SeleniumDriver(mock_driver)

    with patch("listflow.driver.selenium_driver.init_selenium", return_value=other):
        with pytest.raises(WebDriverException):
            asyncio.run(driver.new_isolated_context())

    other.quit.assert_called_once()


def test_session_state_is_read_once(mock_driver):
    mock_driver.get_cookies.return_value = [{"name": "sid", "value": "v"}]
    mock_driver.current_url = "https://www.example.com/list"
    driver = SeleniumDriver(mock_driver)

    async def scenario():
        with patch("listflow.driver.selenium_driver.init_selenium", side_effect=lambda debug: MagicMock()):
            return await asyncio.gather(*(driver.new_isolated_context() for _ in range(3)))

    contexts = asyncio.run(scenario())

    assert len(contexts) == 3
    mock_driver.get_cookies.assert_called_once()
    for context in contexts:
        context.driver.get.assert_called_once_with("https://www.example.com/")
