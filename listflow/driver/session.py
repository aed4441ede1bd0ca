"""
Authenticated session handling.

Collection requires a logged-in browsing session.  The session is
stored as a storage-state JSON file (``{"cookies": [...], "origins":
[...]}``) produced by a previous interactive login.  Missing or unusable
state is a precondition failure: the run must stop before any page is
touched.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from selenium.common.exceptions import WebDriverException

from ..errors import PreconditionError

logger = logging.getLogger(__name__)

AUTH_STATE_ENV = "LISTFLOW_AUTH_STATE"
SAME_SITE_VALUES = ("Strict", "Lax", "None")


def resolve_auth_state(configured: Optional[str] = None) -> Optional[str]:
    """Session file path: ``LISTFLOW_AUTH_STATE`` wins over the config value."""
    return os.getenv(AUTH_STATE_ENV) or configured


def load_storage_state(path: Optional[str], required_cookie: Optional[str] = None) -> List[Dict[str, Any]]:
    """Read the cookies of a storage-state file.

    Args:
        path: Storage-state JSON file.
        required_cookie: Cookie name that must be present (the session
            cookie of the source).

    Returns:
        The list of cookie dicts.

    Raises:
        PreconditionError: if the file is missing or unreadable, holds no
            cookies, or lacks ``required_cookie``.
    """
    if not path or not os.path.exists(path):
        raise PreconditionError(
            f"Session state not found at '{path}'. Log in once and save the storage state "
            f"there (or set {AUTH_STATE_ENV})."
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
    except (OSError, ValueError) as exc:
        raise PreconditionError(f"Session state at '{path}' is unreadable: {exc}") from exc

    cookies = state.get("cookies") if isinstance(state, dict) else None
    if not cookies:
        raise PreconditionError(f"Session state at '{path}' has no cookies")
    if required_cookie and not any(c.get("name") == required_cookie for c in cookies):
        raise PreconditionError(
            f"Session state at '{path}' has no '{required_cookie}' cookie; the login has expired"
        )
    logger.info("Loaded %d cookies from %s", len(cookies), path)
    return cookies


def to_selenium_cookie(cookie: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a storage-state (or Selenium) cookie to ``add_cookie`` form."""
    converted: Dict[str, Any] = {
        "name": cookie["name"],
        "value": cookie.get("value", ""),
        "path": cookie.get("path", "/"),
    }
    if cookie.get("domain"):
        converted["domain"] = cookie["domain"]
    if "secure" in cookie:
        converted["secure"] = bool(cookie["secure"])
    if "httpOnly" in cookie:
        converted["httpOnly"] = bool(cookie["httpOnly"])
    expiry = cookie.get("expiry", cookie.get("expires"))
    if isinstance(expiry, (int, float)) and expiry > 0:
        converted["expiry"] = int(expiry)
    if cookie.get("sameSite") in SAME_SITE_VALUES:
        converted["sameSite"] = cookie["sameSite"]
    return converted


def apply_cookies(driver, cookies: List[Dict[str, Any]], origin: str) -> int:
    """Install cookies into a WebDriver and return how many were accepted.

    WebDriver only accepts cookies for the domain currently loaded, so the
    driver first opens ``origin``.  Cookies for other domains are skipped.
    """
    driver.get(origin)
    applied = 0
    for cookie in cookies:
        try:
            driver.add_cookie(to_selenium_cookie(cookie))
            applied += 1
        except (KeyError, WebDriverException) as exc:
            logger.debug("Skipping cookie %s: %s", cookie.get("name"), exc)
    logger.debug("Applied %d/%d cookies for %s", applied, len(cookies), origin)
    return applied
