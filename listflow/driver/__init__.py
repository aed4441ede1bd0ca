"""
Page automation drivers.

``base`` defines the asynchronous capability the collector consumes;
``selenium_driver`` implements it over Chrome, and ``session`` loads
the authenticated session the driver starts from.
"""

from .base import ElementHandle, NetworkResponse, PageDriver  # noqa: F401
from .session import apply_cookies, load_storage_state, resolve_auth_state  # noqa: F401
