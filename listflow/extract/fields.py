"""
Ordered-fallback field reading.

A field is described by a list of selectors.  They are tried in order
against one root node and the first one yielding non-empty content wins;
later selectors are only consulted when the earlier ones come back empty
or fail.  See :mod:`listflow.sources` for the selector syntax.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Tuple

from ..driver.base import ElementHandle
from ..normalize.schema import is_present
from ..sources import FieldSpec

logger = logging.getLogger(__name__)

_ATTR_RE = re.compile(r"^[A-Za-z_:][\w:.-]*$")
_COUNT_RE = re.compile(r"\d[\d,]*")
_WS_RE = re.compile(r"\s+")


def clean_text(value: Optional[str]) -> str:
    """Collapse runs of whitespace and trim."""
    return _WS_RE.sub(" ", value or "").strip()


def parse_count(value: Optional[str]) -> Optional[int]:
    """First integer in ``value``; thousands separators are allowed."""
    match = _COUNT_RE.search(value or "")
    if not match:
        return None
    return int(match.group(0).replace(",", ""))


def split_selector(selector: str) -> Tuple[Optional[str], Optional[str]]:
    """Split ``"css@attr"`` into ``(css, attr)``.

    ``"@attr"`` yields ``(None, attr)`` (attribute of the root itself) and
    a plain ``"css"`` yields ``(css, None)``.  An ``@`` that is not followed
    by a valid attribute name is treated as part of the CSS.
    """
    css, sep, attr = selector.rpartition("@")
    if not sep or not _ATTR_RE.match(attr):
        return selector.strip(), None
    return (css.strip() or None), attr


def _excluded(value: str, exclude: List[str]) -> bool:
    return any(marker in value for marker in exclude)


async def _read(node: ElementHandle, attr: Optional[str]) -> str:
    if attr:
        return clean_text(await node.attribute(attr))
    return clean_text(await node.text())


async def _nodes(root: ElementHandle, css: Optional[str], require_visible: bool) -> List[ElementHandle]:
    nodes = [root] if css is None else await root.query_all(css)
    if not require_visible:
        return nodes
    return [node for node in nodes if await node.visible()]


async def read_selector(
    root: ElementHandle,
    selector: str,
    kind: str = "text",
    exclude: Optional[List[str]] = None,
    require_visible: bool = False,
) -> Any:
    """Read one selector against ``root``; empty results are ``None``/``[]``."""
    exclude = exclude or []
    css, attr = split_selector(selector)
    nodes = await _nodes(root, css, require_visible)

    if kind == "list":
        values: List[str] = []
        for node in nodes:
            value = await _read(node, attr)
            if value and not _excluded(value, exclude) and value not in values:
                values.append(value)
        return values

    for node in nodes:
        value = await _read(node, attr)
        if not value or _excluded(value, exclude):
            continue
        if kind == "count":
            count = parse_count(value)
            if count is not None:
                return count
            continue
        return value
    return None


async def extract_field(root: ElementHandle, spec: FieldSpec) -> Any:
    """Apply the ordered fallback strategy of ``spec`` to ``root``."""
    for selector in spec.selectors:
        try:
            value = await read_selector(root, selector, spec.kind, spec.exclude, spec.require_visible)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Selector %r for field %s failed: %s", selector, spec.name, exc)
            continue
        if is_present(value):
            return value
    return [] if spec.kind == "list" else None


async def extract_fields(root: ElementHandle, specs: List[FieldSpec]) -> dict:
    return {spec.name: await extract_field(root, spec) for spec in specs}
