"""JSON writer for harvested items."""

from __future__ import annotations

import json
import os
from typing import Any


def write_items_json(data: Any, path: str) -> None:
    """Write ``data`` as indented UTF-8 JSON, creating parent directories."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
