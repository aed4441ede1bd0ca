"""
CSV writer for harvested items.

Columns follow a fixed preferred ordering (per source profile) followed
by any remaining keys of the first row.  List values are joined with
``;``.  Values containing separators, newlines or quotes are quoted
with doubled inner quotes, which is ``csv`` minimal quoting.
"""

from __future__ import annotations

import csv
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

DEFAULT_COLUMNS = ["name", "headline", "username", "profileUrl"]


def column_order(first_row: Mapping[str, Any], preferred: Sequence[str]) -> List[str]:
    """Preferred columns present in ``first_row``, then its other keys."""
    headers = [name for name in preferred if name in first_row]
    headers.extend(name for name in first_row.keys() if name not in preferred)
    return headers


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return ";".join("" if v is None else str(v) for v in value)
    return str(value)


def write_items_csv(
    items: Iterable[Mapping[str, Any]],
    path: str,
    preferred: Optional[Sequence[str]] = None,
) -> None:
    """Write items to a CSV file, overwriting any existing file.

    Args:
        items: Flat records as returned in ``CollectResult.items``.
        path: Destination path; parent directories are created.
        preferred: Preferred leading column order.
    """
    rows: List[Mapping[str, Any]] = list(items)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    if not rows:
        with open(path, "w", encoding="utf-8") as f:
            f.write("")
        return
    fieldnames = column_order(rows[0], preferred if preferred is not None else DEFAULT_COLUMNS)
    with open(path, "w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(
            csvfile,
            fieldnames=fieldnames,
            extrasaction="ignore",
            lineterminator="\n",
        )
        writer.writeheader()
        for row in rows:
            out: Dict[str, str] = {name: _cell(row.get(name)) for name in fieldnames}
            writer.writerow(out)
