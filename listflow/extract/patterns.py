"""Regex mining of entity references from arbitrary text and payloads."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from ..normalize.identity import Identity, IdentityRules, normalize

logger = logging.getLogger(__name__)

# JSON and RSC payloads escape slashes; undo that before matching.
_ESCAPES = (("\\/", "/"), ("\\u002F", "/"), ("\\u002f", "/"), ("&amp;", "&"))


def unescape_payload(text: str) -> str:
    for escaped, plain in _ESCAPES:
        text = text.replace(escaped, plain)
    return text


class ReferenceMiner:
    """Find absolute and relative references with regular expressions.

    Args:
        patterns: Regexes matching a whole reference each; matched
            case-insensitively, in order.
        base: Base URL for relative matches.
        rules: Identity rules used to normalize every match.
    """

    def __init__(self, patterns: Sequence[str], base: str, rules: Optional[IdentityRules] = None):
        self.base = base
        self.rules = rules
        self._patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def mine(self, text: Optional[str]) -> List[Identity]:
        """Return the distinct identities referenced in ``text``, first-seen order."""
        if not text or not self._patterns:
            return []
        text = unescape_payload(text)
        seen = {}
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                raw = match.group(0)
                try:
                    identity = normalize(raw, self.base, self.rules)
                except ValueError as exc:
                    logger.debug("Skipping malformed reference %r: %s", raw, exc)
                    continue
                seen.setdefault(identity.key, identity)
        return list(seen.values())
