"""
Identity normalizer.

Every entity discovered by any channel is keyed by a canonical
identity: the absolute, deduplication-safe form of its source
reference.  The same raw reference and base must always produce the
same identity, and normalizing an identity again must return it
unchanged, otherwise the dedup store would split one entity in two.

Entities that have no reference at all (a feed post without an URN,
for example) get a ``fingerprint:`` identity computed from a few of
their content fields.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union
from urllib.parse import urljoin, urlsplit, urlunsplit

FINGERPRINT_SCHEME = "fingerprint"
DEFAULT_TOKEN_PATTERN = r"/in/([^/?#]+)"
TRAILING_ARTIFACTS = "),.;"

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass(frozen=True)
class IdentityRules:
    """Per-source rules for building canonical identities.

    Attributes:
        token_pattern: Regex with one group applied to the URL path to
            extract the short token (e.g. the vanity name in ``/in/<name>``).
        canonical_template: Optional ``str.format`` template with a
            ``{token}`` placeholder.  When a token is found the key is
            rebuilt from it, collapsing trailing slash and query variants.
        drop_query: Remove the query string from HTTP(S) references.
        strip_chars: Trailing characters removed before resolving.
    """

    token_pattern: Optional[str] = DEFAULT_TOKEN_PATTERN
    canonical_template: Optional[str] = None
    drop_query: bool = True
    strip_chars: str = TRAILING_ARTIFACTS


DEFAULT_RULES = IdentityRules()


@dataclass(frozen=True)
class Identity:
    """Canonical identity of one entity."""

    key: str
    token: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        """True when the key is a navigable HTTP(S) reference."""
        return self.key.startswith(("http://", "https://"))

    def __str__(self) -> str:
        return self.key


def _has_scheme(value: str) -> bool:
    return bool(_SCHEME_RE.match(value))


def _canonical_url(absolute: str, rules: IdentityRules) -> str:
    parts = urlsplit(absolute)
    if parts.scheme.lower() not in ("http", "https"):
        return absolute
    query = "" if rules.drop_query else parts.query
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", query, "")
    )


def derive_token(
    identity: Union[Identity, str],
    rules: Optional[IdentityRules] = None,
) -> Optional[str]:
    """Extract the short token of an identity; ``None`` if the shape differs.

    Never raises: malformed references simply yield ``None``.
    """
    rules = rules or DEFAULT_RULES
    key = identity.key if isinstance(identity, Identity) else identity
    if not rules.token_pattern or not key:
        return None
    try:
        parts = urlsplit(key)
        if parts.scheme.lower() not in ("http", "https"):
            return None
        match = re.search(rules.token_pattern, parts.path)
    except (ValueError, re.error):
        return None
    if not match:
        return None
    token = match.group(1) if match.groups() else match.group(0)
    return token or None


def normalize(raw: str, base: str, rules: Optional[IdentityRules] = None) -> Identity:
    """Canonicalize a raw reference into an :class:`Identity`.

    Args:
        raw: Reference as found on the page, in text or in a payload.
            May be relative (``/in/jane``) or absolute.
        base: Absolute URL that relative references resolve against.
        rules: Source-specific identity rules.

    Returns:
        The identity; ``normalize(identity.key, base, rules)`` returns an
        equal identity.
    """
    rules = rules or DEFAULT_RULES
    cleaned = raw.strip().rstrip(rules.strip_chars)
    absolute = cleaned if _has_scheme(cleaned) else urljoin(base, cleaned)
    key = _canonical_url(absolute, rules)
    token = derive_token(key, rules)
    if token and rules.canonical_template:
        key = rules.canonical_template.format(token=token)
    return Identity(key=key, token=token)


def fingerprint_identity(values: Iterable[object]) -> Optional[Identity]:
    """Build a ``fingerprint:`` identity from content values.

    Returns ``None`` when every value is empty.
    """
    basis = "__".join("" if value is None else str(value) for value in values)
    if not basis.strip("_ "):
        return None
    digest = hashlib.md5(basis.encode("utf-8")).hexdigest()
    return Identity(key=f"{FINGERPRINT_SCHEME}:{digest}")
