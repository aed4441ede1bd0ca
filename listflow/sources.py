"""
Source profiles.

Everything that is specific to one list interface (selectors, URL
shapes, reference patterns, network endpoints, displayed-total format)
is configuration data described by a :class:`SourceProfile`.  Profiles
are loaded from the ``sources`` section of the YAML configuration; the
package ships ``config.yaml`` with profiles for a connections list, a
paginated people search and a recent-activity feed.

Selector strings use a small convention shared by every field:

* ``"css"`` reads the visible text of the first matching node;
* ``"css@attr"`` reads attribute ``attr`` of the first matching node;
* ``"@attr"`` reads attribute ``attr`` of the record node itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError
from .normalize.identity import DEFAULT_TOKEN_PATTERN, IdentityRules

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")

FIELD_KINDS = ("text", "count", "list")
INTERACTIONS = ("scroll", "paginate")


@dataclass
class FieldSpec:
    """Ordered fallback selectors for one content field.

    Attributes:
        name: Output field name.
        selectors: Selectors tried in order; the first non-empty value wins.
        kind: ``text``, ``count`` (first integer in the text) or ``list``
            (every matching node of the winning selector).
        exclude: Substrings that disqualify a value (``list`` and ``text``).
        require_visible: Only read nodes that are currently displayed.
    """

    name: str
    selectors: List[str]
    kind: str = "text"
    exclude: List[str] = field(default_factory=list)
    require_visible: bool = False

    @classmethod
    def from_value(cls, name: str, value: Any, require_visible: bool = False) -> "FieldSpec":
        if isinstance(value, str):
            return cls(name=name, selectors=[value], require_visible=require_visible)
        if isinstance(value, list):
            return cls(name=name, selectors=[str(v) for v in value], require_visible=require_visible)
        if isinstance(value, Mapping):
            kind = value.get("kind", "text")
            if kind not in FIELD_KINDS:
                raise ConfigError(f"Field '{name}' has unknown kind '{kind}'")
            selectors = value.get("selectors") or []
            if isinstance(selectors, str):
                selectors = [selectors]
            if not selectors:
                raise ConfigError(f"Field '{name}' has no selectors")
            return cls(
                name=name,
                selectors=[str(s) for s in selectors],
                kind=kind,
                exclude=list(value.get("exclude", [])),
                require_visible=bool(value.get("require_visible", require_visible)),
            )
        raise ConfigError(f"Field '{name}' must be a selector, a list or a mapping")


def _fields(raw: Optional[Mapping[str, Any]], require_visible: bool = False) -> List[FieldSpec]:
    return [FieldSpec.from_value(name, value, require_visible) for name, value in (raw or {}).items()]


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


@dataclass
class SourceProfile:
    """Configuration describing one harvestable list interface."""

    name: str
    start_url: str
    base_url: str
    record_selector: str
    interaction: str = "scroll"
    scroll_container: Optional[str] = "main"
    anchor_selector: Optional[str] = None
    link_selector: Optional[str] = None
    record_requires: Optional[str] = None
    record_requires_fields: List[str] = field(default_factory=list)
    identity_selectors: List[str] = field(default_factory=list)
    identity_template: Optional[str] = None
    fingerprint_fields: List[str] = field(default_factory=list)
    fields: List[FieldSpec] = field(default_factory=list)
    text_container: Optional[str] = "main"
    reference_patterns: List[str] = field(default_factory=list)
    token_pattern: Optional[str] = DEFAULT_TOKEN_PATTERN
    canonical_template: Optional[str] = None
    drop_query: bool = True
    network_method: Optional[str] = None
    network_url_contains: List[str] = field(default_factory=list)
    target_selectors: List[str] = field(default_factory=list)
    target_fallback: Optional[str] = None
    target_pattern: Optional[str] = None
    next_selector: Optional[str] = None
    disabled_class: Optional[str] = None
    detail_fields: List[FieldSpec] = field(default_factory=list)
    required_fields: List[str] = field(default_factory=list)
    reference_field: str = "profileUrl"
    token_field: Optional[str] = "username"
    columns: List[str] = field(default_factory=list)
    auth_wall_markers: List[str] = field(default_factory=list)
    session_cookie: Optional[str] = None
    batch_param: Optional[str] = None
    profile_url: Optional[str] = None
    followers_selectors: List[str] = field(default_factory=list)
    followers_pattern: Optional[str] = None
    followers_field: Optional[str] = None
    media_fields: List[str] = field(default_factory=list)
    average_fields: Dict[str, str] = field(default_factory=dict)

    @property
    def identity_rules(self) -> IdentityRules:
        return IdentityRules(
            token_pattern=self.token_pattern,
            canonical_template=self.canonical_template,
            drop_query=self.drop_query,
        )

    @property
    def sniffs_network(self) -> bool:
        return bool(self.network_url_contains)

    @property
    def warmup_selector(self) -> str:
        return self.anchor_selector or self.record_selector

    def format_url(self, template: str, params: Mapping[str, str]) -> str:
        """Fill the ``{placeholders}`` of ``template`` from ``params``."""
        try:
            return template.format(**params)
        except (KeyError, IndexError) as exc:
            raise ConfigError(
                f"Source '{self.name}' needs parameter {exc} (use --param NAME=VALUE)"
            ) from exc

    def with_params(self, params: Mapping[str, str]) -> "SourceProfile":
        """Copy with ``{placeholders}`` of the start URL filled from ``params``."""
        return replace(self, start_url=self.format_url(self.start_url, params))

    def expand_params(self, params: Mapping[str, str]) -> List[Dict[str, str]]:
        """One parameter set per comma-separated value of ``batch_param``.

        ``username=jane,john`` yields ``[{username: jane}, {username: john}]``;
        other parameters are copied into every set.
        """
        if not self.batch_param:
            return [dict(params)]
        values = [v.strip() for v in params.get(self.batch_param, "").split(",") if v.strip()]
        if not values:
            raise ConfigError(
                f"Source '{self.name}' needs --param {self.batch_param}=VALUE[,VALUE...]"
            )
        return [{**params, self.batch_param: value} for value in values]

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "SourceProfile":
        """Build a profile from one entry of the ``sources`` config section."""
        missing = [key for key in ("start_url", "record_selector") if not data.get(key)]
        if missing:
            raise ConfigError(f"Source '{name}' is missing: {', '.join(missing)}")
        interaction = data.get("interaction", "scroll")
        if interaction not in INTERACTIONS:
            raise ConfigError(f"Source '{name}' has unknown interaction '{interaction}'")
        if interaction == "paginate" and not data.get("next_selector"):
            raise ConfigError(f"Paginated source '{name}' needs a next_selector")
        network = data.get("network") or {}
        batch = data.get("batch") or {}
        followers = batch.get("followers") or {}
        stats = batch.get("stats") or {}
        target = data.get("target") or {}
        start_url = str(data["start_url"])
        return cls(
            name=name,
            start_url=start_url,
            base_url=str(data.get("base_url") or start_url),
            record_selector=str(data["record_selector"]),
            interaction=interaction,
            scroll_container=data.get("scroll_container", "main"),
            anchor_selector=data.get("anchor_selector"),
            link_selector=data.get("link_selector"),
            record_requires=data.get("record_requires"),
            record_requires_fields=_as_list(data.get("record_requires_fields")),
            identity_selectors=_as_list(data.get("identity")),
            identity_template=data.get("identity_template"),
            fingerprint_fields=_as_list(data.get("fingerprint_fields")),
            fields=_fields(data.get("fields")),
            text_container=data.get("text_container", "main"),
            reference_patterns=_as_list(data.get("reference_patterns")),
            token_pattern=data.get("token_pattern", DEFAULT_TOKEN_PATTERN),
            canonical_template=data.get("canonical_template"),
            drop_query=bool(data.get("drop_query", True)),
            network_method=network.get("method"),
            network_url_contains=_as_list(network.get("url_contains")),
            target_selectors=_as_list(target.get("selectors")),
            target_fallback=target.get("fallback"),
            target_pattern=target.get("pattern"),
            next_selector=data.get("next_selector"),
            disabled_class=data.get("disabled_class"),
            detail_fields=_fields(data.get("detail_fields"), require_visible=True),
            required_fields=_as_list(data.get("required_fields")),
            reference_field=data.get("reference_field", "profileUrl"),
            token_field=data.get("token_field", "username"),
            columns=_as_list(data.get("columns")),
            auth_wall_markers=_as_list(data.get("auth_wall_markers")),
            session_cookie=data.get("session_cookie"),
            batch_param=batch.get("param"),
            profile_url=batch.get("profile_url"),
            followers_selectors=_as_list(followers.get("selectors")),
            followers_pattern=followers.get("pattern"),
            followers_field=followers.get("field"),
            media_fields=_as_list(stats.get("media_fields")),
            average_fields={str(k): str(v) for k, v in (stats.get("averages") or {}).items()},
        )


def load_sources(sources: Optional[Mapping[str, Any]]) -> Dict[str, SourceProfile]:
    """Build every profile of a ``sources`` config section."""
    return {name: SourceProfile.from_mapping(name, data or {}) for name, data in (sources or {}).items()}


def builtin_sources() -> Dict[str, SourceProfile]:
    """Profiles shipped in the package ``config.yaml``."""
    with open(DEFAULT_CONFIG_PATH, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    return load_sources(config.get("sources"))


def get_source(name: str, sources: Optional[Mapping[str, SourceProfile]] = None) -> SourceProfile:
    """Look up a profile by name, defaulting to the built-in profiles."""
    available = dict(sources) if sources is not None else builtin_sources()
    if name not in available:
        raise ConfigError(
            f"Unknown source '{name}'. Available: {', '.join(sorted(available)) or 'none'}"
        )
    return available[name]
