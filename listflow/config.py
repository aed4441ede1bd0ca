"""
Configuration loading.

Configuration is a YAML file with four sections:

* ``collect``: convergence and enrichment tuning (:class:`CollectOptions`);
* ``browser``: headed/headless mode and the session state file;
* ``output``: where exported files go;
* ``sources``: source profiles (see :mod:`listflow.sources`).

The package ships ``config.yaml`` with working defaults.  A user file
only needs the keys it overrides; its ``sources`` entries are added to
(or replace) the built-in profiles.  ``.env`` files are honoured via
python-dotenv.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .sources import DEFAULT_CONFIG_PATH, SourceProfile, load_sources

logger = logging.getLogger(__name__)

SECTIONS = ("collect", "browser", "output", "sources")
MAX_ENRICHMENT_CONCURRENCY = 5


@dataclass
class CollectOptions:
    """Tuning knobs of one collection run.

    Attributes:
        interaction_delay_ms: Base wait after each interaction.
        jitter_ms: Upper bound of the random extra wait.
        no_growth_threshold: Consecutive passes without new identities
            before the run is considered converged.
        max_passes: Hard cap on interaction passes.
        max_duration_s: Wall-clock budget of the scrolling phase.
        warmup_timeout_ms: How long to wait for the first anchor.
        final_settle_ms: Wait before the last extraction.
        target_size: Optional hard cap on distinct identities.
        enrichment_enabled: Backfill incomplete entities from detail pages.
        enrichment_concurrency: Parallel enrichment workers (1..5).
        enrichment_pause_ms: Politeness pause range between detail pages.
        source: Name of the source profile to collect from.
        show_progress: Show a progress bar during enrichment.
    """

    interaction_delay_ms: int = 700
    jitter_ms: int = 800
    no_growth_threshold: int = 3
    max_passes: int = 400
    max_duration_s: float = 600.0
    warmup_timeout_ms: int = 45000
    final_settle_ms: int = 1500
    target_size: Optional[int] = None
    enrichment_enabled: bool = False
    enrichment_concurrency: int = 2
    enrichment_pause_ms: Tuple[int, int] = (300, 700)
    source: str = "connections"
    show_progress: bool = False

    def __post_init__(self) -> None:
        self.no_growth_threshold = max(1, int(self.no_growth_threshold))
        self.max_passes = max(1, int(self.max_passes))
        self.enrichment_concurrency = min(
            MAX_ENRICHMENT_CONCURRENCY, max(1, int(self.enrichment_concurrency))
        )
        low, high = self.enrichment_pause_ms
        self.enrichment_pause_ms = (int(low), max(int(low), int(high)))
        if self.target_size is not None:
            self.target_size = int(self.target_size)
            if self.target_size < 1:
                raise ConfigError("target_size must be a positive integer")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], **overrides: Any) -> "CollectOptions":
        """Build options from a ``collect`` section; ``None`` overrides are ignored."""
        known = {f.name for f in dataclasses.fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in {**(data or {}), **overrides}.items():
            if key not in known:
                logger.warning("Ignoring unknown collect option '%s'", key)
                continue
            if value is not None:
                values[key] = value
        if "enrichment_pause_ms" in values:
            values["enrichment_pause_ms"] = tuple(values["enrichment_pause_ms"])
        return cls(**values)


class ConfigLoader:
    """Load and validate YAML configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to a YAML configuration file; the packaged
                defaults are used when omitted.
        """
        load_dotenv()
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.config = self._load_config()
        self._validate_config()

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration {path}: {e}") from e
        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Configuration {path} must be a mapping")
        return config or {}

    def _load_config(self) -> Dict[str, Any]:
        """Load the packaged defaults, then overlay the user file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")
        defaults = self._read(DEFAULT_CONFIG_PATH)
        if self.config_path.resolve() == DEFAULT_CONFIG_PATH.resolve():
            return defaults
        user = self._read(self.config_path)
        logger.info("Loaded configuration from %s", self.config_path)
        merged = dict(defaults)
        for section, value in user.items():
            if isinstance(value, dict) and isinstance(defaults.get(section), dict):
                merged[section] = {**defaults[section], **value}
            else:
                merged[section] = value
        return merged

    def _validate_config(self):
        """Warn about missing or unknown sections."""
        missing = [s for s in SECTIONS if s not in self.config]
        if missing:
            logger.warning("Missing configuration sections: %s", ", ".join(missing))
            logger.info("Using default values for missing sections")
        unknown = [s for s in self.config if s not in SECTIONS]
        if unknown:
            logger.warning("Unknown configuration sections: %s", ", ".join(unknown))

    def get(self, section: str, key: str = None, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            section: Configuration section name
            key: Key within section (optional)
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        if key is None:
            return self.config.get(section, default)
        section_config = self.config.get(section) or {}
        return section_config.get(key, default)

    def collect_options(self, **overrides: Any) -> CollectOptions:
        return CollectOptions.from_mapping(self.get("collect"), **overrides)

    def sources(self) -> Dict[str, SourceProfile]:
        return load_sources(self.get("sources"))


def log_level(default: str = "INFO") -> int:
    """Logging level from the ``LOG_LEVEL`` environment variable."""
    name = os.getenv("LOG_LEVEL", default).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO
