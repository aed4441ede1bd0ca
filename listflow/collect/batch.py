"""
Multi-profile runs.

Parameterized sources (a recent-activity feed per username) can be
collected for several parameter values in one browser session.  Before
each profile's run the author's follower count is read from the
profile page, best-effort, and copied onto every collected item.  The
batch ends with per-profile statistics and one combined document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import CollectOptions
from ..driver.base import PageDriver
from ..normalize.schema import is_present
from ..sources import SourceProfile
from ..utils.outcome import ErrorKind, attempt
from ..utils.retry import with_retry
from .controller import CollectResult, collect, parse_target_size

logger = logging.getLogger(__name__)

PROFILE_READY_SELECTOR = "main"
PROFILE_READY_TIMEOUT_MS = 10000


@dataclass
class ProfileRun:
    """One profile of a batch: its parameters, follower count, result and stats."""

    params: Dict[str, str]
    followers: Optional[int]
    result: CollectResult
    stats: Dict[str, Any]


@dataclass
class BatchResult:
    """Outcome of :func:`collect_batch`."""

    source: str
    param: str
    profiles: List[ProfileRun] = field(default_factory=list)
    scraped_at: str = ""

    @property
    def items(self) -> List[Dict[str, Any]]:
        return [item for profile in self.profiles for item in profile.result.items]

    @property
    def total(self) -> int:
        return sum(profile.result.total for profile in self.profiles)

    def to_document(self) -> Dict[str, Any]:
        """Combined JSON document: per-profile stats, then every item."""
        items = self.items
        return {
            "profiles": [
                {self.param: p.params.get(self.param), "stats": p.stats} for p in self.profiles
            ],
            "scrapedAt": self.scraped_at,
            f"total{self.source.capitalize()}": len(items),
            self.source: items,
        }


def profile_stats(items: Sequence[Mapping[str, Any]], source: SourceProfile, followers: Optional[int]) -> Dict[str, Any]:
    """Summary of one profile's items.

    Keys are named after the source: ``totalPosts`` and ``postsWithMedia``
    for ``posts``, plus one average per ``average_fields`` entry.
    """
    count = len(items)
    stats: Dict[str, Any] = {
        "followers": followers,
        f"total{source.name.capitalize()}": count,
    }
    if source.media_fields:
        stats[f"{source.name}WithMedia"] = sum(
            1 for item in items if any(is_present(item.get(name)) for name in source.media_fields)
        )
    for key, name in source.average_fields.items():
        values = [item.get(name) for item in items]
        total = sum(v for v in values if isinstance(v, (int, float)))
        stats[key] = total / count if count else 0
    return stats


async def _followers_text(driver: PageDriver, selector: str, pattern: str) -> Optional[int]:
    for node in await driver.query_all(selector):
        for text in (await node.text(), await node.attribute("aria-label")):
            value = parse_target_size(text, pattern)
            if value is not None:
                return value
    return None


async def read_followers(
    driver: PageDriver,
    source: SourceProfile,
    params: Mapping[str, str],
    navigation_retries: int = 2,
    retry_delay: float = 1.0,
) -> Optional[int]:
    """Open the profile page and read its follower count.

    Returns ``None`` when the source has no profile page, the page cannot
    be loaded, or no selector yields a match.
    """
    if not source.profile_url or not source.followers_pattern:
        return None
    url = source.format_url(source.profile_url, params)
    logger.info("Reading followers from %s", url)
    opened = await attempt(
        lambda: with_retry(lambda: driver.navigate(url), max_attempts=navigation_retries, base_delay=retry_delay),
        ErrorKind.INTERACTION,
        "Profile page",
    )
    if not opened.ok:
        return None
    await attempt(
        lambda: driver.wait_for_selector(PROFILE_READY_SELECTOR, PROFILE_READY_TIMEOUT_MS),
        ErrorKind.INTERACTION,
        "Profile page load",
    )
    for selector in source.followers_selectors:
        outcome = await attempt(
            lambda: _followers_text(driver, selector, source.followers_pattern),
            ErrorKind.EXTRACTION,
            "Followers read",
        )
        if outcome.unwrap_or(None) is not None:
            return outcome.value
    logger.warning("Could not find the followers count on %s", url)
    return None


async def collect_batch(
    driver: PageDriver,
    source: SourceProfile,
    param_sets: Sequence[Mapping[str, str]],
    options: Optional[CollectOptions] = None,
) -> BatchResult:
    """Collect ``source`` once per parameter set in the same session.

    Args:
        driver: Authenticated page driver.
        source: Parameterized source profile (``start_url`` with placeholders).
        param_sets: One mapping per profile, e.g. from
            :meth:`SourceProfile.expand_params`.
        options: Run tuning shared by every profile.

    Raises:
        PreconditionError: when the session is unusable; the batch stops.
    """
    options = options or CollectOptions(source=source.name)
    batch = BatchResult(source=source.name, param=source.batch_param or "params")
    for params in param_sets:
        label = params.get(batch.param) or ", ".join(f"{k}={v}" for k, v in params.items())
        followers = await read_followers(driver, source, params)
        result = await collect(driver, options, source.with_params(params))
        if source.followers_field:
            for item in result.items:
                item[source.followers_field] = followers
        stats = profile_stats(result.items, source, followers)
        batch.profiles.append(ProfileRun(dict(params), followers, result, stats))
        logger.info(
            "%s: %d items (%s), followers %s",
            label, result.total, result.stop_reason or result.phase.value,
            followers if followers is not None else "unknown",
        )
    batch.scraped_at = datetime.now(timezone.utc).isoformat()
    return batch
