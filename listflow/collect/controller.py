"""
Convergence controller.

Harvests a lazily-rendered list by alternating interaction and
extraction until the set of distinct identities stops growing.

Lifecycle of a run::

    WARMING_UP -> SCROLLING -> CONVERGED | TIMED_OUT

Before the first interaction the controller opens the source's start
page (retried), refuses to continue on an authentication wall, reads the
displayed total if the page shows one, and waits for the first anchor.
Each scrolling pass then interacts, waits a jittered delay, runs every
extraction channel and folds the candidates into the run's dedup store.

The run stops as *converged* when a known target is reached or after
``no_growth_threshold`` passes without new identities, and as *timed
out* when the pass or wall-clock budget is exhausted.  Both are normal
outcomes; only :class:`~listflow.errors.PreconditionError` escapes.
"""

from __future__ import annotations

import logging
import random
import re
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..config import CollectOptions
from ..driver.base import PageDriver
from ..errors import PreconditionError
from ..extract.channels import Extractor
from ..normalize.schema import Candidate
from ..normalize.store import DedupStore
from ..sources import SourceProfile, get_source
from ..utils.outcome import ErrorKind, attempt
from ..utils.retry import with_retry
from .enrich import EnrichmentPool, EnrichmentReport

logger = logging.getLogger(__name__)

WHEEL_DELTA = 3000


class Phase(str, Enum):
    WARMING_UP = "warming_up"
    SCROLLING = "scrolling"
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"


@dataclass
class RunState:
    """Mutable state of one collection run."""

    store: DedupStore
    started: float
    last_size: int = 0
    streak: int = 0
    passes: int = 0
    displayed_total: Optional[int] = None
    phase: Phase = Phase.WARMING_UP
    stop_reason: str = ""

    @property
    def size(self) -> int:
        return len(self.store)

    @property
    def target(self) -> Optional[int]:
        """Smallest known target: the displayed total or the store cap."""
        known = [t for t in (self.displayed_total, self.store.capacity) if t]
        return min(known) if known else None

    def record_pass(self) -> bool:
        """Count a pass and update the no-growth streak; True if it grew."""
        self.passes += 1
        grown = self.size > self.last_size
        self.streak = 0 if grown else self.streak + 1
        self.last_size = self.size
        return grown

    def stop(self, phase: Phase, reason: str) -> None:
        self.phase = phase
        self.stop_reason = reason


@dataclass
class CollectResult:
    """Outcome of :func:`collect`."""

    items: List[Dict[str, Any]]
    total: int
    duration_ms: int
    phase: Phase
    passes: int
    stop_reason: str = ""
    enrichment: Optional[EnrichmentReport] = None


def parse_target_size(text: Optional[str], pattern: Optional[str]) -> Optional[int]:
    """Read a displayed total such as ``"1,234 connections"``.

    Returns ``None`` when the text or pattern is missing or does not match.
    """
    if not text or not pattern:
        return None
    match = re.search(pattern, text, re.IGNORECASE)
    if not match:
        return None
    digits = (match.group(1) if match.groups() else match.group(0)).replace(",", "")
    return int(digits) if digits.isdigit() else None


class ConvergenceController:
    """Drives one collection run against a driver.

    Args:
        driver: Page driver positioned anywhere; the controller navigates.
        source: Profile of the list being harvested.
        options: Run tuning.
        clock: Monotonic clock in seconds (injectable for tests).
        navigation_retries: Retries of the initial navigation.
        retry_delay: Base delay of the navigation backoff.
    """

    def __init__(
        self,
        driver: PageDriver,
        source: SourceProfile,
        options: CollectOptions,
        clock: Callable[[], float] = time.monotonic,
        navigation_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.driver = driver
        self.source = source
        self.options = options
        self.clock = clock
        self.navigation_retries = navigation_retries
        self.retry_delay = retry_delay
        self.extractor = Extractor(source)
        self._pages_exhausted = False

    async def run(self) -> RunState:
        """Execute the run and return its final state (store not yet frozen)."""
        state = RunState(store=DedupStore(self.options.target_size), started=self.clock())
        await self._open()
        state.displayed_total = await self._read_target()
        await self._warm_up()

        async with AsyncExitStack() as stack:
            if self.extractor.network is not None:
                await stack.enter_async_context(self.extractor.network.listening(self.driver))

            await self._extract_into(state)
            state.last_size = state.size
            state.phase = Phase.SCROLLING
            self._check_stop(state)

            while state.phase is Phase.SCROLLING:
                await self._interact()
                await self._settle(self._delay_ms())
                await self._extract_into(state)
                state.record_pass()
                logger.info(
                    "Pass %d: seen %d unique (target: %s)",
                    state.passes, state.size, state.target or "unknown",
                )
                self._check_stop(state)

            await self._settle(self.options.final_settle_ms)
            await self._extract_into(state)

        if self.extractor.network is not None:
            logger.info("Network channel captured %d responses", self.extractor.network.captured)
        logger.info(
            "Run %s (%s) after %d passes: %d unique in %.1fs",
            state.phase.value, state.stop_reason, state.passes, state.size,
            self.clock() - state.started,
        )
        return state

    async def _open(self) -> None:
        url = self.source.start_url
        logger.info("Opening %s", url)
        await with_retry(
            lambda: self.driver.navigate(url),
            max_attempts=self.navigation_retries,
            base_delay=self.retry_delay,
        )
        landed = await self.driver.current_url()
        if any(marker in landed for marker in self.source.auth_wall_markers):
            raise PreconditionError(
                f"Redirected to {landed}; the session is not authenticated"
            )

    async def _first_text(self, selector: str) -> str:
        nodes = await self.driver.query_all(selector)
        return await nodes[0].text() if nodes else ""

    async def _read_target(self) -> Optional[int]:
        source = self.source
        if not source.target_pattern:
            return None
        for selector in [*source.target_selectors, source.target_fallback]:
            if not selector:
                continue
            outcome = await attempt(
                lambda: self._first_text(selector), ErrorKind.EXTRACTION, "Target read"
            )
            total = parse_target_size(outcome.unwrap_or(""), source.target_pattern)
            if total:
                logger.info("Displayed total: %d", total)
                return total
        logger.debug("No displayed total found")
        return None

    async def _warm_up(self) -> None:
        outcome = await attempt(
            lambda: self.driver.wait_for_selector(
                self.source.warmup_selector, self.options.warmup_timeout_ms
            ),
            ErrorKind.INTERACTION,
            "Warm-up",
        )
        if not outcome.ok:
            logger.warning("No anchors detected during warm-up; continuing")

    async def _extract_into(self, state: RunState) -> int:
        candidates: List[Candidate] = await self.extractor.extract(self.driver)
        return state.store.fold(candidates)

    def _delay_ms(self) -> int:
        return self.options.interaction_delay_ms + int(random.uniform(0, self.options.jitter_ms))

    async def _settle(self, ms: int) -> None:
        await attempt(lambda: self.driver.wait(ms), ErrorKind.INTERACTION, "Settle wait")

    async def _interact(self) -> None:
        if self.source.interaction == "paginate":
            await attempt(self._next_page, ErrorKind.INTERACTION, "Next page")
            return
        driver = self.driver
        await attempt(lambda: driver.scroll_to_end(self.source.scroll_container), ErrorKind.INTERACTION, "Scroll")
        await attempt(lambda: driver.press_key("End"), ErrorKind.INTERACTION, "End key")
        await attempt(lambda: driver.wheel(0, WHEEL_DELTA), ErrorKind.INTERACTION, "Wheel")

    async def _next_page(self) -> bool:
        buttons = await self.driver.query_all(self.source.next_selector)
        if not buttons:
            logger.info("No next-page control; last page reached")
            self._pages_exhausted = True
            return False
        button = buttons[0]
        classes = await button.attribute("class") or ""
        disabled = (
            await button.attribute("disabled") is not None
            or (await button.attribute("aria-disabled") or "").lower() == "true"
            or bool(self.source.disabled_class and self.source.disabled_class in classes.split())
        )
        if disabled:
            logger.info("Next-page control disabled; last page reached")
            self._pages_exhausted = True
            return False
        await button.click()
        return True

    def _check_stop(self, state: RunState) -> None:
        target = state.target
        if target is not None and state.size >= target:
            state.stop(Phase.CONVERGED, f"target {target} reached")
        elif state.passes and state.streak >= self.options.no_growth_threshold:
            state.stop(Phase.CONVERGED, f"no growth for {state.streak} passes")
        elif self._pages_exhausted:
            state.stop(Phase.CONVERGED, "last page reached")
        elif state.passes >= self.options.max_passes:
            state.stop(Phase.TIMED_OUT, f"max passes ({self.options.max_passes}) reached")
        elif self.clock() - state.started >= self.options.max_duration_s:
            state.stop(Phase.TIMED_OUT, f"time budget ({self.options.max_duration_s}s) exhausted")


async def collect(
    driver: PageDriver,
    options: Optional[CollectOptions] = None,
    source: Optional[SourceProfile] = None,
) -> CollectResult:
    """Collect every entity of a list interface.

    Args:
        driver: Authenticated page driver.
        options: Run tuning; defaults apply when omitted.
        source: Source profile; looked up by ``options.source`` when omitted.

    Returns:
        A :class:`CollectResult` with the flat records in first-seen order.

    Raises:
        PreconditionError: when the session is unusable.
    """
    options = options or CollectOptions()
    source = source or get_source(options.source)
    started = time.monotonic()

    state = await ConvergenceController(driver, source, options).run()
    entities = state.store.freeze()

    report = None
    if options.enrichment_enabled:
        if source.detail_fields:
            pool = EnrichmentPool(
                driver,
                source,
                concurrency=options.enrichment_concurrency,
                pause_ms=options.enrichment_pause_ms,
                show_progress=options.show_progress,
            )
            report = await pool.run(entities)
        else:
            logger.info("Source %s has no detail fields; enrichment skipped", source.name)

    items = [e.to_record(source.reference_field, source.token_field) for e in entities]
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("Collected %d %s items in %dms", len(items), source.name, duration_ms)
    return CollectResult(
        items=items,
        total=len(items),
        duration_ms=duration_ms,
        phase=state.phase,
        passes=state.passes,
        stop_reason=state.stop_reason,
        enrichment=report,
    )
