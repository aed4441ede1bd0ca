"""
Enrichment pool.

After the scrolling phase some entities may still miss fields (identity
only candidates from the text and network channels, cards rendered
without a headline).  The pool visits each incomplete entity's detail
page in an isolated browsing context and backfills the missing fields.

Work is distributed by index: the entity indices are queued and a small
number of worker coroutines pull from the queue, so each worker only ever
writes to the entity it pulled.  A failing item is logged and counted;
it never stops the other workers.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from tqdm import tqdm

from ..driver.base import PageDriver
from ..extract.fields import extract_field
from ..normalize.schema import Entity
from ..sources import SourceProfile
from ..utils.outcome import ErrorKind, attempt
from ..utils.retry import with_retry

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 5


@dataclass
class EnrichmentReport:
    """Counters for one enrichment run."""
    queued: int = 0
    enriched: int = 0
    failed: int = 0
    skipped: int = 0


class EnrichmentPool:
    """Backfill missing fields from detail pages with bounded concurrency.

    Args:
        driver: Driver whose session the isolated contexts share.
        source: Source profile providing ``detail_fields`` and
            ``required_fields``.
        concurrency: Number of workers, clamped to 1..5.
        pause_ms: Range of the politeness pause after each item.
        show_progress: Display a tqdm progress bar.
        retry_attempts: Navigation retries per item.
        retry_delay: Base delay of the navigation retry backoff.
    """

    def __init__(
        self,
        driver: PageDriver,
        source: SourceProfile,
        concurrency: int = 2,
        pause_ms: Tuple[int, int] = (300, 700),
        show_progress: bool = False,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
    ):
        self.driver = driver
        self.source = source
        self.concurrency = min(MAX_CONCURRENCY, max(1, concurrency))
        self.pause_ms = pause_ms
        self.show_progress = show_progress
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    def needs_enrichment(self, entity: Entity) -> bool:
        return entity.identity.is_reference and not entity.is_complete(self.source.required_fields)

    async def run(self, entities: Sequence[Entity]) -> EnrichmentReport:
        """Enrich every incomplete entity in place and report the counts."""
        report = EnrichmentReport()
        queue: asyncio.Queue = asyncio.Queue()
        for index, entity in enumerate(entities):
            if self.needs_enrichment(entity):
                queue.put_nowait(index)
            else:
                report.skipped += 1
        report.queued = queue.qsize()
        if not report.queued:
            logger.info("Enrichment: nothing to do (%d complete)", report.skipped)
            return report

        workers = min(self.concurrency, report.queued)
        logger.info("Enriching %d entities with %d workers", report.queued, workers)
        progress = tqdm(
            total=report.queued,
            desc=f"Enriching {self.source.name}",
            unit="item",
            disable=not self.show_progress,
        )
        try:
            await asyncio.gather(
                *(self._worker(queue, entities, report, progress) for _ in range(workers))
            )
        finally:
            progress.close()
        logger.info(
            "Enrichment done: %d enriched, %d failed, %d skipped",
            report.enriched, report.failed, report.skipped,
        )
        return report

    async def _worker(self, queue: asyncio.Queue, entities: Sequence[Entity], report: EnrichmentReport, progress) -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            entity = entities[index]
            outcome = await attempt(
                lambda: self.enrich(entity), ErrorKind.ENRICHMENT, f"Enrichment of {entity.identity}"
            )
            if not outcome.ok:
                report.failed += 1
            elif outcome.value:
                report.enriched += 1
            progress.update(1)
            queue.task_done()
            await asyncio.sleep(random.uniform(*self.pause_ms) / 1000)

    async def enrich(self, entity: Entity) -> List[str]:
        """Visit the entity's detail page and fill its missing fields."""
        missing = set(entity.missing(spec.name for spec in self.source.detail_fields))
        specs = [spec for spec in self.source.detail_fields if spec.name in missing]
        if not specs:
            return []
        context = await self.driver.new_isolated_context()
        try:
            await with_retry(
                lambda: context.navigate(entity.identity.key),
                max_attempts=self.retry_attempts,
                base_delay=self.retry_delay,
            )
            roots = await context.query_all("body")
            if not roots:
                return []
            values = {spec.name: await extract_field(roots[0], spec) for spec in specs}
        finally:
            await context.close()
        filled = entity.fill_missing(values)
        logger.debug("Enriched %s: %s", entity.identity, ", ".join(filled) or "nothing new")
        return filled
