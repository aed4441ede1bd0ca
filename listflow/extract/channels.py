"""
Extraction channels.

Every pass runs three independent producers over the current state of
the interface:

* :class:`StructuredChannel` reads records through the source's
  selectors and yields full, authoritative candidates;
* :class:`TextChannel` mines references out of the visible text and
  markup of a container, regardless of DOM structure;
* :class:`NetworkChannel` mines references out of captured pagination
  responses.

The last two yield identity-only candidates.  A failing channel simply
contributes nothing to the pass.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from ..driver.base import ElementHandle, NetworkResponse, PageDriver
from ..normalize.identity import Identity, fingerprint_identity, normalize
from ..normalize.schema import NETWORK, STRUCTURED, TEXT, Candidate, is_present
from ..sources import SourceProfile
from ..utils.outcome import ErrorKind, attempt
from .fields import extract_fields, read_selector
from .patterns import ReferenceMiner

logger = logging.getLogger(__name__)


def miner_for(source: SourceProfile) -> ReferenceMiner:
    return ReferenceMiner(source.reference_patterns, source.base_url, source.identity_rules)


class StructuredChannel:
    """Selector-driven extraction of whole records."""

    name = STRUCTURED

    def __init__(self, source: SourceProfile):
        self.source = source

    async def _identity(self, record: ElementHandle, fields: dict) -> Optional[Identity]:
        source = self.source
        for selector in source.identity_selectors:
            raw = await read_selector(record, selector)
            if not raw:
                continue
            if source.identity_template:
                raw = source.identity_template.format(value=raw)
            return normalize(raw, source.base_url, source.identity_rules)
        if source.fingerprint_fields:
            return fingerprint_identity(fields.get(name) for name in source.fingerprint_fields)
        return None

    async def read_record(self, record: ElementHandle) -> Optional[Candidate]:
        """Build a candidate from one record node; ``None`` if it is not one."""
        source = self.source
        if source.record_requires and not await record.count(source.record_requires):
            return None
        fields = await extract_fields(record, source.fields)
        if any(not is_present(fields.get(name)) for name in source.record_requires_fields):
            return None
        identity = await self._identity(record, fields)
        if identity is None:
            return None
        return Candidate(identity=identity, fields=fields, channel=STRUCTURED, authoritative=True)

    async def read_link(self, link: ElementHandle) -> Optional[Candidate]:
        href = await link.attribute("href")
        if not href:
            return None
        identity = normalize(href, self.source.base_url, self.source.identity_rules)
        return Candidate(identity=identity, channel=STRUCTURED)

    async def _links(self, driver: PageDriver) -> List[Candidate]:
        candidates = []
        for link in await driver.query_all(self.source.link_selector):
            outcome = await attempt(lambda: self.read_link(link), ErrorKind.EXTRACTION, "Link read")
            if outcome.ok and outcome.value is not None:
                candidates.append(outcome.value)
        return candidates

    async def extract(self, driver: PageDriver) -> List[Candidate]:
        candidates: List[Candidate] = []
        for record in await driver.query_all(self.source.record_selector):
            outcome = await attempt(lambda: self.read_record(record), ErrorKind.EXTRACTION, "Record read")
            if outcome.ok and outcome.value is not None:
                candidates.append(outcome.value)
        if self.source.link_selector:
            candidates.extend(await self._links(driver))
        return candidates


class TextChannel:
    """Free-text mining of the container's text and markup."""

    name = TEXT

    def __init__(self, source: SourceProfile, miner: Optional[ReferenceMiner] = None):
        self.source = source
        self.miner = miner or miner_for(source)

    async def extract(self, driver: PageDriver) -> List[Candidate]:
        containers = await driver.query_all(self.source.text_container or "body")
        if not containers:
            return []
        container = containers[0]
        text = await container.text()
        markup = await container.attribute("innerHTML")
        identities = self.miner.mine(f"{text or ''}\n{markup or ''}")
        return [Candidate(identity=identity, channel=TEXT) for identity in identities]


class NetworkChannel:
    """Reference mining over captured pagination responses.

    Bodies are buffered by the response observer and drained by
    :meth:`extract` on the next pass.
    """

    name = NETWORK

    def __init__(self, source: SourceProfile, miner: Optional[ReferenceMiner] = None):
        self.source = source
        self.miner = miner or miner_for(source)
        self._bodies: List[str] = []
        self._handler = self._on_response
        self.captured = 0

    def matches(self, response: NetworkResponse) -> bool:
        source = self.source
        if source.network_method and response.method != source.network_method.upper():
            return False
        return all(fragment in response.url for fragment in source.network_url_contains)

    async def _on_response(self, response: NetworkResponse) -> None:
        body = await response.text()
        if body:
            self._bodies.append(body)
            self.captured += 1
            logger.debug("Buffered %d bytes from %s", len(body), response.url)

    @asynccontextmanager
    async def listening(self, driver: PageDriver) -> AsyncIterator["NetworkChannel"]:
        """Register the response observer for the duration of the block."""
        driver.on_network_response(self.matches, self._handler)
        try:
            yield self
        finally:
            driver.off_network_response(self._handler)

    async def extract(self, driver: Optional[PageDriver] = None) -> List[Candidate]:
        bodies, self._bodies = self._bodies, []
        candidates: List[Candidate] = []
        for body in bodies:
            candidates.extend(Candidate(identity=i, channel=NETWORK) for i in self.miner.mine(body))
        return candidates


class Extractor:
    """Runs every channel of a source and returns the union of candidates."""

    def __init__(self, source: SourceProfile):
        self.source = source
        miner = miner_for(source)
        self.structured = StructuredChannel(source)
        self.text = TextChannel(source, miner)
        self.network = NetworkChannel(source, miner) if source.sniffs_network else None

    @property
    def channels(self) -> list:
        return [c for c in (self.structured, self.text, self.network) if c is not None]

    async def extract(self, driver: PageDriver) -> List[Candidate]:
        candidates: List[Candidate] = []
        for channel in self.channels:
            outcome = await attempt(
                lambda: channel.extract(driver), ErrorKind.EXTRACTION, f"{channel.name} channel"
            )
            candidates.extend(outcome.unwrap_or([]))
        return candidates
