"""Tests for the enrichment pool."""

from __future__ import annotations

import asyncio
from dataclasses import replace

from conftest import FakeDriver, card, detail, page, profile_url
from listflow.collect.controller import collect
from listflow.collect.enrich import EnrichmentPool
from listflow.normalize.identity import Identity, fingerprint_identity
from listflow.normalize.schema import Entity


def entity(username, **fields):
    return Entity(identity=Identity(profile_url(username), username), fields=dict(fields))


def run_pool(driver, source, entities, concurrency=2):
    pool = EnrichmentPool(driver, source, concurrency=concurrency, pause_ms=(0, 0), retry_delay=0)
    return asyncio.run(pool.run(entities))


def test_failures_are_isolated_per_item(source):
    driver = FakeDriver(
        detail_pages={
            profile_url("a"): detail(name="Ann", headline="Engineer"),
            profile_url("c"): detail(headline="Designer"),
        },
        failing_details={profile_url("b")},
    )
    entities = [
        entity("a"),
        entity("b", name="Bob"),
        entity("c", name="Cid"),
        entity("d", name="Dee", headline="Complete"),
    ]
    report = run_pool(driver, source, entities)

    assert report.queued == 3
    assert report.enriched == 2
    assert report.failed == 1
    assert report.skipped == 1
    assert entities[0].fields == {"name": "Ann", "headline": "Engineer"}
    assert entities[1].fields == {"name": "Bob"}
    assert entities[2].fields == {"name": "Cid", "headline": "Designer"}
    assert all(context.closed for context in driver.contexts)


def test_each_context_visits_only_its_own_item(source):
    urls = [profile_url(name) for name in "abcde"]
    driver = FakeDriver(detail_pages={url: detail(headline="H") for url in urls})
    entities = [entity(name, name=name.upper()) for name in "abcde"]
    run_pool(driver, source, entities, concurrency=3)

    visited = sorted(url for context in driver.contexts for url in context.visited)
    assert visited == sorted(urls)
    assert all(len(context.visited) == 1 for context in driver.contexts)
    assert all(e.fields["headline"] == "H" for e in entities)


def test_present_fields_are_never_overwritten(source):
    driver = FakeDriver(detail_pages={profile_url("a"): detail(name="Other", headline="Role")})
    entities = [entity("a", name="Keep")]
    run_pool(driver, source, entities)

    assert entities[0].fields == {"name": "Keep", "headline": "Role"}
    assert "enrichment" in entities[0].channels


def test_concurrency_is_clamped(source):
    driver = FakeDriver()
    assert EnrichmentPool(driver, source, concurrency=0).concurrency == 1
    assert EnrichmentPool(driver, source, concurrency=12).concurrency == 5


def test_entities_without_reference_are_skipped(source):
    driver = FakeDriver()
    orphan = Entity(identity=fingerprint_identity(["some post", "1d"]), fields={})
    report = run_pool(driver, source, [orphan])

    assert report.queued == 0
    assert report.skipped == 1
    assert driver.contexts == []


def test_collect_runs_enrichment_when_enabled(source, options):
    driver = FakeDriver(
        pages=[page(card("a", "Ann")), page(card("a", "Ann"))],
        detail_pages={profile_url("a"): detail(headline="Engineer")},
    )
    result = asyncio.run(collect(driver, replace(options, enrichment_enabled=True), source))

    assert result.items[0]["headline"] == "Engineer"
    assert result.enrichment.enriched == 1
