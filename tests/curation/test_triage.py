import asyncio
import random
from dataclasses import replace

import pytest

from curatorworks.apps.curation.errors import (
    BudgetExceeded,
    InvalidInput,
    MalformedResponse,
    UpstreamUnavailable,
)
from curatorworks.apps.curation.governor import BudgetGovernor
from curatorworks.apps.curation.store import InMemoryStore
from curatorworks.apps.curation.triage import TriageClassifier

from curation_fakes import FakeVisionClient, make_work, tag_json


def _classifier(settings, replies, *, budget=1.0, rng=None):
    store = InMemoryStore()
    governor = BudgetGovernor(budget, rng=rng or random.Random(3))
    client = FakeVisionClient(replies)
    return TriageClassifier(client, store, governor, settings), store, governor, client


def test_classify_writes_tag_and_returns_routing(settings):
    async def _run():
        classifier, store, governor, client = _classifier(settings, tag_json())
        await store.upsert_work(make_work("w1"))

        outcome = await classifier.classify("w1", "https://img.example/w1.jpg")

        assert outcome.status == "tagged"
        assert outcome.send_to_curator is True
        assert (await store.get_tag("w1")) == outcome.tag
        assert governor.daily_spend == pytest.approx(settings.triage_cost_estimate_usd)
        assert client.calls[0]["images"][0].url == "https://img.example/w1.jpg"

    asyncio.run(_run())


@pytest.mark.parametrize("work_id, url", [("", "https://x"), ("w1", ""), (None, None)])
def test_missing_arguments_are_invalid(settings, work_id, url):
    classifier, *_ = _classifier(settings, tag_json())

    with pytest.raises(InvalidInput):
        asyncio.run(classifier.classify(work_id, url))


def test_disabled_triage_is_a_no_op(settings):
    async def _run():
        classifier, store, governor, client = _classifier(
            replace(settings, triage_enabled=False), tag_json()
        )
        await store.upsert_work(make_work("w1"))
        outcome = await classifier.classify("w1", "https://x")
        assert outcome.status == "disabled"
        assert client.calls == []
        assert await store.get_tag("w1") is None
        assert governor.calls_made == 0

    asyncio.run(_run())


def test_sampling_denial_skips_without_spend(settings):
    async def _run():
        classifier, store, governor, client = _classifier(
            replace(settings, triage_sample_rate=0.0), tag_json()
        )
        await store.upsert_work(make_work("w1"))
        outcome = await classifier.classify("w1", "https://x")
        assert outcome.status == "skipped_by_sampling"
        assert outcome.send_to_curator is False
        assert client.calls == []
        assert governor.daily_spend == 0.0

    asyncio.run(_run())


def test_budget_exhaustion_propagates_without_calling_backend(settings):
    async def _run():
        classifier, store, _, client = _classifier(settings, tag_json(), budget=0.0)
        await store.upsert_work(make_work("w1"))
        with pytest.raises(BudgetExceeded):
            await classifier.classify("w1", "https://x")
        assert client.calls == []

    asyncio.run(_run())


@pytest.mark.parametrize(
    "reply, error",
    [
        ("I could not see the image.", MalformedResponse),
        ('{"taxonomy": {}}', MalformedResponse),
        (UpstreamUnavailable("timeout"), UpstreamUnavailable),
    ],
)
def test_failures_propagate_and_leave_tag_unset(settings, reply, error):
    async def _run():
        classifier, store, _, _ = _classifier(settings, [reply])
        await store.upsert_work(make_work("w1"))
        with pytest.raises(error):
            await classifier.classify("w1", "https://x")
        assert await store.get_tag("w1") is None

    asyncio.run(_run())


def test_reclassifying_overwrites_the_single_tag(settings):
    async def _run():
        classifier, store, _, _ = _classifier(
            settings,
            [tag_json(send_to_curator=True), tag_json(send_to_curator=False)],
        )
        await store.upsert_work(make_work("w1"))
        await classifier.classify("w1", "https://x")
        second = await classifier.classify("w1", "https://x")

        stored = await store.get_tag("w1")
        assert stored == second.tag
        assert stored.send_to_curator is False
        assert len(store._tags) == 1

    asyncio.run(_run())


def test_backfill_tags_only_untagged_works(settings):
    async def _run():
        replies = [tag_json(), tag_json(), "not json", tag_json(send_to_curator=False)]
        classifier, store, governor, client = _classifier(settings, replies)
        for index in range(4):
            await store.upsert_work(make_work(f"w{index}"))
        await classifier.classify("w0", "https://img.example/w0.jpg")

        report = await classifier.backfill()
        return report, [await store.get_tag(f"w{index}") for index in range(4)], client

    report, tags, client = asyncio.run(_run())

    assert report.to_dict() == {
        "total_works": 4,
        "already_tagged": 1,
        "queued_for_tagging": 3,
        "processed": 2,
        "skipped": 0,
        "errors": 1,
        "budget_exhausted": False,
        "failed": {"w2": "malformed_response"},
        "message": "Tagged 2 of 3 untagged works",
    }
    assert tags[1] is not None
    assert tags[2] is None
    assert tags[3].send_to_curator is False
    assert len(client.calls) == 4


def test_backfill_stops_when_budget_runs_out(settings):
    async def _run():
        cost = settings.triage_cost_estimate_usd
        classifier, store, governor, _ = _classifier(settings, tag_json(), budget=cost * 2)
        for index in range(5):
            await store.upsert_work(make_work(f"w{index}"))
        return await classifier.backfill(), governor.status()

    report, status = asyncio.run(_run())

    assert report.processed == 2
    assert report.queued_for_tagging == 5
    assert report.budget_exhausted is True
    assert report.message.startswith("Daily budget reached")
    assert status.calls_made == 2


def test_backfill_respects_limit_and_disabled_triage(settings):
    async def _run(run_settings, limit):
        classifier, store, _, client = _classifier(run_settings, tag_json())
        for index in range(3):
            await store.upsert_work(make_work(f"w{index}"))
        return await classifier.backfill(limit=limit), client.calls

    limited, limited_calls = asyncio.run(_run(settings, 1))
    disabled, disabled_calls = asyncio.run(_run(replace(settings, triage_enabled=False), None))

    assert limited.queued_for_tagging == 1
    assert limited.processed == 1
    assert len(limited_calls) == 1
    assert disabled.processed == 0
    assert disabled.skipped == 3
    assert disabled_calls == []
