from dataclasses import replace

import pytest

from curatorworks.apps.curation.errors import InvalidInput
from curatorworks.apps.curation.runtime import CurationRuntime
from curatorworks.apps.curation.store import InMemoryStore, JsonFileStore

from curation_fakes import FakeVisionClient


def test_stages_share_one_governor_and_store(settings):
    runtime = CurationRuntime.build(settings, client=FakeVisionClient(), in_memory=True)

    assert isinstance(runtime.store, InMemoryStore)
    assert runtime.critic().governor is runtime.governor
    assert runtime.classifier.governor is runtime.governor
    assert runtime.orchestrator("sue").critic is runtime.critic("SUE")
    assert runtime.orchestrator() is runtime.orchestrator("nina")
    assert runtime.dispatcher.critic is runtime.critic()


def test_unknown_persona_is_invalid(settings):
    runtime = CurationRuntime.build(settings, client=FakeVisionClient(), in_memory=True)

    with pytest.raises(InvalidInput):
        runtime.critic("jerry")


def test_default_store_is_the_json_snapshot(settings, tmp_path):
    runtime = CurationRuntime.build(
        replace(settings, store_path=tmp_path / "store.json"), client=FakeVisionClient()
    )

    assert isinstance(runtime.store, JsonFileStore)
    assert runtime.store.path == tmp_path / "store.json"
