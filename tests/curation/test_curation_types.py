import json

import pytest

from curatorworks.apps.curation.curation_types import CriticScores, GateChecks, Tag
from curatorworks.apps.curation.errors import MalformedResponse

from curation_fakes import tag_json


def test_tag_from_payload_parses_all_sections():
    tag = Tag.from_payload(json.loads(tag_json()), default_version="x")

    assert tag.taxonomy.subject == ["pier", "fog"]
    assert tag.features.text_presence is False
    assert tag.quality.artifact_risk == "low"
    assert tag.send_to_curator is True
    assert tag.version == "tagger-1.0"


def test_tag_requires_routing_decision():
    payload = json.loads(tag_json())
    del payload["routing"]["send_to_curator"]

    with pytest.raises(MalformedResponse):
        Tag.from_payload(payload)


def test_tag_rejects_unknown_artifact_risk():
    payload = json.loads(tag_json(artifact_risk="extreme"))

    with pytest.raises(MalformedResponse):
        Tag.from_payload(payload)


def test_tag_clamps_print_readiness_and_round_trips():
    payload = json.loads(tag_json())
    payload["quality"]["print_readiness"] = 3.5

    tag = Tag.from_payload(payload)

    assert tag.quality.print_readiness == 1.0
    assert Tag.from_dict(tag.to_dict()) == tag


def test_critic_scores_require_every_key():
    with pytest.raises(MalformedResponse):
        CriticScores.from_dict({"paris_photo_ready": 80})


def test_critic_scores_clamp_to_range():
    scores = CriticScores.from_dict(
        {
            "paris_photo_ready": 140,
            "ai_criticality": -5,
            "conceptual_strength": "70",
            "technical_excellence": 60.6,
            "cultural_dialogue": 50,
        }
    )

    assert scores.as_dict() == {
        "paris_photo_ready": 100,
        "ai_criticality": 0,
        "conceptual_strength": 70,
        "technical_excellence": 61,
        "cultural_dialogue": 50,
    }


def test_gate_todo_is_not_a_failure():
    gate = GateChecks.from_dict(
        {"print_integrity": True, "artifact_control": True, "ethics_process": "todo"}
    )

    assert gate.passed
    assert gate.failures() == []


def test_gate_rejects_non_boolean_values():
    with pytest.raises(MalformedResponse):
        GateChecks.from_dict(
            {"print_integrity": "maybe", "artifact_control": True, "ethics_process": "present"}
        )
