import itertools
import random

import pytest

from curatorworks.apps.curation.curation_types import SCORE_KEYS, CriticScores, GateChecks
from curatorworks.apps.curation.errors import InvalidInput
from curatorworks.apps.curation.prompts import NINA, SUE
from curatorworks.apps.curation.scoring import (
    ScoringPolicy,
    band_verdict,
    evaluate,
    penalty_for,
    post_penalty_score,
    weighted_total,
)


def _scores(*values):
    return CriticScores(**dict(zip(SCORE_KEYS, values)))


def _uniform(value):
    return _scores(*([value] * len(SCORE_KEYS)))


PASSING = GateChecks(print_integrity=True, artifact_control=True, ethics_process="present")


@pytest.mark.parametrize("weights", [NINA.weights, SUE.weights, {k: 1.0 for k in SCORE_KEYS}])
def test_weighted_total_is_monotonic_in_each_sub_score(weights):
    rng = random.Random(7)
    for _ in range(200):
        base = [rng.randint(0, 100) for _ in SCORE_KEYS]
        for index in range(len(SCORE_KEYS)):
            if base[index] == 100:
                continue
            bumped = list(base)
            bumped[index] = rng.randint(base[index], 100)
            assert weighted_total(_scores(*bumped), weights) >= weighted_total(
                _scores(*base), weights
            )


def test_weighted_total_is_normalised():
    weights = NINA.weights

    assert weighted_total(_uniform(0), weights) == 0.0
    assert weighted_total(_uniform(100), weights) == pytest.approx(1.0)
    assert weighted_total(_uniform(75), weights) == pytest.approx(0.75)


@pytest.mark.parametrize(
    "score, verdict",
    [(92, "MASTERWORK"), (80, "INCLUDE"), (65, "MAYBE"), (40, "EXCLUDE"),
     (90, "MASTERWORK"), (89, "INCLUDE"), (75, "INCLUDE"), (74, "MAYBE"),
     (60, "MAYBE"), (59, "EXCLUDE")],
)
def test_band_verdict_uses_inclusive_lower_bounds(score, verdict):
    assert band_verdict(score) == verdict


@pytest.mark.parametrize("value, verdict", [(92, "MASTERWORK"), (80, "INCLUDE"), (65, "MAYBE"), (40, "EXCLUDE"), (75, "INCLUDE"), (90, "MASTERWORK")])
def test_evaluate_bands_uniform_scores(value, verdict):
    policy = ScoringPolicy(weights=NINA.weights)

    outcome = evaluate(_uniform(value), PASSING, [], policy)

    assert outcome.final_score == value
    assert outcome.verdict == verdict


def test_borderline_scores_round_down():
    assert post_penalty_score(0.7499, 0) == 74
    assert post_penalty_score(0.8999, 0) == 89
    assert post_penalty_score(0.75, 0) == 75


def test_penalties_are_cumulative_and_floor_at_zero():
    assert penalty_for(["artifacting", "derivative"]) == 15
    assert penalty_for(["artifacting", "weak_print", "unclear_process", "derivative"]) == 30
    assert penalty_for(["artifacting", "artifacting"]) == 10
    assert penalty_for(["unrelated"]) == 0
    assert post_penalty_score(0.2, 30) == 0


def test_penalties_apply_before_banding():
    policy = ScoringPolicy(weights=NINA.weights)

    outcome = evaluate(_uniform(92), PASSING, ["weak_print"], policy)

    assert outcome.final_score == 82
    assert outcome.verdict == "INCLUDE"


GATE_FAILURES = [
    GateChecks(print_integrity=False, artifact_control=True, ethics_process="present"),
    GateChecks(print_integrity=True, artifact_control=False, ethics_process="present"),
    GateChecks(print_integrity=True, artifact_control=True, ethics_process="absent"),
    GateChecks(print_integrity=False, artifact_control=False, ethics_process="absent"),
]


@pytest.mark.parametrize("gate", GATE_FAILURES)
@pytest.mark.parametrize("cap", ["MAYBE", "EXCLUDE"])
def test_gate_failure_never_yields_include_or_better(gate, cap):
    policy = ScoringPolicy(weights=NINA.weights, gate_cap=cap)
    for values in itertools.product((0, 59, 75, 90, 100), repeat=2):
        scores = _scores(values[0], values[1], values[0], values[1], values[0])
        outcome = evaluate(scores, gate, [], policy)
        assert outcome.verdict not in {"MASTERWORK", "INCLUDE"}
        assert outcome.gate_failures == gate.failures()


def test_gate_cap_does_not_raise_an_exclude():
    gate = GATE_FAILURES[0]
    policy = ScoringPolicy(weights=NINA.weights)

    outcome = evaluate(_uniform(30), gate, [], policy)

    assert outcome.verdict == "EXCLUDE"
    assert outcome.capped is False


def test_todo_ethics_does_not_cap():
    gate = GateChecks(print_integrity=True, artifact_control=True, ethics_process="todo")
    policy = ScoringPolicy(weights=NINA.weights)

    assert evaluate(_uniform(95), gate, [], policy).verdict == "MASTERWORK"


def test_round_trip_scores_land_in_include_or_better():
    policy = ScoringPolicy(weights=NINA.weights)

    outcome = evaluate(_scores(90, 85, 88, 90, 80), PASSING, [], policy)

    assert 0.75 <= outcome.weighted_total <= 1.0
    assert outcome.verdict in {"INCLUDE", "MASTERWORK"}


def test_policy_rejects_bad_weights():
    with pytest.raises(InvalidInput):
        ScoringPolicy(weights={"paris_photo_ready": 1.0})
    with pytest.raises(InvalidInput):
        ScoringPolicy(weights={key: 0.0 for key in SCORE_KEYS})
