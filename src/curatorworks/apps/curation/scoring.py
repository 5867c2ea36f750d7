"""Pure scoring contract for the strict critic: weights, penalties, gates, bands."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .curation_types import SCORE_KEYS, CriticScores, GateChecks
from .errors import InvalidInput

MAJOR_FLAGS = ("artifacting", "weak_print")
MINOR_FLAGS = ("unclear_process", "derivative")

# Highest first; a lower index is a stronger verdict.
VERDICT_ORDER = ("MASTERWORK", "INCLUDE", "MAYBE", "EXCLUDE")

_FLOAT_SLACK = 1e-9


@dataclass(frozen=True)
class ScoringPolicy:
    weights: Mapping[str, float]
    band_masterwork: int = 90
    band_include: int = 75
    band_maybe: int = 60
    penalty_major: int = 10
    penalty_minor: int = 5
    gate_cap: str = "MAYBE"

    def __post_init__(self) -> None:
        missing = [key for key in SCORE_KEYS if key not in self.weights]
        if missing:
            raise InvalidInput(f"Weights missing for: {', '.join(missing)}")
        if any(float(self.weights[key]) < 0 for key in SCORE_KEYS):
            raise InvalidInput("Weights must be non-negative")
        if sum(float(self.weights[key]) for key in SCORE_KEYS) <= 0:
            raise InvalidInput("At least one weight must be positive")
        if self.gate_cap not in VERDICT_ORDER:
            raise InvalidInput(f"Unknown gate cap '{self.gate_cap}'")

    @classmethod
    def from_settings(cls, settings, persona) -> "ScoringPolicy":
        return cls(
            weights=persona.normalised_weights(settings.critic_weights),
            band_masterwork=settings.band_masterwork,
            band_include=settings.band_include,
            band_maybe=settings.band_maybe,
            penalty_major=settings.penalty_major,
            penalty_minor=settings.penalty_minor,
            gate_cap=settings.gate_cap,
        )


@dataclass(frozen=True)
class ScoreOutcome:
    weighted_total: float
    final_score: int
    verdict: str
    penalty: int
    gate_failures: List[str] = field(default_factory=list)
    capped: bool = False


def _score_values(scores: CriticScores | Mapping[str, float]) -> Dict[str, float]:
    if isinstance(scores, CriticScores):
        return {key: float(value) for key, value in scores.as_dict().items()}
    return {key: float(scores[key]) for key in SCORE_KEYS}


def weighted_total(
    scores: CriticScores | Mapping[str, float], weights: Mapping[str, float]
) -> float:
    """``sum(w * s) / (100 * sum(w))``, in [0, 1]."""

    values = _score_values(scores)
    total_weight = sum(float(weights[key]) for key in SCORE_KEYS)
    if total_weight <= 0:
        raise InvalidInput("At least one weight must be positive")
    numerator = sum(float(weights[key]) * values[key] for key in SCORE_KEYS)
    return max(0.0, min(1.0, numerator / (100.0 * total_weight)))


def penalty_for(flags: Iterable[str], *, major: int = 10, minor: int = 5) -> int:
    distinct = {str(flag).strip().lower() for flag in flags}
    penalty = 0
    for flag in MAJOR_FLAGS:
        if flag in distinct:
            penalty += major
    for flag in MINOR_FLAGS:
        if flag in distinct:
            penalty += minor
    return penalty


def post_penalty_score(total: float, penalty: int) -> int:
    """Floor ``total * 100`` then deduct; never rounds a borderline score up."""

    base = math.floor(total * 100.0 + _FLOAT_SLACK)
    return max(0, min(100, base - int(penalty)))


def band_verdict(
    score: int, *, masterwork: int = 90, include: int = 75, maybe: int = 60
) -> str:
    if score >= masterwork:
        return "MASTERWORK"
    if score >= include:
        return "INCLUDE"
    if score >= maybe:
        return "MAYBE"
    return "EXCLUDE"


def cap_verdict(verdict: str, cap: str) -> Tuple[str, bool]:
    if VERDICT_ORDER.index(verdict) < VERDICT_ORDER.index(cap):
        return cap, True
    return verdict, False


def evaluate(
    scores: CriticScores,
    gate: GateChecks,
    flags: Iterable[str],
    policy: ScoringPolicy,
) -> ScoreOutcome:
    total = weighted_total(scores, policy.weights)
    penalty = penalty_for(flags, major=policy.penalty_major, minor=policy.penalty_minor)
    final_score = post_penalty_score(total, penalty)
    verdict = band_verdict(
        final_score,
        masterwork=policy.band_masterwork,
        include=policy.band_include,
        maybe=policy.band_maybe,
    )
    failures = gate.failures()
    capped = False
    if failures:
        verdict, capped = cap_verdict(verdict, policy.gate_cap)
    return ScoreOutcome(
        weighted_total=round(total, 4),
        final_score=final_score,
        verdict=verdict,
        penalty=penalty,
        gate_failures=failures,
        capped=capped,
    )


def default_policy(weights: Optional[Mapping[str, float]] = None) -> ScoringPolicy:
    return ScoringPolicy(weights=weights or {key: 1.0 for key in SCORE_KEYS})


__all__ = [
    "MAJOR_FLAGS",
    "MINOR_FLAGS",
    "VERDICT_ORDER",
    "ScoringPolicy",
    "ScoreOutcome",
    "weighted_total",
    "penalty_for",
    "post_penalty_score",
    "band_verdict",
    "cap_verdict",
    "evaluate",
    "default_policy",
]
