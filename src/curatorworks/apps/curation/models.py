"""Records held by the curation store: works, collections, sessions, comparisons."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Dict, List, Optional, Union

from .errors import InvalidInput, InvalidSessionTransition

VERDICTS = ("MASTERWORK", "INCLUDE", "MAYBE", "EXCLUDE")
SESSION_TYPES = ("batch", "tournament")
SESSION_STATUSES = ("active", "paused", "completed")


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class SubScores:
    """Five named 0-100 curation sub-scores persisted on a Work."""

    cultural_relevance: int
    technical_execution: int
    conceptual_depth: int
    emotional_resonance: int
    innovation_index: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "cultural_relevance": self.cultural_relevance,
            "technical_execution": self.technical_execution,
            "conceptual_depth": self.conceptual_depth,
            "emotional_resonance": self.emotional_resonance,
            "innovation_index": self.innovation_index,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "SubScores":
        return cls(**{key: int(payload[key]) for key in cls.__dataclass_fields__})


@dataclass(frozen=True)
class Uncurated:
    """A Work that has never been critiqued."""

    curated = False

    def to_dict(self) -> Optional[Dict[str, object]]:
        return None


@dataclass(frozen=True)
class Curated:
    """Complete curation written by a single critique; never partially set."""

    curator_agent: str
    score: int
    verdict: str
    analysis: str
    strengths: tuple
    improvements: tuple
    sub_scores: SubScores
    confidence: float
    flags: tuple = ()
    reverse_prompt: Optional[str] = None
    evaluated_at: str = field(default_factory=utcnow)

    curated = True

    def __post_init__(self) -> None:
        if self.verdict not in VERDICTS:
            raise InvalidInput(f"Unknown verdict '{self.verdict}'")
        if not 0 <= int(self.score) <= 100:
            raise InvalidInput(f"Curation score out of range: {self.score}")
        if not self.curator_agent:
            raise InvalidInput("Curated state requires a curator agent")

    def to_dict(self) -> Dict[str, object]:
        return {
            "curator_agent": self.curator_agent,
            "score": self.score,
            "verdict": self.verdict,
            "analysis": self.analysis,
            "strengths": list(self.strengths),
            "improvements": list(self.improvements),
            "sub_scores": self.sub_scores.to_dict(),
            "confidence": self.confidence,
            "flags": list(self.flags),
            "reverse_prompt": self.reverse_prompt,
            "evaluated_at": self.evaluated_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Curated":
        return cls(
            curator_agent=str(payload["curator_agent"]),
            score=int(payload["score"]),
            verdict=str(payload["verdict"]),
            analysis=str(payload.get("analysis") or ""),
            strengths=tuple(payload.get("strengths") or ()),
            improvements=tuple(payload.get("improvements") or ()),
            sub_scores=SubScores.from_dict(payload["sub_scores"]),
            confidence=float(payload.get("confidence") or 0.0),
            flags=tuple(payload.get("flags") or ()),
            reverse_prompt=payload.get("reverse_prompt"),
            evaluated_at=str(payload.get("evaluated_at") or utcnow()),
        )


CurationState = Union[Uncurated, Curated]
UNCURATED = Uncurated()


@dataclass
class Work:
    id: str
    title: str
    image_url: str
    agent_source: str
    description: Optional[str] = None
    external_id: Optional[str] = None
    curation: CurationState = UNCURATED
    created_at: str = field(default_factory=utcnow)

    @property
    def is_curated(self) -> bool:
        return isinstance(self.curation, Curated)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "title": self.title,
            "description": self.description,
            "image_url": self.image_url,
            "agent_source": self.agent_source,
            "curation": self.curation.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Work":
        curation_data = payload.get("curation")
        return cls(
            id=str(payload["id"]),
            external_id=payload.get("external_id"),
            title=str(payload.get("title") or ""),
            description=payload.get("description"),
            image_url=str(payload.get("image_url") or ""),
            agent_source=str(payload.get("agent_source") or ""),
            curation=Curated.from_dict(curation_data) if curation_data else UNCURATED,
            created_at=str(payload.get("created_at") or utcnow()),
        )


@dataclass
class Collection:
    id: str
    name: str
    curator_agent: str
    description: Optional[str] = None
    is_public: bool = False
    tags: List[str] = field(default_factory=list)
    work_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow)

    @property
    def work_count(self) -> int:
        return len(self.work_ids)

    def add(self, work_id: str) -> bool:
        if work_id in self.work_ids:
            return False
        self.work_ids.append(work_id)
        return True

    def remove(self, work_id: str) -> bool:
        if work_id not in self.work_ids:
            return False
        self.work_ids.remove(work_id)
        return True

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "curator_agent": self.curator_agent,
            "is_public": self.is_public,
            "tags": list(self.tags),
            "work_ids": list(self.work_ids),
            "work_count": self.work_count,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Collection":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            description=payload.get("description"),
            curator_agent=str(payload.get("curator_agent") or ""),
            is_public=bool(payload.get("is_public", False)),
            tags=list(payload.get("tags") or []),
            work_ids=list(payload.get("work_ids") or []),
            created_at=str(payload.get("created_at") or utcnow()),
        )


@dataclass
class TournamentComparison:
    """One pairwise judgement; append-only once a winner is recorded."""

    id: str
    session_id: str
    work_a: Work
    work_b: Work
    curator_agent: str
    round_index: int = 1
    winner_id: Optional[str] = None
    comparison_reasoning: Optional[str] = None
    resolved: bool = False
    last_error: Optional[str] = None
    resolved_at: Optional[str] = None

    @property
    def status(self) -> str:
        if self.resolved:
            return "resolved"
        return "failed" if self.last_error else "pending"

    def mark_failed(self, reason: str) -> None:
        if self.resolved:
            raise InvalidSessionTransition(f"Comparison {self.id} already resolved")
        self.last_error = reason

    def resolve(self, winner_id: Optional[str], reasoning: Optional[str]) -> None:
        if self.resolved:
            raise InvalidSessionTransition(
                f"Comparison {self.id} already resolved; comparisons are append-only"
            )
        if winner_id is not None and winner_id not in (self.work_a.id, self.work_b.id):
            raise InvalidInput(
                f"Winner '{winner_id}' is not a participant of comparison {self.id}"
            )
        self.winner_id = winner_id
        self.comparison_reasoning = reasoning
        self.resolved = True
        self.last_error = None
        self.resolved_at = utcnow()

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "round": self.round_index,
            "work_a": self.work_a.to_dict(),
            "work_b": self.work_b.to_dict(),
            "winner_id": self.winner_id,
            "curator_agent": self.curator_agent,
            "comparison_reasoning": self.comparison_reasoning,
            "resolved": self.resolved,
            "status": self.status,
            "last_error": self.last_error,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "TournamentComparison":
        return cls(
            id=str(payload["id"]),
            session_id=str(payload["session_id"]),
            round_index=int(payload.get("round") or 1),
            work_a=Work.from_dict(payload["work_a"]),
            work_b=Work.from_dict(payload["work_b"]),
            winner_id=payload.get("winner_id"),
            curator_agent=str(payload.get("curator_agent") or ""),
            comparison_reasoning=payload.get("comparison_reasoning"),
            resolved=bool(payload.get("resolved", False)),
            last_error=payload.get("last_error"),
            resolved_at=payload.get("resolved_at"),
        )


@dataclass
class BatchSession:
    """Progress of a cohort through batch critique or a tournament.

    ``unit_ids`` are the scheduled units of work: Work ids for a batch,
    comparison ids for a tournament, where ``unit_work_ids`` names the two
    works behind each comparison. ``total_works`` is always the cohort size
    and ``completed_works`` counts works whose units have all been counted.
    Results that land while the session is paused are parked in
    ``deferred_unit_ids`` and counted on resume.
    """

    id: str
    curator_agent: str
    session_type: str
    work_ids: List[str]
    unit_ids: List[str]
    name: Optional[str] = None
    status: str = "active"
    unit_work_ids: Dict[str, List[str]] = field(default_factory=dict)
    completed_unit_ids: List[str] = field(default_factory=list)
    deferred_unit_ids: List[str] = field(default_factory=list)
    failed_unit_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.session_type not in SESSION_TYPES:
            raise InvalidInput(f"Unknown session type '{self.session_type}'")
        if self.status not in SESSION_STATUSES:
            raise InvalidInput(f"Unknown session status '{self.status}'")

    @property
    def total_works(self) -> int:
        return len(self.work_ids)

    @property
    def completed_works(self) -> int:
        if self.session_type == "batch":
            return len(self.completed_unit_ids)
        done = set(self.completed_unit_ids)
        open_works = {
            work_id
            for unit_id in self.unit_ids
            if unit_id not in done
            for work_id in self.unit_work_ids.get(unit_id, ())
        }
        return sum(1 for work_id in self.work_ids if work_id not in open_works)

    @property
    def total_units(self) -> int:
        return len(self.unit_ids)

    @property
    def completed_units(self) -> int:
        return len(self.completed_unit_ids)

    @property
    def comparison_ids(self) -> List[str]:
        return list(self.unit_ids) if self.session_type == "tournament" else []

    @property
    def failed_work_ids(self) -> List[str]:
        return list(self.failed_unit_ids) if self.session_type == "batch" else []

    def pending_unit_ids(self) -> List[str]:
        done = set(self.completed_unit_ids) | set(self.deferred_unit_ids)
        return [unit for unit in self.unit_ids if unit not in done]

    def mark_unit_done(self, unit_id: str) -> bool:
        """Count a finished unit; returns True when the count advanced."""

        if unit_id not in self.unit_ids:
            raise InvalidInput(f"Unit '{unit_id}' is not scheduled in session {self.id}")
        if unit_id in self.completed_unit_ids or unit_id in self.deferred_unit_ids:
            return False
        if self.status == "completed":
            raise InvalidSessionTransition(f"Session {self.id} is already completed")
        if unit_id in self.failed_unit_ids:
            self.failed_unit_ids.remove(unit_id)
        if self.status == "paused":
            self.deferred_unit_ids.append(unit_id)
            self._touch()
            return False
        self.completed_unit_ids.append(unit_id)
        self._maybe_complete()
        self._touch()
        return True

    def mark_unit_failed(self, unit_id: str) -> None:
        if unit_id not in self.unit_ids:
            raise InvalidInput(f"Unit '{unit_id}' is not scheduled in session {self.id}")
        if unit_id in self.completed_unit_ids or unit_id in self.failed_unit_ids:
            return
        self.failed_unit_ids.append(unit_id)
        self._touch()

    def pause(self) -> None:
        if self.status != "active":
            raise InvalidSessionTransition(
                f"Cannot pause session {self.id} in status '{self.status}'"
            )
        self.status = "paused"
        self._touch()

    def resume(self) -> None:
        if self.status != "paused":
            raise InvalidSessionTransition(
                f"Cannot resume session {self.id} in status '{self.status}'"
            )
        self.status = "active"
        deferred, self.deferred_unit_ids = self.deferred_unit_ids, []
        self.completed_unit_ids.extend(deferred)
        self._maybe_complete()
        self._touch()

    def _maybe_complete(self) -> None:
        if self.status == "active" and self.completed_units == self.total_units:
            self.status = "completed"

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "curator_agent": self.curator_agent,
            "session_type": self.session_type,
            "status": self.status,
            "total_works": self.total_works,
            "completed_works": self.completed_works,
            "total_units": self.total_units,
            "completed_units": self.completed_units,
            "work_ids": list(self.work_ids),
            "unit_ids": list(self.unit_ids),
            "unit_work_ids": {key: list(value) for key, value in self.unit_work_ids.items()},
            "completed_unit_ids": list(self.completed_unit_ids),
            "deferred_unit_ids": list(self.deferred_unit_ids),
            "failed_unit_ids": list(self.failed_unit_ids),
            "failed_work_ids": self.failed_work_ids,
            "comparison_ids": self.comparison_ids,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "BatchSession":
        return cls(
            id=str(payload["id"]),
            name=payload.get("name"),
            curator_agent=str(payload.get("curator_agent") or ""),
            session_type=str(payload.get("session_type") or "batch"),
            status=str(payload.get("status") or "active"),
            work_ids=list(payload.get("work_ids") or []),
            unit_ids=list(payload.get("unit_ids") or []),
            unit_work_ids={
                str(key): list(value)
                for key, value in (payload.get("unit_work_ids") or {}).items()
            },
            completed_unit_ids=list(payload.get("completed_unit_ids") or []),
            deferred_unit_ids=list(payload.get("deferred_unit_ids") or []),
            failed_unit_ids=list(payload.get("failed_unit_ids") or []),
            created_at=str(payload.get("created_at") or utcnow()),
            updated_at=str(payload.get("updated_at") or utcnow()),
        )


__all__ = [
    "VERDICTS",
    "SESSION_TYPES",
    "SESSION_STATUSES",
    "new_id",
    "utcnow",
    "SubScores",
    "Uncurated",
    "Curated",
    "CurationState",
    "UNCURATED",
    "Work",
    "Collection",
    "TournamentComparison",
    "BatchSession",
]
