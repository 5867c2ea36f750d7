"""Typed views of the two vision response schemas (triage tag and critique)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import MalformedResponse

SCORE_KEYS = (
    "paris_photo_ready",
    "ai_criticality",
    "conceptual_strength",
    "technical_excellence",
    "cultural_dialogue",
)
ARTIFACT_RISKS = ("low", "medium", "high")
ETHICS_STATES = ("present", "todo", "absent")


def _clamp(value: Optional[float], lower: float, upper: float) -> Optional[float]:
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):  # noqa: BLE001
        return None
    if numeric < lower:
        return lower
    if numeric > upper:
        return upper
    return numeric


def _string_list(value: object) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def _strict_bool(value: object, *, name: str, raw: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    raise MalformedResponse(f"'{name}' must be a boolean, got {value!r}", raw=raw)


def _section(payload: Dict[str, object], key: str, raw: str) -> Dict[str, object]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise MalformedResponse(f"Missing '{key}' object in response", raw=raw)
    return value


# ----------------------------------------------------------------------
# Triage tag
# ----------------------------------------------------------------------
@dataclass
class Taxonomy:
    type: str = ""
    subject: List[str] = field(default_factory=list)
    format: str = ""
    mood: List[str] = field(default_factory=list)
    series: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type,
            "subject": list(self.subject),
            "format": self.format,
            "mood": list(self.mood),
            "series": self.series,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Taxonomy":
        return cls(
            type=str(payload.get("type") or ""),
            subject=_string_list(payload.get("subject")),
            format=str(payload.get("format") or ""),
            mood=_string_list(payload.get("mood")),
            series=(str(payload["series"]).strip() or None)
            if payload.get("series")
            else None,
        )


@dataclass
class VisualFeatures:
    palette: List[str] = field(default_factory=list)
    lighting: List[str] = field(default_factory=list)
    composition: List[str] = field(default_factory=list)
    text_presence: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "palette": list(self.palette),
            "lighting": list(self.lighting),
            "composition": list(self.composition),
            "text_presence": self.text_presence,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object], *, raw: str = "") -> "VisualFeatures":
        text_presence = payload.get("text_presence", False)
        return cls(
            palette=_string_list(payload.get("palette")),
            lighting=_string_list(payload.get("lighting")),
            composition=_string_list(payload.get("composition")),
            text_presence=_strict_bool(text_presence, name="text_presence", raw=raw),
        )


@dataclass
class QualitySignals:
    artifact_risk: str = "medium"
    print_readiness: float = 0.0
    phash: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "artifact_risk": self.artifact_risk,
            "print_readiness": self.print_readiness,
            "phash": self.phash,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object], *, raw: str = "") -> "QualitySignals":
        risk = str(payload.get("artifact_risk") or "").strip().lower()
        if risk not in ARTIFACT_RISKS:
            raise MalformedResponse(
                f"artifact_risk must be one of {ARTIFACT_RISKS}, got {risk!r}", raw=raw
            )
        readiness = _clamp(payload.get("print_readiness"), 0.0, 1.0)
        phash = payload.get("phash")
        return cls(
            artifact_risk=risk,
            print_readiness=readiness if readiness is not None else 0.0,
            phash=str(phash) if phash else None,
        )


@dataclass
class Routing:
    send_to_curator: bool = False
    share_candidates: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "send_to_curator": self.send_to_curator,
            "share_candidates": list(self.share_candidates),
        }


@dataclass
class Tag:
    """Cheap triage classification for one Work; advisory input to routing."""

    taxonomy: Taxonomy
    features: VisualFeatures
    quality: QualitySignals
    routing: Routing
    confidence: float = 0.0
    version: str = ""

    @property
    def send_to_curator(self) -> bool:
        return self.routing.send_to_curator

    def to_dict(self) -> Dict[str, object]:
        return {
            "taxonomy": self.taxonomy.to_dict(),
            "features": self.features.to_dict(),
            "quality": self.quality.to_dict(),
            "routing": self.routing.to_dict(),
            "confidence": self.confidence,
            "version": self.version,
        }

    @classmethod
    def from_payload(
        cls, payload: Dict[str, object], *, default_version: str = "", raw: str = ""
    ) -> "Tag":
        """Validate a triage response; raises :class:`MalformedResponse`."""

        routing_data = _section(payload, "routing", raw)
        if "send_to_curator" not in routing_data:
            raise MalformedResponse("routing.send_to_curator missing", raw=raw)
        routing = Routing(
            send_to_curator=_strict_bool(
                routing_data.get("send_to_curator"), name="send_to_curator", raw=raw
            ),
            share_candidates=_string_list(routing_data.get("share_candidates")),
        )
        confidence = _clamp(payload.get("confidence"), 0.0, 1.0)
        return cls(
            taxonomy=Taxonomy.from_dict(_section(payload, "taxonomy", raw)),
            features=VisualFeatures.from_dict(
                _section(payload, "features", raw), raw=raw
            ),
            quality=QualitySignals.from_dict(_section(payload, "quality", raw), raw=raw),
            routing=routing,
            confidence=confidence if confidence is not None else 0.0,
            version=str(payload.get("version") or default_version),
        )

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Tag":
        return cls.from_payload(payload)


# ----------------------------------------------------------------------
# Strict critique
# ----------------------------------------------------------------------
@dataclass
class CriticScores:
    """Five raw 0-100 sub-scores returned by the strict critic."""

    paris_photo_ready: int = 0
    ai_criticality: int = 0
    conceptual_strength: int = 0
    technical_excellence: int = 0
    cultural_dialogue: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {key: int(getattr(self, key)) for key in SCORE_KEYS}

    def summary(self) -> str:
        return ", ".join(f"{key}={value}" for key, value in self.as_dict().items())

    @classmethod
    def from_dict(cls, payload: Dict[str, object], *, raw: str = "") -> "CriticScores":
        values: Dict[str, int] = {}
        for key in SCORE_KEYS:
            clamped = _clamp(payload.get(key), 0.0, 100.0)
            if clamped is None:
                raise MalformedResponse(f"scores_raw.{key} missing or not numeric", raw=raw)
            values[key] = int(round(clamped))
        return cls(**values)


@dataclass
class GateChecks:
    """Veto conditions evaluated independently of the weighted total."""

    print_integrity: bool = True
    artifact_control: bool = True
    ethics_process: str = "present"

    @property
    def passed(self) -> bool:
        return (
            self.print_integrity
            and self.artifact_control
            and self.ethics_process != "absent"
        )

    def failures(self) -> List[str]:
        failed: List[str] = []
        if not self.print_integrity:
            failed.append("print_integrity")
        if not self.artifact_control:
            failed.append("artifact_control")
        if self.ethics_process == "absent":
            failed.append("ethics_process")
        return failed

    def to_dict(self) -> Dict[str, object]:
        return {
            "print_integrity": self.print_integrity,
            "artifact_control": self.artifact_control,
            "ethics_process": self.ethics_process,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object], *, raw: str = "") -> "GateChecks":
        ethics = str(payload.get("ethics_process") or "").strip().lower()
        if ethics not in ETHICS_STATES:
            raise MalformedResponse(
                f"gate.ethics_process must be one of {ETHICS_STATES}, got {ethics!r}",
                raw=raw,
            )
        return cls(
            print_integrity=_strict_bool(
                payload.get("print_integrity"), name="print_integrity", raw=raw
            ),
            artifact_control=_strict_bool(
                payload.get("artifact_control"), name="artifact_control", raw=raw
            ),
            ethics_process=ethics,
        )


@dataclass
class CritiqueResult:
    """Structured, banded outcome of one strict critique."""

    i_see: str
    gate: GateChecks
    scores_raw: CriticScores
    rationales: Dict[str, str]
    weighted_total: float
    final_score: int
    verdict: str
    confidence: float
    flags: List[str] = field(default_factory=list)
    prompt_patch: Optional[str] = None
    curator_agent: str = ""
    model_verdict: Optional[str] = None
    model_weighted_total: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "i_see": self.i_see,
            "gate": self.gate.to_dict(),
            "scores_raw": self.scores_raw.as_dict(),
            "rationales": dict(self.rationales),
            "weighted_total": self.weighted_total,
            "final_score": self.final_score,
            "verdict": self.verdict,
            "confidence": self.confidence,
            "flags": list(self.flags),
            "prompt_patch": self.prompt_patch,
            "curator_agent": self.curator_agent,
            "model_verdict": self.model_verdict,
            "model_weighted_total": self.model_weighted_total,
        }


__all__ = [
    "SCORE_KEYS",
    "ARTIFACT_RISKS",
    "ETHICS_STATES",
    "Taxonomy",
    "VisualFeatures",
    "QualitySignals",
    "Routing",
    "Tag",
    "CriticScores",
    "GateChecks",
    "CritiqueResult",
]
