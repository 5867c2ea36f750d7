"""Prompt profiles for triage, strict critique and pairwise comparison."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from curatorworks.libs.prompting import PromptLibrary, PromptProfileBase

from .curation_types import SCORE_KEYS


class _MissingDefault(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _render(template: str, **context: Any) -> str:
    safe = {key: ("" if value is None else str(value)) for key, value in context.items()}
    return template.format_map(_MissingDefault(safe))


TRIAGE_SYSTEM_PROMPT = (
    "You are a fast triage tagger for an AI art archive. You label works so a strict "
    "curator only sees promising candidates. Be literal and brief.\n"
    "Return valid JSON only, no prose, matching exactly:\n"
    "{\n"
    '  "taxonomy": {"type": "photo|painting|render|collage|other", "subject": ["..."],'
    ' "format": "portrait|landscape|square", "mood": ["..."], "series": null},\n'
    '  "features": {"palette": ["..."], "lighting": ["..."], "composition": ["..."],'
    ' "text_presence": false},\n'
    '  "quality": {"artifact_risk": "low|medium|high", "print_readiness": 0.0,'
    ' "phash": null},\n'
    '  "routing": {"send_to_curator": false, "share_candidates": ["..."]},\n'
    '  "confidence": 0.0,\n'
    '  "version": "{version}"\n'
    "}\n"
    "Set send_to_curator true only when the work looks exhibition-worthy and"
    " artifact_risk is not high."
)

TRIAGE_USER_TEMPLATE = "Tag this work (id {work_id}). Schema version {version}."


def render_triage_prompt(*, work_id: str, version: str) -> str:
    return _render(TRIAGE_USER_TEMPLATE, work_id=work_id, version=version)


def triage_system_prompt(version: str) -> str:
    return TRIAGE_SYSTEM_PROMPT.replace("{version}", version)


_CRITIQUE_SCHEMA = (
    "Return valid JSON only, no prose, matching exactly:\n"
    "{\n"
    '  "i_see": "<one or two sentences describing what is in the frame>",\n'
    '  "gate": {"print_integrity": true, "artifact_control": true,'
    ' "ethics_process": "present|todo|absent"},\n'
    '  "scores_raw": {"paris_photo_ready": 0, "ai_criticality": 0,'
    ' "conceptual_strength": 0, "technical_excellence": 0, "cultural_dialogue": 0},\n'
    '  "rationales": {"paris_photo_ready": "", "ai_criticality": "",'
    ' "conceptual_strength": "", "technical_excellence": "", "cultural_dialogue": ""},\n'
    '  "weighted_total": 0.0,\n'
    '  "verdict": "MASTERWORK|INCLUDE|MAYBE|EXCLUDE",\n'
    '  "confidence": 0.0,\n'
    '  "flags": ["artifacting|weak_print|unclear_process|derivative"],\n'
    '  "prompt_patch": "<one instruction the producing agent should try next>"\n'
    "}\n"
)

_SELECTIVITY = (
    "Scores are integers 0-100. Be selective: only the top 15-25% of submissions "
    "should reach INCLUDE or better and MASTERWORK is rare. When unsure, say MAYBE.\n"
    "Gates are vetoes: print_integrity false when the file would not survive a large "
    "print, artifact_control false when generation artifacts are visible, "
    "ethics_process absent when no process or consent context can be inferred.\n"
)

CRITIQUE_USER_TEMPLATE = (
    "Critique the attached work.\n"
    "Title: {title}\n"
    "Agent: {agent_source}\n"
    "Description: {description}\n"
)


@dataclass(frozen=True)
class CriticPersona(PromptProfileBase):
    """A curator personality: its own voice and its own sub-score weights."""

    weights: Dict[str, float] = field(default_factory=dict)
    user_template: str = CRITIQUE_USER_TEMPLATE
    quality_phrases: tuple = ("highly detailed", "professional finish")
    loose_phrases: tuple = ("expressive approach", "painterly interpretation")

    def render_user_prompt(self, **context: Any) -> str:
        return _render(self.user_template, **context)

    def normalised_weights(self, override: Optional[Dict[str, float]] = None) -> Dict[str, float]:
        source = override or self.weights
        return {key: float(source.get(key, 0.0)) for key in SCORE_KEYS}


NINA = CriticPersona(
    name="nina",
    description="Strict exhibition critic; emotional impact and exhibition fitness first.",
    system_prompt=(
        "You are NINA, a strict photography and AI-art critic preparing a Paris Photo "
        "booth. You are intuitive and emotionally attuned but unsentimental about "
        "weak work. Judge exhibition impact, aesthetic innovation and print quality.\n"
        + _SELECTIVITY
        + _CRITIQUE_SCHEMA
    ),
    weights={
        "paris_photo_ready": 0.30,
        "ai_criticality": 0.25,
        "conceptual_strength": 0.20,
        "cultural_dialogue": 0.15,
        "technical_excellence": 0.10,
    },
)

SUE = CriticPersona(
    name="sue",
    description="Rigorous curator; cultural relevance and innovation first.",
    system_prompt=(
        "You are SUE, a rigorous, culturally aware curator. You read every work "
        "against contemporary art discourse and ask what it adds to the conversation "
        "about machines and authorship.\n"
        + _SELECTIVITY
        + _CRITIQUE_SCHEMA
    ),
    weights={
        "cultural_dialogue": 0.25,
        "ai_criticality": 0.25,
        "conceptual_strength": 0.20,
        "technical_excellence": 0.15,
        "paris_photo_ready": 0.15,
    },
    quality_phrases=("museum-grade detail", "precise execution"),
    loose_phrases=("exploratory study", "open-ended treatment"),
)

CRITIC_PERSONAS: PromptLibrary[CriticPersona] = PromptLibrary([NINA, SUE], default="nina")


def get_persona(name: Optional[str] = None) -> CriticPersona:
    return CRITIC_PERSONAS.get(name)


PAIRWISE_SYSTEM_PROMPT = (
    "You are the same curator who critiques these works individually.\n"
    "Two works (Work A, shown first, and Work B, shown second) meet head to head.\n"
    "Compare them directly for exhibition strength, weighing impact, concept, "
    "technical execution and cultural dialogue.\n"
    "Ignore any previous numeric scores and base your choice on what you see.\n"
    "Return valid JSON only:\n"
    '{ "winner": "A" | "B", "reason": "<1-2 sentence justification>" }'
)

PAIRWISE_USER_TEMPLATE = (
    "Work A: {title_a} by {agent_a}\n"
    "{summary_a}\n"
    "Work B: {title_b} by {agent_b}\n"
    "{summary_b}\n"
    "Which work should advance?"
)


def render_pairwise_prompt(**context: Any) -> str:
    return _render(PAIRWISE_USER_TEMPLATE, **context)


__all__ = [
    "TRIAGE_SYSTEM_PROMPT",
    "render_triage_prompt",
    "triage_system_prompt",
    "CriticPersona",
    "NINA",
    "SUE",
    "CRITIC_PERSONAS",
    "get_persona",
    "PAIRWISE_SYSTEM_PROMPT",
    "render_pairwise_prompt",
]
