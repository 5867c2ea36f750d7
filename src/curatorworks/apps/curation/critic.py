"""Strict critic: gated, weighted, banded verdicts persisted onto Works."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from curatorworks.libs.vlm import ImageRef, VisionCompletion

from .config import CurationSettings
from .curation_types import (
    SCORE_KEYS,
    CriticScores,
    CritiqueResult,
    GateChecks,
    _clamp,
    _string_list,
)
from .errors import NoImageProvided, backend_errors
from .governor import BudgetGovernor
from .models import Curated, SubScores, Work
from .parsing import extract_json_object, require_mapping
from .prompts import CriticPersona, get_persona
from .scoring import ScoringPolicy, evaluate
from .store import CurationStore

logger = logging.getLogger(__name__)

_STRONG_SCORE = 85

# critic sub-score -> persisted Work sub-score
SUB_SCORE_MAP = {
    "cultural_dialogue": "cultural_relevance",
    "technical_excellence": "technical_execution",
    "conceptual_strength": "conceptual_depth",
    "paris_photo_ready": "emotional_resonance",
    "ai_criticality": "innovation_index",
}


def to_sub_scores(scores: CriticScores) -> SubScores:
    values = scores.as_dict()
    return SubScores(**{target: values[source] for source, target in SUB_SCORE_MAP.items()})


def derive_reverse_prompt(
    scores: CriticScores, *, agent_source: str, persona: CriticPersona
) -> str:
    """Describe how to regenerate a work of this calibre from its sub-scores."""

    values = scores.as_dict()
    subject = f"{agent_source} artwork" if agent_source else "contemporary digital artwork"
    qualities = (
        persona.quality_phrases
        if values["technical_excellence"] > _STRONG_SCORE
        else persona.loose_phrases
    )
    concept = (
        "with deep symbolic meaning and conceptual depth"
        if values["conceptual_strength"] > _STRONG_SCORE
        else "with artistic flair and visual impact"
    )
    stance = (
        "pushing creative boundaries"
        if values["ai_criticality"] > _STRONG_SCORE
        else "showing creative expression"
    )
    return f"Create a {subject} featuring {', '.join(qualities)}, {concept}, {stance}"


class StrictCritic:
    def __init__(
        self,
        client: VisionCompletion,
        store: CurationStore,
        settings: CurationSettings,
        persona: Optional[CriticPersona] = None,
        *,
        governor: Optional[BudgetGovernor] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings
        self.persona = persona or get_persona(settings.default_persona)
        self.governor = governor
        self.policy = ScoringPolicy.from_settings(settings, self.persona)

    @property
    def curator_agent(self) -> str:
        return self.persona.name

    async def critique(
        self,
        *,
        work_id: Optional[str] = None,
        image_url: Optional[str] = None,
        image_data: Optional[bytes] = None,
    ) -> CritiqueResult:
        """Critique a stored Work or a bare image.

        With a ``work_id`` the full curation is written in one ``upsert_work``;
        any failure before that point leaves the stored Work untouched.
        """

        work: Optional[Work] = None
        if work_id:
            work = await self.store.get_work(work_id)

        with backend_errors():
            if image_data:
                image = ImageRef.from_bytes(image_data)
            elif image_url:
                image = ImageRef.from_url(image_url)
            elif work is not None and work.image_url:
                image = ImageRef.from_url(work.image_url)
            else:
                raise NoImageProvided(
                    "Provide a work_id with an image, an image_url or image data"
                )

        if self.governor is not None:
            await self.governor.reserve(self.settings.critic_cost_estimate_usd)

        instruction = self.persona.render_user_prompt(
            title=work.title if work else "untitled",
            agent_source=work.agent_source if work else "unknown",
            description=(work.description if work else "") or "",
        )
        with backend_errors():
            text = await self.client.complete(
                instruction, [image], system=self.persona.system_prompt
            )
        result = self._parse(text)

        if work is not None:
            await self._persist(work.id, result)
        logger.info(
            "[%s] %s -> %s (%d, weighted %.3f%s)",
            self.curator_agent,
            work_id or "<image>",
            result.verdict,
            result.final_score,
            result.weighted_total,
            ", gate capped" if result.gate.failures() else "",
        )
        return result

    def _parse(self, text: str) -> CritiqueResult:
        payload = extract_json_object(text)
        gate = GateChecks.from_dict(require_mapping(payload, "gate", raw=text), raw=text)
        scores = CriticScores.from_dict(
            require_mapping(payload, "scores_raw", raw=text), raw=text
        )
        rationales_raw = payload.get("rationales")
        if not isinstance(rationales_raw, dict):
            rationales_raw = {}
        rationales = {key: str(rationales_raw.get(key) or "") for key in SCORE_KEYS}
        flags = [flag.lower() for flag in _string_list(payload.get("flags"))]
        outcome = evaluate(scores, gate, flags, self.policy)

        confidence = _clamp(payload.get("confidence"), 0.0, 1.0)
        model_total = _clamp(payload.get("weighted_total"), 0.0, 1.0)
        model_verdict = payload.get("verdict")
        if model_verdict and str(model_verdict).upper() != outcome.verdict:
            logger.debug(
                "Model verdict %s overridden by computed %s", model_verdict, outcome.verdict
            )
        prompt_patch = str(payload.get("prompt_patch") or "").strip() or None
        return CritiqueResult(
            i_see=str(payload.get("i_see") or "").strip(),
            gate=gate,
            scores_raw=scores,
            rationales=rationales,
            weighted_total=outcome.weighted_total,
            final_score=outcome.final_score,
            verdict=outcome.verdict,
            confidence=confidence if confidence is not None else 0.0,
            flags=flags,
            prompt_patch=prompt_patch,
            curator_agent=self.curator_agent,
            model_verdict=str(model_verdict).upper() if model_verdict else None,
            model_weighted_total=model_total,
        )

    def _strengths_and_improvements(self, result: CritiqueResult) -> tuple:
        values = result.scores_raw.as_dict()
        strengths: List[str] = []
        improvements: List[str] = []
        for key in SCORE_KEYS:
            note = result.rationales.get(key) or key.replace("_", " ")
            if values[key] >= self.policy.band_include:
                strengths.append(note)
            elif values[key] < self.policy.band_maybe:
                improvements.append(note)
        improvements.extend(f"gate failed: {name}" for name in result.gate.failures())
        if result.prompt_patch:
            improvements.append(result.prompt_patch)
        return tuple(strengths), tuple(improvements)

    async def _persist(self, work_id: str, result: CritiqueResult) -> None:
        current = await self.store.get_work(work_id)
        strengths, improvements = self._strengths_and_improvements(result)
        reverse_prompt = result.prompt_patch or derive_reverse_prompt(
            result.scores_raw, agent_source=current.agent_source, persona=self.persona
        )
        curated = Curated(
            curator_agent=self.curator_agent,
            score=result.final_score,
            verdict=result.verdict,
            analysis=result.i_see,
            strengths=strengths,
            improvements=improvements,
            sub_scores=to_sub_scores(result.scores_raw),
            confidence=result.confidence,
            flags=tuple(result.flags),
            reverse_prompt=reverse_prompt,
        )
        await self.store.upsert_work(replace(current, curation=curated))


__all__ = [
    "SUB_SCORE_MAP",
    "StrictCritic",
    "derive_reverse_prompt",
    "to_sub_scores",
]
