"""Cheap first-pass tagging that decides whether a Work reaches the strict critic."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from curatorworks.libs.vlm import ImageRef, VisionCompletion

from .config import CurationSettings
from .curation_types import Tag
from .errors import BudgetExceeded, CurationError, InvalidInput, backend_errors
from .governor import BudgetGovernor
from .parsing import extract_json_object
from .prompts import render_triage_prompt, triage_system_prompt
from .store import CurationStore

logger = logging.getLogger(__name__)

STATUS_DISABLED = "disabled"
STATUS_SKIPPED = "skipped_by_sampling"
STATUS_TAGGED = "tagged"


@dataclass(frozen=True)
class TriageOutcome:
    status: str
    work_id: str
    tag: Optional[Tag] = None

    @property
    def send_to_curator(self) -> bool:
        return bool(self.tag and self.tag.send_to_curator)

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status,
            "work_id": self.work_id,
            "send_to_curator": self.send_to_curator,
            "tag": self.tag.to_dict() if self.tag else None,
        }


@dataclass
class BackfillReport:
    total_works: int = 0
    already_tagged: int = 0
    queued_for_tagging: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    budget_exhausted: bool = False
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.budget_exhausted:
            return (
                f"Daily budget reached after tagging {self.processed} of "
                f"{self.queued_for_tagging} works"
            )
        return f"Tagged {self.processed} of {self.queued_for_tagging} untagged works"

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_works": self.total_works,
            "already_tagged": self.already_tagged,
            "queued_for_tagging": self.queued_for_tagging,
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": self.errors,
            "budget_exhausted": self.budget_exhausted,
            "failed": dict(self.failed),
            "message": self.message,
        }


class TriageClassifier:
    def __init__(
        self,
        client: VisionCompletion,
        store: CurationStore,
        governor: BudgetGovernor,
        settings: CurationSettings,
    ) -> None:
        self.client = client
        self.store = store
        self.governor = governor
        self.settings = settings

    async def classify(self, work_id: str, image_url: str) -> TriageOutcome:
        """Tag one Work; exactly one Tag is written on success, none on failure.

        Budget denial, upstream and parse failures propagate to the caller.
        """

        if not work_id or not image_url:
            raise InvalidInput("Triage requires both work_id and image_url")

        if not self.settings.triage_enabled:
            logger.debug("Triage disabled; skipping %s", work_id)
            return TriageOutcome(status=STATUS_DISABLED, work_id=work_id)

        if not self.governor.admit(self.settings.triage_sample_rate):
            logger.debug(
                "Triage sampling (rate %.2f) skipped %s",
                self.settings.triage_sample_rate,
                work_id,
            )
            return TriageOutcome(status=STATUS_SKIPPED, work_id=work_id)

        with backend_errors():
            image = ImageRef.from_url(image_url)

        await self.governor.reserve(self.settings.triage_cost_estimate_usd)

        version = self.settings.tagger_version
        with backend_errors():
            text = await self.client.complete(
                render_triage_prompt(work_id=work_id, version=version),
                [image],
                system=triage_system_prompt(version),
            )
        payload = extract_json_object(text)
        tag = Tag.from_payload(payload, default_version=version, raw=text)

        await self.store.upsert_tag(work_id, tag)
        logger.info(
            "Tagged %s (type=%s, risk=%s, send_to_curator=%s)",
            work_id,
            tag.taxonomy.type or "?",
            tag.quality.artifact_risk,
            tag.send_to_curator,
        )
        return TriageOutcome(status=STATUS_TAGGED, work_id=work_id, tag=tag)

    async def backfill(self, *, limit: Optional[int] = None) -> BackfillReport:
        """Tag stored works that have no Tag yet, one at a time.

        Each work goes through :meth:`classify`, so the enable flag, sampling
        and the daily budget apply as they do for new uploads. A failed work
        is counted and left untagged; a budget refusal stops the pass.
        """

        works = await self.store.list_works()
        report = BackfillReport(total_works=len(works))
        queue = []
        for work in works:
            if await self.store.get_tag(work.id) is not None:
                report.already_tagged += 1
            else:
                queue.append(work)
        if limit is not None:
            queue = queue[: max(0, limit)]
        report.queued_for_tagging = len(queue)

        for work in queue:
            try:
                outcome = await self.classify(work.id, work.image_url)
            except BudgetExceeded as exc:
                logger.warning("Backfill stopped at %s: %s", work.id, exc.message)
                report.budget_exhausted = True
                break
            except CurationError as exc:
                logger.warning("Backfill could not tag %s (%s): %s", work.id, exc.kind, exc.message)
                report.errors += 1
                report.failed[work.id] = exc.kind
                continue
            if outcome.status == STATUS_TAGGED:
                report.processed += 1
            else:
                report.skipped += 1

        logger.info(
            "Backfill: %d works, %d already tagged, %d queued, %d processed, %d errors",
            report.total_works,
            report.already_tagged,
            report.queued_for_tagging,
            report.processed,
            report.errors,
        )
        return report


__all__ = [
    "STATUS_DISABLED",
    "STATUS_SKIPPED",
    "STATUS_TAGGED",
    "BackfillReport",
    "TriageOutcome",
    "TriageClassifier",
]
