"""Ingestion hook: triage each new Work and send promising ones to the critic."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

from .critic import StrictCritic
from .curation_types import CritiqueResult
from .errors import CurationError
from .triage import TriageClassifier, TriageOutcome

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    work_id: str
    triage: Optional[TriageOutcome] = None
    critique: Optional[CritiqueResult] = None
    error_stage: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> Dict[str, object]:
        return {
            "work_id": self.work_id,
            "triage": self.triage.to_dict() if self.triage else None,
            "critique": self.critique.to_dict() if self.critique else None,
            "error": (
                {
                    "stage": self.error_stage,
                    "type": self.error_kind,
                    "message": self.error_message,
                }
                if self.error_kind
                else None
            ),
        }


class AutoCurationDispatcher:
    def __init__(
        self,
        classifier: TriageClassifier,
        critic: StrictCritic,
        *,
        critique_on_route: bool = True,
    ) -> None:
        self.classifier = classifier
        self.critic = critic
        self.critique_on_route = critique_on_route
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, work_id: str, image_url: str) -> DispatchReport:
        """Run triage then, if routed, the strict critic. Never raises."""

        report = DispatchReport(work_id=work_id)
        stage = "triage"
        try:
            report.triage = await self.classifier.classify(work_id, image_url)
            if self.critique_on_route and report.triage.send_to_curator:
                stage = "critique"
                report.critique = await self.critic.critique(
                    work_id=work_id, image_url=image_url
                )
        except CurationError as exc:
            report.error_stage = stage
            report.error_kind = exc.kind
            report.error_message = exc.message
            logger.warning("Dispatch %s failed at %s (%s): %s", work_id, stage, exc.kind, exc.message)
        except Exception as exc:  # noqa: BLE001
            report.error_stage = stage
            report.error_kind = "internal_error"
            report.error_message = str(exc)
            logger.exception("Dispatch %s crashed at %s", work_id, stage)
        return report

    def submit(self, work_id: str, image_url: str) -> asyncio.Task:
        """Schedule :meth:`dispatch` on the running loop and return immediately."""

        task = asyncio.get_running_loop().create_task(self.dispatch(work_id, image_url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))


__all__ = ["DispatchReport", "AutoCurationDispatcher"]
