"""Batch critique and pairwise tournament sessions over a cohort of Works."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from curatorworks.libs.vlm import ImageRef, VisionCompletion

from .config import CurationSettings
from .critic import StrictCritic
from .errors import (
    CurationError,
    FeatureDisabled,
    InvalidInput,
    InvalidSessionTransition,
    MalformedResponse,
    backend_errors,
)
from .models import BatchSession, TournamentComparison, Work, new_id
from .pairing import build_pairings
from .parsing import extract_json_object
from .prompts import PAIRWISE_SYSTEM_PROMPT, render_pairwise_prompt
from .store import CurationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WavePolicy:
    """Backpressure: ``max_concurrency`` in flight, waves split by a cooldown."""

    max_concurrency: int = 3
    wave_size: int = 6
    cooldown_seconds: float = 2.0

    @classmethod
    def from_settings(cls, settings: CurationSettings) -> "WavePolicy":
        return cls(
            max_concurrency=max(1, settings.max_concurrency),
            wave_size=max(1, settings.wave_size),
            cooldown_seconds=max(0.0, settings.cooldown_seconds),
        )

    def waves(self, items: Sequence[str]) -> List[List[str]]:
        return [
            list(items[start : start + self.wave_size])
            for start in range(0, len(items), self.wave_size)
        ]


@dataclass
class RunReport:
    session: BatchSession
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "session": self.session.to_dict(),
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
            "skipped": list(self.skipped),
        }


@dataclass
class Standing:
    work_id: str
    title: str
    wins: int = 0
    comparisons: int = 0

    @property
    def win_ratio(self) -> float:
        if self.comparisons <= 0:
            return 0.0
        return self.wins / self.comparisons

    def to_dict(self) -> Dict[str, object]:
        return {
            "work_id": self.work_id,
            "title": self.title,
            "wins": self.wins,
            "comparisons": self.comparisons,
            "win_ratio": round(self.win_ratio, 4),
        }


class PairwiseComparator:
    """Asks the vision backend which of two works should advance."""

    def __init__(self, client: VisionCompletion) -> None:
        self.client = client

    async def compare(self, work_a: Work, work_b: Work) -> Tuple[Optional[str], str]:
        with backend_errors():
            images = [ImageRef.from_url(work_a.image_url), ImageRef.from_url(work_b.image_url)]
            text = await self.client.complete(
                render_pairwise_prompt(
                    title_a=work_a.title,
                    agent_a=work_a.agent_source,
                    summary_a=_summary(work_a),
                    title_b=work_b.title,
                    agent_b=work_b.agent_source,
                    summary_b=_summary(work_b),
                ),
                images,
                system=PAIRWISE_SYSTEM_PROMPT,
            )
        payload = extract_json_object(text)
        choice = str(payload.get("winner") or "").strip().upper()
        reason = str(payload.get("reason") or "").strip()
        if choice == "A":
            return work_a.id, reason
        if choice == "B":
            return work_b.id, reason
        if choice in {"TIE", "NONE", ""}:
            return None, reason
        raise MalformedResponse(f"Pairwise winner must be 'A' or 'B', got {choice!r}", raw=text)


def _summary(work: Work) -> str:
    if work.is_curated:
        return f"{work.curation.verdict}: {work.curation.analysis}"
    return work.description or ""


class TournamentOrchestrator:
    """Drives sessions; one bad work or pairing never aborts its session.

    Session read-modify-write goes through one lock so concurrent results and
    pause/resume calls cannot lose updates.
    """

    def __init__(
        self,
        store: CurationStore,
        critic: StrictCritic,
        comparator: Optional[PairwiseComparator],
        settings: CurationSettings,
        *,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.critic = critic
        self.comparator = comparator
        self.settings = settings
        self.policy = WavePolicy.from_settings(settings)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._session_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def _require_enabled(self, session_type: str) -> None:
        if not self.settings.art_curation_enabled:
            raise FeatureDisabled("Art curation is not enabled")
        if session_type == "batch" and not self.settings.batch_enabled:
            raise FeatureDisabled("Batch curation is not enabled")
        if session_type == "tournament" and not self.settings.tournament_enabled:
            raise FeatureDisabled("Tournament curation is not enabled")

    async def create_session(
        self,
        works: Sequence[Work],
        session_type: str,
        *,
        name: Optional[str] = None,
        curator_agent: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> BatchSession:
        if session_type not in ("batch", "tournament"):
            raise InvalidInput(f"Unknown session type '{session_type}'")
        self._require_enabled(session_type)
        if not works:
            raise InvalidInput("A session needs at least one work")
        work_ids = [work.id for work in works]
        if len(set(work_ids)) != len(work_ids):
            raise InvalidInput("Session works must be distinct")
        agent = curator_agent or self.critic.curator_agent
        session_id = new_id()

        if session_type == "batch":
            session = BatchSession(
                id=session_id,
                name=name,
                curator_agent=agent,
                session_type="batch",
                work_ids=work_ids,
                unit_ids=list(work_ids),
            )
            await self.store.create_session(session)
            logger.info("Created batch session %s with %d works", session_id, len(works))
            return session

        pairings = build_pairings(
            works,
            strategy or self.settings.pairing_strategy,
            rounds=self.settings.pairing_rounds,
            rng=self._rng,
        )
        comparisons = [
            TournamentComparison(
                id=new_id(),
                session_id=session_id,
                work_a=pairing.work_a,
                work_b=pairing.work_b,
                curator_agent=agent,
                round_index=pairing.round_index,
            )
            for pairing in pairings
        ]
        session = BatchSession(
            id=session_id,
            name=name,
            curator_agent=agent,
            session_type="tournament",
            work_ids=work_ids,
            unit_ids=[comparison.id for comparison in comparisons],
            unit_work_ids={
                comparison.id: [comparison.work_a.id, comparison.work_b.id]
                for comparison in comparisons
            },
        )
        await self.store.create_session(session)
        for comparison in comparisons:
            await self.store.create_comparison(comparison)
        logger.info(
            "Created tournament session %s: %d works, %d comparisons (%s)",
            session_id,
            len(works),
            len(comparisons),
            strategy or self.settings.pairing_strategy,
        )
        return session

    async def pause(self, session_id: str) -> BatchSession:
        async with self._session_lock:
            session = await self.store.get_session(session_id)
            session.pause()
            await self.store.update_session(session)
        logger.info("Paused session %s at %d/%d", session_id, session.completed_works, session.total_works)
        return session

    async def resume(self, session_id: str) -> BatchSession:
        async with self._session_lock:
            session = await self.store.get_session(session_id)
            session.resume()
            await self.store.update_session(session)
        logger.info("Resumed session %s at %d/%d", session_id, session.completed_works, session.total_works)
        return session

    async def _record(self, session_id: str, unit_id: str, *, failed: bool = False) -> None:
        async with self._session_lock:
            session = await self.store.get_session(session_id)
            if failed:
                session.mark_unit_failed(unit_id)
            else:
                session.mark_unit_done(unit_id)
            await self.store.update_session(session)

    async def _accepting(self, session_id: str) -> bool:
        session = await self.store.get_session(session_id)
        return session.status == "active"

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    async def _prepare_run(self, session_id: str, session_type: str) -> BatchSession:
        session = await self.store.get_session(session_id)
        if session.session_type != session_type:
            raise InvalidInput(
                f"Session {session_id} is a {session.session_type} session, not {session_type}"
            )
        self._require_enabled(session_type)
        if session.status == "paused":
            raise InvalidSessionTransition(f"Session {session_id} is paused; resume it first")
        return session

    async def _run_units(
        self,
        session: BatchSession,
        worker: Callable[[str], Awaitable[None]],
    ) -> RunReport:
        report = RunReport(session=session)
        if session.status == "completed":
            return report

        semaphore = asyncio.Semaphore(self.policy.max_concurrency)

        async def _one(unit_id: str) -> None:
            async with semaphore:
                if not await self._accepting(session.id):
                    report.skipped.append(unit_id)
                    return
                try:
                    await worker(unit_id)
                except CurationError as exc:
                    logger.warning(
                        "Session %s unit %s failed (%s): %s",
                        session.id,
                        unit_id,
                        exc.kind,
                        exc.message,
                    )
                    report.failed[unit_id] = exc.kind
                    await self._record(session.id, unit_id, failed=True)
                    return
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Session %s unit %s crashed", session.id, unit_id)
                    report.failed[unit_id] = type(exc).__name__
                    await self._record(session.id, unit_id, failed=True)
                    return
                report.succeeded.append(unit_id)
                await self._record(session.id, unit_id)

        waves = self.policy.waves(session.pending_unit_ids())
        for index, wave in enumerate(waves):
            if index and self.policy.cooldown_seconds:
                await self._sleep(self.policy.cooldown_seconds)
            if not await self._accepting(session.id):
                remaining = [unit for later in waves[index:] for unit in later]
                report.skipped.extend(remaining)
                logger.info("Session %s no longer active; %d units left", session.id, len(remaining))
                break
            await asyncio.gather(*(_one(unit_id) for unit_id in wave))

        report.session = await self.store.get_session(session.id)
        logger.info(
            "Session %s: %d ok, %d failed, %d skipped -> %s (%d/%d)",
            session.id,
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
            report.session.status,
            report.session.completed_works,
            report.session.total_works,
        )
        return report

    async def run_batch(self, session_id: str) -> RunReport:
        """Critique every work not yet counted; failed works are retried on rerun."""

        session = await self._prepare_run(session_id, "batch")

        async def _critique(work_id: str) -> None:
            await self.critic.critique(work_id=work_id)

        return await self._run_units(session, _critique)

    async def run_tournament(self, session_id: str) -> RunReport:
        """Resolve every pending comparison; failures stay pending for a later pass."""

        if self.comparator is None:
            raise InvalidInput("Tournament runs need a pairwise comparator")
        session = await self._prepare_run(session_id, "tournament")

        async def _compare(comparison_id: str) -> None:
            comparison = await self.store.get_comparison(comparison_id)
            if comparison.resolved:
                return
            try:
                winner_id, reason = await self.comparator.compare(
                    comparison.work_a, comparison.work_b
                )
            except CurationError as exc:
                await self.store.record_comparison_failure(comparison_id, exc.message)
                raise
            await self.store.resolve_comparison(comparison_id, winner_id, reason)

        return await self._run_units(session, _compare)

    async def run(self, session_id: str) -> RunReport:
        session = await self.store.get_session(session_id)
        if session.session_type == "tournament":
            return await self.run_tournament(session_id)
        return await self.run_batch(session_id)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    async def standings(self, session_id: str) -> List[Standing]:
        session = await self.store.get_session(session_id)
        comparisons = await self.store.list_comparisons(session.id)
        return compute_standings(comparisons)


def compute_standings(comparisons: Sequence[TournamentComparison]) -> List[Standing]:
    table: Dict[str, Standing] = {}
    for comparison in comparisons:
        for work in (comparison.work_a, comparison.work_b):
            table.setdefault(work.id, Standing(work_id=work.id, title=work.title))
        if not comparison.resolved:
            continue
        table[comparison.work_a.id].comparisons += 1
        table[comparison.work_b.id].comparisons += 1
        if comparison.winner_id:
            table[comparison.winner_id].wins += 1
    return sorted(
        table.values(),
        key=lambda row: (-row.win_ratio, -row.wins, row.title, row.work_id),
    )


__all__ = [
    "WavePolicy",
    "RunReport",
    "Standing",
    "PairwiseComparator",
    "TournamentOrchestrator",
    "compute_standings",
]
