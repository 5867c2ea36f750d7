"""Markdown summaries for finished or in-progress sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Sequence

from .models import BatchSession, TournamentComparison, Work
from .tournament import compute_standings


def render_session_summary(
    session: BatchSession,
    works: Sequence[Work],
    comparisons: Sequence[TournamentComparison] = (),
) -> str:
    lines: List[str] = []
    title = session.name or session.id
    lines.append(f"# Curation Session {title} ({datetime.now(UTC).isoformat()})")
    lines.append("")
    lines.append(f"- Type: {session.session_type}")
    lines.append(f"- Curator: {session.curator_agent}")
    lines.append(f"- Status: {session.status}")
    lines.append(f"- Progress: {session.completed_works}/{session.total_works}")
    if session.failed_unit_ids:
        lines.append(f"- Failed units: {', '.join(session.failed_unit_ids)}")
    lines.append("")

    by_verdict: Dict[str, List[Work]] = {}
    for work in works:
        key = work.curation.verdict if work.is_curated else "UNCURATED"
        by_verdict.setdefault(key, []).append(work)

    for verdict in ("MASTERWORK", "INCLUDE", "MAYBE", "EXCLUDE", "UNCURATED"):
        group = by_verdict.get(verdict)
        if not group:
            continue
        lines.append(f"## {verdict.title()}")
        lines.append("")
        for work in sorted(
            group, key=lambda item: -(item.curation.score if item.is_curated else -1)
        ):
            lines.append(f"### {work.title or work.id}")
            lines.append(f"- Agent: {work.agent_source or 'n/a'}")
            if work.is_curated:
                curation = work.curation
                lines.append(f"- Score: {curation.score} ({curation.curator_agent})")
                subs = ", ".join(
                    f"{key}={value}" for key, value in curation.sub_scores.to_dict().items()
                )
                lines.append(f"- Sub-scores: {subs}")
                if curation.flags:
                    lines.append(f"- Flags: {', '.join(curation.flags)}")
                lines.append(f"- Analysis: {curation.analysis or '<none>'}")
                if curation.reverse_prompt:
                    lines.append(f"- Reverse prompt: {curation.reverse_prompt}")
            lines.append("")

    if comparisons:
        standings = compute_standings(comparisons)
        lines.append("## Tournament Standings")
        lines.append("")
        for rank, row in enumerate(standings, start=1):
            lines.append(
                f"{rank}. {row.title or row.work_id}: ratio {row.win_ratio:.2f} "
                f"({row.wins}/{row.comparisons})"
            )
        pending = [item for item in comparisons if not item.resolved]
        if pending:
            lines.append("")
            lines.append(f"_{len(pending)} comparison(s) still pending._")

    return "\n".join(lines) + "\n"


def write_session_summary(
    session: BatchSession,
    works: Sequence[Work],
    comparisons: Sequence[TournamentComparison],
    path: Path,
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_session_summary(session, works, comparisons), encoding="utf-8")
    return path


__all__ = ["render_session_summary", "write_session_summary"]
