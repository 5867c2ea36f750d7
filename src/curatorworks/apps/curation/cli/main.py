"""Command line interface for the curation pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from curatorworks.logging_utils import configure_logging

from curatorworks.apps.curation.config import load_settings
from curatorworks.apps.curation.errors import CurationError
from curatorworks.apps.curation.models import Collection, Work, new_id
from curatorworks.apps.curation.reporting import write_session_summary
from curatorworks.apps.curation.runtime import CurationRuntime

LOG_PATH = configure_logging("curation")
logger = logging.getLogger(__name__)

app = typer.Typer(help="Triage, critique and run curation sessions.")
work_app = typer.Typer(help="Register works for curation.")
session_app = typer.Typer(help="Create and drive batch or tournament sessions.")
collection_app = typer.Typer(help="Manage curator collections.")
app.add_typer(work_app, name="work")
app.add_typer(session_app, name="session")
app.add_typer(collection_app, name="collection")

T = TypeVar("T")

_STATE = {"store": None}


@app.callback()
def main(
    store: Optional[Path] = typer.Option(
        None, "--store", help="JSON store file (defaults to settings.store_path)"
    ),
) -> None:
    _STATE["store"] = store


def _build_runtime() -> CurationRuntime:
    settings = load_settings(store_path=_STATE["store"])
    return CurationRuntime.build(settings)


def _execute(action: Callable[[CurationRuntime], Awaitable[T]]) -> T:
    runtime = _build_runtime()

    async def _run() -> T:
        try:
            return await action(runtime)
        finally:
            await runtime.aclose()

    try:
        return asyncio.run(_run())
    except CurationError as exc:
        typer.echo(f"❌ {exc.kind}: {exc.message}")
        if exc.hint:
            typer.echo(f"   hint: {exc.hint}")
        raise typer.Exit(code=1) from exc


def _dump(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@work_app.command("add")
def work_add(
    title: str = typer.Option(..., "--title"),
    image_url: str = typer.Option(..., "--image-url"),
    agent: str = typer.Option(..., "--agent", help="Producing agent"),
    description: Optional[str] = typer.Option(None, "--description"),
    work_id: Optional[str] = typer.Option(None, "--id"),
) -> None:
    work = Work(
        id=work_id or new_id(),
        title=title,
        image_url=image_url,
        agent_source=agent,
        description=description,
    )

    async def _action(rt: CurationRuntime) -> Work:
        return await rt.store.create_work(work)

    _execute(_action)
    typer.echo(work.id)


@app.command()
def triage(
    work_id: str = typer.Argument(...),
    image_url: Optional[str] = typer.Option(None, "--image-url"),
) -> None:
    """Tag one work and report whether it is routed to the curator."""

    async def _action(rt: CurationRuntime):
        url = image_url or (await rt.store.get_work(work_id)).image_url
        return await rt.classifier.classify(work_id, url)

    outcome = _execute(_action)
    if outcome.status != "tagged":
        typer.echo(f"⚠️  {work_id}: {outcome.status}")
        return
    marker = "→ curator" if outcome.send_to_curator else "archived"
    typer.echo(f"✅ {work_id} tagged ({marker})")
    _dump(outcome.tag.to_dict())


@app.command()
def backfill(
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Tag at most N works"),
) -> None:
    """Tag every stored work that has no tag yet."""

    async def _action(rt: CurationRuntime):
        return await rt.classifier.backfill(limit=limit)

    report = _execute(_action)
    typer.echo(
        f"Backfill: {report.total_works} works, {report.already_tagged} already tagged, "
        f"{report.queued_for_tagging} queued"
    )
    typer.echo(f"  processed {report.processed}, skipped {report.skipped}, errors {report.errors}")
    for work_id, kind in report.failed.items():
        typer.echo(f"  ❌ {work_id}: {kind}")
    icon = "⚠️ " if report.budget_exhausted else "✅"
    typer.echo(f"{icon} {report.message}")


@app.command()
def critique(
    work_id: Optional[str] = typer.Option(None, "--work-id"),
    image_url: Optional[str] = typer.Option(None, "--image-url"),
    image: Optional[Path] = typer.Option(None, "--image", exists=True, dir_okay=False),
    curator: Optional[str] = typer.Option(None, "--curator", help="nina | sue"),
) -> None:
    """Run the strict critic on a stored work or a bare image."""

    data = image.read_bytes() if image else None

    async def _action(rt: CurationRuntime):
        return await rt.critic(curator).critique(
            work_id=work_id, image_url=image_url, image_data=data
        )

    result = _execute(_action)
    typer.echo(
        f"{result.verdict} {result.final_score} "
        f"(weighted {result.weighted_total:.3f}, {result.curator_agent})"
    )
    _dump(result.to_dict())


@session_app.command("create")
def session_create(
    work_ids: List[str] = typer.Argument(...),
    session_type: str = typer.Option("batch", "--type", help="batch | tournament"),
    name: Optional[str] = typer.Option(None, "--name"),
    curator: Optional[str] = typer.Option(None, "--curator"),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="round_robin | random | bracket"
    ),
) -> None:
    async def _action(rt: CurationRuntime):
        works = [await rt.store.get_work(work_id) for work_id in work_ids]
        return await rt.orchestrator(curator).create_session(
            works, session_type, name=name, strategy=strategy
        )

    session = _execute(_action)
    typer.echo(
        f"✅ Session {session.id} ({session.session_type}, "
        f"{session.total_works} works, {session.total_units} units)"
    )


@session_app.command("run")
def session_run(
    session_id: str = typer.Argument(...),
    summary: Optional[Path] = typer.Option(None, "--summary"),
) -> None:
    typer.echo(f"Curation log → {LOG_PATH}")

    async def _action(rt: CurationRuntime):
        session = await rt.store.get_session(session_id)
        report = await rt.orchestrator(session.curator_agent).run(session_id)
        if summary:
            works = [await rt.store.get_work(work_id) for work_id in session.work_ids]
            comparisons = await rt.store.list_comparisons(session_id)
            write_session_summary(report.session, works, comparisons, summary)
        return report

    report = _execute(_action)
    session = report.session
    typer.echo(
        f"Session {session.id}: {session.status} "
        f"({session.completed_works}/{session.total_works}), "
        f"{len(report.failed)} failed"
    )
    for unit_id, kind in report.failed.items():
        typer.echo(f"  ❌ {unit_id}: {kind}")
    if summary:
        typer.echo(f"Summary → {summary}")


@session_app.command("pause")
def session_pause(session_id: str = typer.Argument(...)) -> None:
    async def _action(rt: CurationRuntime):
        session = await rt.store.get_session(session_id)
        return await rt.orchestrator(session.curator_agent).pause(session_id)

    session = _execute(_action)
    typer.echo(f"⏸️  {session.id} paused at {session.completed_works}/{session.total_works}")


@session_app.command("resume")
def session_resume(session_id: str = typer.Argument(...)) -> None:
    async def _action(rt: CurationRuntime):
        session = await rt.store.get_session(session_id)
        return await rt.orchestrator(session.curator_agent).resume(session_id)

    session = _execute(_action)
    typer.echo(f"▶️  {session.id} {session.status} at {session.completed_works}/{session.total_works}")


@session_app.command("show")
def session_show(session_id: str = typer.Argument(...)) -> None:
    async def _action(rt: CurationRuntime):
        return await rt.store.get_session(session_id)

    _dump(_execute(_action).to_dict())


@session_app.command("list")
def session_list(
    status: Optional[str] = typer.Option(None, "--status"),
    limit: int = typer.Option(20, "--limit"),
    offset: int = typer.Option(0, "--offset"),
) -> None:
    async def _action(rt: CurationRuntime):
        return await rt.store.list_sessions(status=status, limit=limit, offset=offset)

    for session in _execute(_action):
        typer.echo(
            f"{session.id}  {session.session_type:<10} {session.status:<9} "
            f"{session.completed_works}/{session.total_works}  {session.name or ''}"
        )


@app.command()
def standings(session_id: str = typer.Argument(...)) -> None:
    """Print tournament standings ranked by win ratio."""

    async def _action(rt: CurationRuntime):
        session = await rt.store.get_session(session_id)
        return await rt.orchestrator(session.curator_agent).standings(session_id)

    for rank, row in enumerate(_execute(_action), start=1):
        typer.echo(
            f"{rank:>2}. {row.title or row.work_id}  "
            f"{row.win_ratio:.2f} ({row.wins}/{row.comparisons})"
        )


@app.command()
def budget() -> None:
    """Show today's triage spend against the daily ceiling."""

    async def _action(rt: CurationRuntime):
        return await rt.governor.refresh()

    _dump(_execute(_action).to_dict())


@collection_app.command("create")
def collection_create(
    name: str = typer.Argument(...),
    curator: str = typer.Option(..., "--curator"),
    description: Optional[str] = typer.Option(None, "--description"),
    public: bool = typer.Option(False, "--public/--private"),
    tag: List[str] = typer.Option([], "--tag"),
) -> None:
    collection = Collection(
        id=new_id(),
        name=name,
        curator_agent=curator,
        description=description,
        is_public=public,
        tags=list(tag),
    )

    async def _action(rt: CurationRuntime):
        return await rt.store.create_collection(collection)

    _execute(_action)
    typer.echo(collection.id)


@collection_app.command("add")
def collection_add(collection_id: str, work_id: str) -> None:
    async def _action(rt: CurationRuntime):
        return await rt.store.add_to_collection(collection_id, work_id)

    collection = _execute(_action)
    typer.echo(f"✅ {collection.name}: {collection.work_count} works")


@collection_app.command("remove")
def collection_remove(collection_id: str, work_id: str) -> None:
    async def _action(rt: CurationRuntime):
        return await rt.store.remove_from_collection(collection_id, work_id)

    collection = _execute(_action)
    typer.echo(f"✅ {collection.name}: {collection.work_count} works")


if __name__ == "__main__":
    app()
