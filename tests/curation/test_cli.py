import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from curatorworks.apps.curation.config import CurationSettings
from curatorworks.apps.curation.runtime import CurationRuntime

from curation_fakes import FakeVisionClient, route_reply

runner = CliRunner()


@pytest.fixture
def cli(tmp_path: Path, monkeypatch):
    """CLI module wired to a JSON store under tmp_path and a canned backend."""

    from curatorworks.apps.curation.cli import main

    def _build_runtime() -> CurationRuntime:
        settings = CurationSettings(
            cooldown_seconds=0.0,
            store_path=main._STATE["store"] or tmp_path / "store.json",
        )
        return CurationRuntime.build(settings, client=FakeVisionClient(route_reply))

    monkeypatch.setattr(main, "_build_runtime", _build_runtime)
    return main.app


def _add(cli, work_id):
    res = runner.invoke(
        cli,
        [
            "work",
            "add",
            "--title",
            f"Work {work_id}",
            "--image-url",
            f"https://img.example/{work_id}.jpg",
            "--agent",
            "solienne",
            "--id",
            work_id,
        ],
    )
    assert res.exit_code == 0, res.stdout
    assert res.stdout.strip() == work_id


def test_triage_and_critique(cli):
    _add(cli, "w1")

    triaged = runner.invoke(cli, ["triage", "w1"])
    critiqued = runner.invoke(cli, ["critique", "--work-id", "w1", "--curator", "sue"])

    assert triaged.exit_code == 0
    assert "w1 tagged (→ curator)" in triaged.stdout
    assert critiqued.exit_code == 0
    assert critiqued.stdout.startswith("INCLUDE 85")
    assert "sue" in critiqued.stdout.splitlines()[0]


def test_errors_exit_non_zero(cli):
    missing_image = runner.invoke(cli, ["critique"])
    unknown_work = runner.invoke(cli, ["triage", "ghost"])

    assert missing_image.exit_code == 1
    assert "❌ no_image_provided" in missing_image.stdout
    assert unknown_work.exit_code == 1
    assert "❌ not_found" in unknown_work.stdout


def test_batch_session_round_trip(cli, tmp_path):
    for work_id in ("w1", "w2"):
        _add(cli, work_id)
    summary = tmp_path / "summary.md"

    created = runner.invoke(cli, ["session", "create", "w1", "w2", "--name", "Pier"])
    session_id = created.stdout.split()[2]
    ran = runner.invoke(cli, ["session", "run", session_id, "--summary", str(summary)])
    listed = runner.invoke(cli, ["session", "list", "--status", "completed"])
    shown = runner.invoke(cli, ["session", "show", session_id])

    assert created.exit_code == 0
    assert "(batch, 2 works, 2 units)" in created.stdout
    assert ran.exit_code == 0
    assert f"Session {session_id}: completed (2/2), 0 failed" in ran.stdout
    assert summary.exists()
    assert "# Curation Session Pier" in summary.read_text(encoding="utf-8")
    assert session_id in listed.stdout
    assert json.loads(shown.stdout)["completed_works"] == 2


def test_pause_and_resume(cli):
    _add(cli, "w1")
    created = runner.invoke(cli, ["session", "create", "w1"])
    session_id = created.stdout.split()[2]

    paused = runner.invoke(cli, ["session", "pause", session_id])
    again = runner.invoke(cli, ["session", "pause", session_id])
    resumed = runner.invoke(cli, ["session", "resume", session_id])

    assert "paused at 0/1" in paused.stdout
    assert again.exit_code == 1
    assert "invalid_session_transition" in again.stdout
    assert "active at 0/1" in resumed.stdout


def test_tournament_standings(cli):
    for work_id in ("w1", "w2", "w3"):
        _add(cli, work_id)
    created = runner.invoke(
        cli,
        ["session", "create", "w1", "w2", "w3", "--type", "tournament", "--strategy", "round_robin"],
    )
    session_id = created.stdout.split()[2]

    runner.invoke(cli, ["session", "run", session_id])
    standings = runner.invoke(cli, ["standings", session_id])

    assert "(tournament, 3 works, 3 units)" in created.stdout
    lines = [line for line in standings.stdout.splitlines() if line.strip()]
    assert len(lines) == 3
    assert lines[0].startswith(" 1. ")


def test_budget_and_collections(cli):
    _add(cli, "w1")

    budget = runner.invoke(cli, ["budget"])
    created = runner.invoke(cli, ["collection", "create", "Fog", "--curator", "nina"])
    collection_id = created.stdout.strip()
    added = runner.invoke(cli, ["collection", "add", collection_id, "w1"])
    removed = runner.invoke(cli, ["collection", "remove", collection_id, "w1"])

    assert json.loads(budget.stdout)["daily_budget"] == 5.0
    assert "Fog: 1 works" in added.stdout
    assert "Fog: 0 works" in removed.stdout


def test_store_option_selects_snapshot(cli, tmp_path):
    custom = tmp_path / "custom.json"

    res = runner.invoke(
        cli,
        [
            "--store",
            str(custom),
            "work",
            "add",
            "--title",
            "Elsewhere",
            "--image-url",
            "https://img.example/x.jpg",
            "--agent",
            "solienne",
        ],
    )

    assert res.exit_code == 0
    assert custom.exists()


def test_work_add_refuses_existing_id(cli, tmp_path):
    _add(cli, "w1")
    runner.invoke(cli, ["critique", "--work-id", "w1"])

    again = runner.invoke(
        cli,
        ["work", "add", "--title", "Other", "--image-url", "https://x", "--agent", "a", "--id", "w1"],
    )
    snapshot = json.loads((tmp_path / "store.json").read_text(encoding="utf-8"))
    (stored,) = [work for work in snapshot["works"] if work["id"] == "w1"]

    assert again.exit_code == 1
    assert "❌ already_exists" in again.stdout
    assert stored["title"] == "Work w1"
    assert stored["curation"]["curator_agent"] == "nina"


def test_budget_spend_accumulates_across_invocations(cli):
    for work_id in ("w1", "w2"):
        _add(cli, work_id)

    runner.invoke(cli, ["triage", "w1"])
    runner.invoke(cli, ["triage", "w2"])
    budget = json.loads(runner.invoke(cli, ["budget"]).stdout)

    assert budget["calls_made"] == 2
    assert budget["daily_spend"] == 0.004


def test_backfill_command(cli):
    for work_id in ("w1", "w2", "w3"):
        _add(cli, work_id)
    runner.invoke(cli, ["triage", "w1"])

    res = runner.invoke(cli, ["backfill"])

    assert res.exit_code == 0
    assert "Backfill: 3 works, 1 already tagged, 2 queued" in res.stdout
    assert "processed 2, skipped 0, errors 0" in res.stdout
    assert "Tagged 2 of 2 untagged works" in res.stdout
