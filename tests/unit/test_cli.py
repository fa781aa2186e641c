import asyncio
from pathlib import Path

from typer.testing import CliRunner

import waystage.persistence as persistence
from waystage.actor import InstanceActor
from waystage.cli import app
from waystage.contracts import ActivityRef, Operation
from waystage.persistence import InMemoryInstanceRepository

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures" / "blueprints"

runner = CliRunner()


def _setup_repo() -> InMemoryInstanceRepository:
    repo = InMemoryInstanceRepository()
    persistence._repository_instance = repo
    return repo


async def _create_instance(repo, instance_id, blueprint, completed=()):
    actor = InstanceActor(instance_id, repo)
    await actor.call(Operation.INITIALIZE, blueprint)
    for code in completed:
        await actor.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code=code))
    await actor.stop()


def test_blueprint_validate_lists_stages():
    result = runner.invoke(app, ["blueprint", "validate", str(FIXTURES / "two_stages.yaml")])
    assert result.exit_code == 0, result.output
    assert "Two Stage: 2 stage(s)" in result.output
    assert "- Review: A, B" in result.output
    assert "- Sign Off: C, D" in result.output


def test_blueprint_validate_rejects_invalid_and_missing_files():
    result = runner.invoke(app, ["blueprint", "validate", str(FIXTURES / "cyclic.yaml")])
    assert result.exit_code == 1
    assert "cyclic dependency" in result.output

    result = runner.invoke(app, ["blueprint", "validate", str(FIXTURES / "nope.yaml")])
    assert result.exit_code == 1
    assert "Blueprint file not found" in result.output


def test_workflow_list(chain_blueprint, two_stage_blueprint):
    repo = _setup_repo()
    asyncio.run(_create_instance(repo, "wf-chain", chain_blueprint, completed=["X", "Y"]))
    asyncio.run(repo.mark_instance_finished("wf-chain"))
    asyncio.run(_create_instance(repo, "wf-two", two_stage_blueprint))

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert "wf-chain\tChain\tcompleted" in result.output
    assert "wf-two\tTwo Stage\tin_progress" in result.output


def test_workflow_list_empty():
    _setup_repo()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_workflow_show_details_and_missing(two_stage_blueprint):
    repo = _setup_repo()
    asyncio.run(_create_instance(repo, "wf-two", two_stage_blueprint, completed=["A"]))

    result = runner.invoke(app, ["workflow", "show", "wf-two"])
    assert result.exit_code == 0, result.output
    output = result.output
    assert "Workflow wf-two: in_progress" in output
    assert "Current stage: Review" in output
    assert "- Review: ACTIVE" in output
    assert "A (Activity A): COMPLETED" in output
    assert "- Sign Off: PENDING" in output
    assert "Review/A -> COMPLETED" in output

    missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.output


def test_signal_publishes_outcome():
    result = runner.invoke(app, ["signal", "wf-1", "SimpleOne", "1"])
    assert result.exit_code == 0, result.output
    assert "Sent approve for SimpleOne to wf-1" in result.output

    result = runner.invoke(app, ["signal", "wf-1", "SimpleOne", "2"])
    assert "Sent indeterminate for SimpleOne to wf-1" in result.output


def test_run_reports_progress_when_lifespan_elapses():
    repo = _setup_repo()
    result = runner.invoke(
        app,
        [
            "run",
            str(FIXTURES / "chain.yaml"),
            "--poll-interval",
            "0.01",
            "--lifespan",
            "0.2",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Workflow instance started:" in result.output
    assert "still in progress" in result.output

    records = asyncio.run(repo.list_instances())
    assert [r.workflow_type for r in records] == ["Chain"]
    assert records[0].status == "in_progress"
