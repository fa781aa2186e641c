"""Command line interface for running and inspecting waystage workflows."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from waystage import WorkflowRuntime, get_repository, get_transport, load_blueprint
from waystage.blueprint import WorkflowBlueprint
from waystage.config import load_config
from waystage.contracts import ActivitySignal, SignalOutcome, WorkflowInstance
from waystage.errors import BlueprintValidationError

app = typer.Typer(help="CLI for waystage workflows")

# Command groups
blueprint_app = typer.Typer(help="Commands for workflow blueprints")
workflow_app = typer.Typer(help="Commands for inspecting workflow instances")

app.add_typer(blueprint_app, name="blueprint")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to log_level from config)"
    ),
) -> None:
    """waystage CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def _load_or_exit(path: Path) -> WorkflowBlueprint:
    try:
        return load_blueprint(path)
    except FileNotFoundError:
        typer.secho(f"Blueprint file not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except BlueprintValidationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


@blueprint_app.command("validate")
def blueprint_validate(path: Path) -> None:
    """
    Validate a blueprint file and print its stages.

    Example:
        waystage blueprint validate guides/approval_blueprint.yaml
        # Output: Standard Workflow: 3 stage(s)
        #         - Simple Activity: SimpleOne, SimpleTwo, SimpleThree, Simple4, Simple5
    """
    blueprint = _load_or_exit(path)
    typer.echo(f"{blueprint.type}: {len(blueprint.stages)} stage(s)")
    for stage in blueprint.stages:
        typer.echo(f"- {stage.name}: {', '.join(blueprint.codes(stage.name))}")


@app.command("run")
def run(
    path: Path,
    poll_interval: Optional[float] = typer.Option(
        None, help="Seconds between polls (defaults to scheduler.poll_interval)"
    ),
    wake_on_signal: Optional[bool] = typer.Option(
        None, help="Re-poll as soon as a signal arrives"
    ),
    lifespan: Optional[float] = typer.Option(
        None, help="Stop waiting after this many seconds (default: until complete)"
    ),
) -> None:
    """
    Start a workflow from a blueprint and drive it in this process.

    Signals are consumed from the configured transport while the workflow
    runs. Use the redis transport to send them from another process with
    'waystage signal'.

    Example:
        waystage run guides/approval_blueprint.yaml --poll-interval 5
    """
    blueprint = _load_or_exit(path)
    asyncio.run(_run_workflow(blueprint, poll_interval, wake_on_signal, lifespan))


async def _run_workflow(
    blueprint: WorkflowBlueprint,
    poll_interval: Optional[float],
    wake_on_signal: Optional[bool],
    lifespan: Optional[float],
) -> None:
    config = load_config()
    runtime = WorkflowRuntime(
        get_repository(),
        config=config,
        poll_interval=poll_interval,
        wake_on_signal=wake_on_signal,
    )
    transport = get_transport(config=config)
    instance_id = await runtime.start_workflow(blueprint)
    typer.echo(f"Workflow instance started: {instance_id}")

    listener = asyncio.create_task(runtime.listener(transport).start())
    try:
        result = await asyncio.wait_for(runtime.wait_for(instance_id), timeout=lifespan)
    except asyncio.TimeoutError:
        typer.echo(f"Workflow {instance_id} still in progress")
    else:
        for line in result.outputs:
            typer.echo(line)
        typer.echo(f"Workflow {instance_id}: {result.status}")
    finally:
        listener.cancel()
        await asyncio.gather(listener, return_exceptions=True)
        await runtime.shutdown()
        await transport.disconnect()


@app.command("serve")
def serve(
    lifespan: Optional[float] = typer.Option(
        None, help="Serve for this many seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Resume in-progress workflows from the repository and relay signals to them.

    Example:
        waystage serve --lifespan 3600
    """
    asyncio.run(_serve(lifespan))


async def _serve(lifespan: Optional[float]) -> None:
    config = load_config()
    runtime = WorkflowRuntime(get_repository(), config=config)
    transport = get_transport(config=config)
    resumed = await runtime.resume()
    typer.echo(f"Resumed {len(resumed)} workflow(s)")
    for instance_id in resumed:
        typer.echo(f"- {instance_id}")
    try:
        delivered = await runtime.listener(transport).start(lifespan=lifespan)
        typer.echo(f"Delivered {delivered} signal(s)")
    finally:
        await runtime.shutdown()
        await transport.disconnect()


@app.command("signal")
def signal(instance_id: str, activity_code: str, approval_status: int) -> None:
    """
    Report an activity outcome: 1 approves, 0 rejects, anything else re-arms.

    Example:
        waystage signal 3f2c... SimpleOne 1
    """
    config = load_config()
    transport = get_transport(config=config)
    message = ActivitySignal(
        instance_id=instance_id,
        activity_code=activity_code,
        approval_status=approval_status,
    )

    async def _publish() -> None:
        try:
            await transport.publish(config.transport.signal_topic, message)
        finally:
            await transport.disconnect()

    asyncio.run(_publish())
    outcome = SignalOutcome.from_status(approval_status)
    typer.echo(f"Sent {outcome.value} for {activity_code} to {instance_id}")


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflow instances with their current status.

    Example:
        waystage workflow list
        # Output: abc123-def456-789    Standard Workflow    in_progress
    """
    repo = get_repository()
    records = asyncio.run(repo.list_instances())
    if not records:
        typer.echo("No workflows found")
        return
    for record in records:
        typer.echo(f"{record.instance_id}\t{record.workflow_type}\t{record.status}")


@workflow_app.command("show")
def workflow_show(instance_id: str) -> None:
    """
    Show stages, activities and status history of a workflow instance.

    Example:
        waystage workflow show abc123-def456-789
        # Output: Workflow abc123-def456-789: in_progress
        #         Current stage: Simple Activity
        #         - Simple Activity: ACTIVE
        #             SimpleOne (Simple One): SCHEDULED
    """
    repo = get_repository()
    record = asyncio.run(repo.get_instance(instance_id))
    if record is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    instance = WorkflowInstance.from_state(record.state)
    typer.echo(f"Workflow {record.instance_id}: {record.status}")
    typer.echo(f"Type: {instance.type}")
    typer.echo(f"Current stage: {instance.current_stage}")
    if record.last_polled_at:
        typer.echo(f"Last polled: {record.last_polled_at}")
    for stage in instance.stages:
        typer.echo(f"- {stage.name}: {stage.status.value}")
        for activity in stage.activities:
            typer.echo(f"    {activity.code} ({activity.name}): {activity.status.value}")
    if record.history:
        typer.echo("History:")
        for entry in record.history:
            typer.echo(
                f"  {entry.recorded_at} {entry.stage}/{entry.activity_code} -> {entry.status}"
            )


if __name__ == "__main__":
    app()
