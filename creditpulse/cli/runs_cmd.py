"""AltScoreRun CLI commands: start, list, show, cancel."""

from __future__ import annotations

import click


@click.group("runs")
def runs_group() -> None:
    """Start and inspect longer-lived scoring runs."""
    pass


def _print_run(run) -> None:
    click.echo(f"Run {run.run_id}")
    click.echo(f"  Status:  {run.status.value}")
    click.echo(f"  Owner:   {run.owner_id}")
    click.echo(f"  Persona: {run.persona_id}")
    click.echo(f"  Model:   {run.model_id} v{run.model_version}")
    click.echo(f"  Started: {run.started_at}")
    if run.finished_at:
        click.echo(f"  Finished: {run.finished_at}")
    if run.score_result is not None:
        click.echo(f"  Score:   {run.score_result} ({run.risk_band})")
    if run.error_message:
        click.echo(f"  Error:   {run.error_message}")


@runs_group.command("start")
@click.argument("persona_id")
@click.option("--owner", "owner_id", required=True, help="Owner of the run")
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.option("--detach", is_flag=True, help="Record the run without executing it")
@click.pass_context
def runs_start(
    ctx: click.Context, persona_id: str, owner_id: str, model_id: str | None, detach: bool
) -> None:
    """Start a run for a persona and (unless --detach) execute it."""
    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine import runs
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    with open_database(config) as db:
        try:
            run = runs.start_run(
                db, owner_id, persona_id, model_id or config.scoring.default_model_id
            )
            if not detach:
                run = runs.execute_run(db, run.run_id, config=config)
        except CreditPulseError as e:
            fail(e)
    _print_run(run)


@runs_group.command("list")
@click.option("--owner", "owner_id", required=True, help="Owner whose runs to list")
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.pass_context
def runs_list(ctx: click.Context, owner_id: str, limit: int) -> None:
    """List an owner's most recent runs."""
    from creditpulse.cli.common import context_config, open_database
    from creditpulse.engine import runs

    with open_database(context_config(ctx)) as db:
        found = runs.list_runs(db, owner_id, limit)

    if not found:
        click.echo(f"No runs for owner {owner_id}.")
        return
    click.echo(f"{'Run':<38} {'Status':<10} {'Score':>6}  Started")
    click.echo("-" * 80)
    for run in found:
        score = "" if run.score_result is None else f"{run.score_result} {run.risk_band}"
        click.echo(f"{run.run_id:<38} {run.status.value:<10} {score:>6}  {run.started_at}")


@runs_group.command("show")
@click.argument("run_id")
@click.pass_context
def runs_show(ctx: click.Context, run_id: str) -> None:
    """Show a run's status and result."""
    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine import runs
    from creditpulse.errors import CreditPulseError

    with open_database(context_config(ctx)) as db:
        try:
            run = runs.get_run(db, run_id)
        except CreditPulseError as e:
            fail(e)
    _print_run(run)


@runs_group.command("cancel")
@click.argument("run_id")
@click.pass_context
def runs_cancel(ctx: click.Context, run_id: str) -> None:
    """Cancel a running run. Terminal runs cannot be changed."""
    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine import runs
    from creditpulse.errors import CreditPulseError

    with open_database(context_config(ctx)) as db:
        try:
            run = runs.cancel_run(db, run_id)
        except CreditPulseError as e:
            fail(e)
    _print_run(run)
