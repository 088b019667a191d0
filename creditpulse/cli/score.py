"""Score CLI commands: compute, simulate, batch, trend."""

from __future__ import annotations

import click


@click.group("score")
def score_group() -> None:
    """Compute and explore credit scores."""
    pass


@score_group.command("compute")
@click.argument("persona_id")
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.option("--json", "as_json", is_flag=True, help="Print the full explanation as JSON")
@click.pass_context
def score_compute(ctx: click.Context, persona_id: str, model_id: str | None, as_json: bool) -> None:
    """Score a persona and append the result to its history."""
    from creditpulse.cli.common import context_config, echo_json, fail, open_database
    from creditpulse.engine.scorer import compute_credit_score
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    with open_database(config) as db:
        try:
            result = compute_credit_score(
                db, persona_id, model_id or config.scoring.default_model_id, config=config
            )
        except CreditPulseError as e:
            fail(e)

    if as_json:
        echo_json(result)
        return

    band = result["risk_band"]
    click.echo(f"Persona {persona_id}")
    click.echo(f"  Score: {result['normalized_score']}  (raw {result['raw_score']:.4f})")
    click.echo(f"  Band:  {band['band']} - {band['recommendation']}")
    click.echo(f"\n{'Feature':<28} {'Value':>12} {'Weight':>8} {'Contribution':>13}")
    click.echo("-" * 64)
    for key, c in result["weighted_contributions"].items():
        click.echo(f"{key:<28} {c['raw_value']:>12.3f} {c['weight']:>8.3f} {c['contribution']:>13.4f}")
    if result["audit_log_id"] is None:
        click.echo("\nWarning: audit log entry was not written", err=True)


@score_group.command("simulate")
@click.argument("persona_id")
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE",
              help="Feature override, repeatable")
@click.option("--overrides", default=None, help="Feature overrides as a JSON object")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.pass_context
def score_simulate(
    ctx: click.Context,
    persona_id: str,
    model_id: str | None,
    assignments: tuple[str, ...],
    overrides: str | None,
    as_json: bool,
) -> None:
    """What-if scoring with feature overrides. Nothing is persisted."""
    from creditpulse.cli.common import (
        context_config,
        echo_json,
        fail,
        open_database,
        parse_json_option,
    )
    from creditpulse.engine.scorer import simulate_credit_score
    from creditpulse.errors import CreditPulseError

    merged = parse_json_option(overrides, "--overrides")
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        merged[key.strip()] = value.strip()

    config = context_config(ctx)
    with open_database(config) as db:
        try:
            result = simulate_credit_score(
                db, persona_id, model_id or config.scoring.default_model_id, merged,
                config=config,
            )
        except CreditPulseError as e:
            fail(e)

    if as_json:
        echo_json(result)
        return

    impact = result["impact_analysis"]
    click.echo(f"Original:  {result['original']['normalized_score']} "
               f"({impact['band_change']['from']})")
    click.echo(f"Simulated: {result['simulated']['normalized_score']} "
               f"({impact['band_change']['to']})")
    click.echo(f"Change:    {impact['score_change']:+d}  {impact['risk_level_change']}")
    if result["rejected_overrides"]:
        click.echo(f"Ignored unknown overrides: {', '.join(result['rejected_overrides'])}")


@score_group.command("batch")
@click.argument("persona_id")
@click.argument("scenarios_file", type=click.Path(exists=True))
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.pass_context
def score_batch(
    ctx: click.Context, persona_id: str, scenarios_file: str, model_id: str | None
) -> None:
    """Run named scenarios from a YAML/JSON file ({name: {feature: value}})."""
    import yaml

    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine.scorer import simulate_scenarios
    from creditpulse.errors import CreditPulseError

    with open(scenarios_file) as f:
        scenarios = yaml.safe_load(f) or {}

    config = context_config(ctx)
    with open_database(config) as db:
        try:
            batch = simulate_scenarios(
                db, persona_id, model_id or config.scoring.default_model_id, scenarios,
                config=config,
            )
        except CreditPulseError as e:
            fail(e)

    click.echo(f"Batch {batch['batch_id']}: {batch['scenarios_processed']} scenario(s)")
    for name, outcome in batch["results"].items():
        if "error" in outcome:
            click.echo(f"  {name:<24} ERROR  {outcome['error']}")
            continue
        impact = outcome["impact_analysis"]
        click.echo(
            f"  {name:<24} {outcome['simulated']['normalized_score']:>5} "
            f"({impact['score_change']:+d}, {impact['band_change']['to']}, "
            f"{impact['risk_level_change']})"
        )


@score_group.command("trend")
@click.argument("persona_id")
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.option("--months", type=int, default=None, help="Trailing window in months")
@click.pass_context
def score_trend(
    ctx: click.Context, persona_id: str, model_id: str | None, months: int | None
) -> None:
    """Monthly average score history."""
    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine.scorer import get_score_trend
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    with open_database(config) as db:
        try:
            points = get_score_trend(
                db,
                persona_id,
                model_id or config.scoring.default_model_id,
                months if months is not None else config.scoring.trend_months,
            )
        except CreditPulseError as e:
            fail(e)

    if not points:
        click.echo("No scores in the window.")
        return
    click.echo(f"{'Month':<12} {'Avg score':>10} {'Count':>6}")
    click.echo("-" * 30)
    for p in points:
        click.echo(f"{p['month']:<12} {p['avg_score']:>10.2f} {p['count']:>6}")
