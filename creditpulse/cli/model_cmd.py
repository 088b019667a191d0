"""Model CLI commands: seed, list, show, validate."""

from __future__ import annotations

import click


@click.group("model")
def model_group() -> None:
    """Manage scoring models."""
    pass


@model_group.command("seed")
@click.option("--file", "model_file", type=click.Path(exists=True), default=None,
              help="YAML model definition (defaults to config baseline_model)")
@click.pass_context
def model_seed(ctx: click.Context, model_file: str | None) -> None:
    """Write a scoring model (factors and risk bands) to the database."""
    import yaml

    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.config.schema import ModelConfig
    from creditpulse.engine.model import seed_baseline_model
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    model_cfg = config.baseline_model
    if model_file:
        with open(model_file) as f:
            model_cfg = ModelConfig.model_validate(yaml.safe_load(f) or {})

    with open_database(config) as db:
        try:
            model = seed_baseline_model(db, model_cfg)
        except CreditPulseError as e:
            fail(e)
    click.echo(f"Saved model {model.id} ({model.name} v{model.version})")
    click.echo(f"  Factors: {len(model.factors)}")
    click.echo(f"  Bands: {', '.join(b.band for b in sorted(model.bands, key=lambda b: -b.min_score))}")


@model_group.command("list")
@click.pass_context
def model_list(ctx: click.Context) -> None:
    """List stored scoring models."""
    from creditpulse.cli.common import context_config, open_database
    from creditpulse.storage import queries

    config = context_config(ctx)
    with open_database(config) as db:
        models = queries.list_scoring_models(db)

    if not models:
        click.echo("No scoring models. Run 'creditpulse model seed'.")
        return
    for m in models:
        marker = "*" if m["id"] == config.scoring.default_model_id else " "
        click.echo(f"{marker} {m['id']:<36} {m['name']} v{m['version']}")


@model_group.command("show")
@click.argument("model_id", required=False)
@click.pass_context
def model_show(ctx: click.Context, model_id: str | None) -> None:
    """Print a model's factors and risk bands."""
    from creditpulse.cli.common import context_config, fail, open_database
    from creditpulse.engine.model import load_scoring_model
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    model_id = model_id or config.scoring.default_model_id

    with open_database(config) as db:
        try:
            model = load_scoring_model(db, model_id, enforce_partition=False)
        except CreditPulseError as e:
            fail(e)

    click.echo(f"{model.name} v{model.version}  ({model.id})")
    if model.min_raw_score is not None or model.max_raw_score is not None:
        click.echo(f"Raw bounds: [{model.min_raw_score}, {model.max_raw_score}]")
    click.echo(f"\n{'Feature':<28} {'Weight':>8}  Description")
    click.echo("-" * 80)
    for f in sorted(model.factors, key=lambda f: f.feature_key):
        click.echo(f"{f.feature_key:<28} {f.weight:>8.3f}  {f.description}")
    click.echo(f"\n{'Band':<6} {'Range':<12} Recommendation")
    click.echo("-" * 80)
    for b in sorted(model.bands, key=lambda b: -b.min_score):
        click.echo(f"{b.band:<6} {f'{b.min_score}-{b.max_score}':<12} {b.recommendation}")


@model_group.command("validate")
@click.argument("model_id", required=False)
@click.pass_context
def model_validate(ctx: click.Context, model_id: str | None) -> None:
    """Check that a stored model's bands partition [0, 1000]."""
    from creditpulse.cli.common import context_config, open_database
    from creditpulse.engine.model import load_scoring_model
    from creditpulse.errors import CreditPulseError

    config = context_config(ctx)
    model_id = model_id or config.scoring.default_model_id

    with open_database(config) as db:
        try:
            model = load_scoring_model(db, model_id, enforce_partition=True)
        except CreditPulseError as e:
            click.echo(f"Model validation failed [{e.code}]: {e}", err=True)
            raise SystemExit(1) from None

    click.echo(f"Model {model.id} is valid: {len(model.factors)} factors, "
               f"{len(model.bands)} bands.")
