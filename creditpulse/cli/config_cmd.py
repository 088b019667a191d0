"""Config CLI commands: show, validate."""

from __future__ import annotations

import click


@click.group("config")
def config_group() -> None:
    """Manage configuration."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the resolved configuration."""
    from creditpulse.cli.common import context_config, echo_json

    echo_json(context_config(ctx).model_dump(mode="json"))


@config_group.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate config.yaml against the schema."""
    from creditpulse.cli.common import context_config
    from creditpulse.engine.bands import validate_band_partition
    from creditpulse.engine.model import model_from_config

    try:
        config = context_config(ctx)
        validate_band_partition(model_from_config(config.baseline_model).bands)
    except Exception as e:
        click.echo(f"Config validation failed: {e}", err=True)
        raise SystemExit(1) from None

    click.echo("Config is valid.")
    click.echo(f"  Version: {config.version}")
    click.echo(f"  Database: {config.database.path}")
    click.echo(f"  Default model: {config.scoring.default_model_id}")
    click.echo(f"  Token TTL: {config.broker.ttl_seconds}s "
               f"(iss={config.broker.issuer}, aud={config.broker.audience})")
    click.echo(f"  Demo mode: {'ENABLED' if config.checker.demo_mode_enabled else 'disabled'}")
