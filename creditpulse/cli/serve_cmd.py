"""CLI command: creditpulse serve -- run the HTTP API."""

from __future__ import annotations

import click


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Port (default from config)")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve the scoring API and token gateway with uvicorn."""
    import uvicorn

    from creditpulse.api import create_app
    from creditpulse.cli.common import context_config

    config = context_config(ctx)
    try:
        app = create_app(config)
    except ValueError as e:
        raise click.UsageError(str(e)) from None
    uvicorn.run(
        app,
        host=host or config.api.host,
        port=port or config.api.port,
        log_level="debug" if ctx.find_root().params.get("verbose") else "info",
    )
