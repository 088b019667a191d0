"""Token CLI commands: keygen, issue, verify."""

from __future__ import annotations

import click


@click.group("token")
def token_group() -> None:
    """Signing keys and scoring tokens."""
    pass


@token_group.command("keygen")
@click.option("--out", type=click.Path(), default=None,
              help="Write an env file instead of printing")
@click.pass_context
def token_keygen(ctx: click.Context, out: str | None) -> None:
    """Generate an Ed25519 keypair as JWK secrets for the broker and checker."""
    import json
    from pathlib import Path

    from creditpulse.cli.common import context_config
    from creditpulse.tokens.keys import generate_keypair_jwk

    config = context_config(ctx)
    private_jwk, public_jwk = generate_keypair_jwk(config.broker.key_id)
    lines = [
        f"{config.broker.private_jwk_secret}='{json.dumps(private_jwk)}'",
        f"{config.checker.public_jwk_secret}='{json.dumps(public_jwk)}'",
    ]

    if out:
        target = Path(out).expanduser()
        target.write_text("\n".join(lines) + "\n")
        target.chmod(0o600)
        click.echo(f"Wrote keypair ({config.broker.key_id}) to {target}")
    else:
        for line in lines:
            click.echo(line)


@token_group.command("issue")
@click.option("--full-name", required=True)
@click.option("--email", required=True)
@click.option("--national-id", required=True)
@click.option("--phone", default=None)
@click.pass_context
def token_issue(
    ctx: click.Context, full_name: str, email: str, national_id: str, phone: str | None
) -> None:
    """Issue a scoring token (private key from the configured secret)."""
    from creditpulse.cli.common import context_config, echo_json, fail
    from creditpulse.errors import CreditPulseError
    from creditpulse.tokens.broker import TokenBroker

    config = context_config(ctx)
    broker = TokenBroker(config.broker)
    try:
        issued = broker.issue(
            {"full_name": full_name, "email": email, "national_id": national_id, "phone": phone},
            user_agent="creditpulse-cli",
        )
    except CreditPulseError as e:
        fail(e)
    echo_json(issued)


@token_group.command("verify")
@click.argument("token")
@click.pass_context
def token_verify(ctx: click.Context, token: str) -> None:
    """Verify a token against the configured public key and print its claims."""
    from creditpulse.cli.common import context_config, echo_json, fail
    from creditpulse.errors import AuthzError, CreditPulseError
    from creditpulse.tokens.checker import TokenChecker

    config = context_config(ctx)
    checker = TokenChecker(config.checker, config.broker)
    try:
        admission = checker.admit(f"Bearer {token}")
    except AuthzError as e:
        click.echo(f"Token rejected: {e.reason}", err=True)
        raise SystemExit(1) from None
    except CreditPulseError as e:
        fail(e)
    click.echo(f"Token accepted ({admission.mode} mode)")
    echo_json(admission.claims)
