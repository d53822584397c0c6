"""Warden CLI - Main Entry Point.

Commands:
    keys      - Generate and rotate token signing keys
    config    - Inspect the effective configuration
    totp      - Provision and check TOTP secrets
    sessions  - One-shot session maintenance
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click

from warden.auth.mfa import SecondFactorVerifier
from warden.auth.tokens import KeyAlgorithm, KeyRing
from warden.config import ConfigLoader
from warden.faults import ConfigInvalidFault
from warden.sessions import SessionManager, SessionReaper

from . import __cli_name__, __version__


def _fail(message: str) -> None:
    click.secho(f"  ✗ {message}", fg="red", err=True)
    sys.exit(1)


def _load_config(ctx: click.Context):
    try:
        return ConfigLoader.load(env_file=ctx.obj["env_file"])
    except ConfigInvalidFault as e:
        _fail(f"Invalid configuration: {e.context.get('key')}: {e.context.get('reason')}")


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Load settings from a .env file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, env_file: Optional[str], verbose: bool):
    """Warden authentication core: operator commands."""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    ctx.obj["verbose"] = verbose
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


# ============================================================================
# keys
# ============================================================================

@cli.group()
def keys():
    """Manage token signing keys."""


@keys.command("generate")
@click.option("--algorithm", type=click.Choice(KeyAlgorithm.ALL), default=None,
              help="Signing algorithm (default: token.algorithm from config)")
@click.option("--kid", type=str, default=None, help="Key id (default: random)")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), required=True,
              help="Key ring file to write")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def keys_generate(ctx, algorithm: Optional[str], kid: Optional[str], output: Path, force: bool):
    """
    Create a new key ring with one signing key.

    Examples:
      warden keys generate -o keys.json
      warden keys generate -o keys.json --algorithm ES256
    """
    if output.exists() and not force:
        _fail(f"{output} already exists (use --force to overwrite)")

    algorithm = algorithm or _load_config(ctx).token.algorithm
    ring = KeyRing.generate(algorithm, kid=kid)
    ring.to_file(output)
    click.secho(f"  ✓ Wrote key ring to {output}", fg="green")
    click.echo(f"    kid: {ring.current_kid}  algorithm: {algorithm}")


@keys.command("rotate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--algorithm", type=click.Choice(KeyAlgorithm.ALL), default=None,
              help="Algorithm for the new key (default: same as current)")
def keys_rotate(path: Path, algorithm: Optional[str]):
    """Add a new signing key and retire the current one."""
    try:
        ring = KeyRing.from_file(path)
    except (ValueError, KeyError, json.JSONDecodeError) as e:
        _fail(f"Cannot read key ring {path}: {e}")
    previous = ring.current_kid
    new_key = ring.rotate(algorithm)
    ring.to_file(path)
    click.secho(f"  ✓ Rotated {previous} -> {new_key.kid}", fg="green")


# ============================================================================
# config
# ============================================================================

@cli.group("config")
def config_group():
    """Inspect configuration."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def config_show(ctx, as_json: bool):
    """
    Print the effective configuration (defaults < .env < WARDEN_* env vars).

    Durations are shown in seconds.
    """
    data = _load_config(ctx).to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2, sort_keys=True))
        return

    for section, values in data.items():
        click.secho(f"[{section}]", fg="cyan", bold=True)
        for key, value in values.items():
            click.echo(f"  {key:<34} {value}")


# ============================================================================
# totp
# ============================================================================

@cli.group()
def totp():
    """TOTP helpers."""


@totp.command("provision")
@click.argument("label")
@click.pass_context
def totp_provision(ctx, label: str):
    """Generate a secret and provisioning URI for LABEL (usually an email)."""
    verifier = SecondFactorVerifier(_load_config(ctx).second_factor)
    secret, uri = verifier.generate_secret(label)
    click.echo(f"secret: {secret}")
    click.echo(f"uri:    {uri}")


@totp.command("code")
@click.argument("secret")
@click.pass_context
def totp_code(ctx, secret: str):
    """Print the current code for SECRET."""
    verifier = SecondFactorVerifier(_load_config(ctx).second_factor)
    click.echo(verifier.current_code(secret))


# ============================================================================
# sessions
# ============================================================================

def _import_object(path: str) -> Any:
    """Resolve ``package.module:attribute``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise click.BadParameter("expected 'module:attribute'", param_hint="--store")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name}: {e}", param_hint="--store")
    try:
        return getattr(module, attr)
    except AttributeError:
        raise click.BadParameter(f"{module_name} has no attribute {attr}", param_hint="--store")


async def _reap(store_ref: Any, config) -> int:
    store = store_ref() if callable(store_ref) else store_ref
    if inspect.isawaitable(store):
        store = await store
    manager = SessionManager(store, config.session)
    return await SessionReaper(manager).reap()


@cli.group()
def sessions():
    """Session maintenance."""


@sessions.command("reap")
@click.option("--store", "store_path", required=True,
              help="Session store object or factory as 'module:attribute'")
@click.pass_context
def sessions_reap(ctx, store_path: str):
    """
    Expire stale sessions once.

    Examples:
      warden sessions reap --store myapp.stores:session_store
    """
    store_ref = _import_object(store_path)
    count = asyncio.run(_reap(store_ref, _load_config(ctx)))
    click.secho(f"  ✓ Expired {count} session(s)", fg="green")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
