"""Main CLI entry point for keyrotate.

This module provides the command-line interface for keyrotate, a per-user
store of provider API keys. Besides plain key storage it manages rotation
lists: several labeled values per key, one of which is active at a time.

The CLI is built using Click and provides a hierarchical command structure
with comprehensive help and error handling.
"""

import functools
import json
from typing import Any, Callable, Optional

import click

from keyrotate import __version__
from keyrotate.utils.errors import ErrorHandler
from keyrotate.utils.logging import setup_logging


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--dry-run", is_flag=True, help="Show what would be done without executing")
@click.option("--log-file", help="Log to file in addition to console")
@click.option("--config", "config_path", envvar="KEYROTATE_CONFIG", help="Path to keyrotate.yml")
@click.option("--user", "-u", help="User whose secrets to operate on")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    dry_run: bool,
    log_file: Optional[str],
    config_path: Optional[str],
    user: Optional[str],
) -> None:
    """keyrotate - Provider API key store with managed rotation.

    Stores one active value per secret key and, optionally, a rotation list
    of labeled values per key that can be cycled through.

    Args:
        ctx: Click context object containing shared state
        verbose: Enable verbose output for detailed logging
        dry_run: Show what would be done without executing commands
        log_file: Optional path to log file for additional logging
        config_path: Optional configuration file path
        user: User handle selecting the secrets file
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["dry_run"] = dry_run
    ctx.obj["log_file"] = log_file
    ctx.obj["config_path"] = config_path
    ctx.obj["user"] = user
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose, log_file=log_file)


def _get_manager(ctx: click.Context):
    """Build (once per invocation) the secret manager and the target user."""
    if "manager" not in ctx.obj:
        from keyrotate.config import ConfigManager
        from keyrotate.secrets import SecretManager

        settings = ConfigManager(ctx.obj.get("config_path")).load_settings()
        ctx.obj["manager"] = SecretManager.from_settings(settings)
        ctx.obj["identity"] = ctx.obj.get("user") or settings.default_user

    return ctx.obj["manager"], ctx.obj["identity"]


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def key_options(func: Callable) -> Callable:
    """Add --key/--api/--source and pass the resolved key as ``key``."""

    @click.option("--key", "-k", "key_name", help="Secret key name")
    @click.option("--api", help="Infer the key from a provider API (e.g. openai)")
    @click.option("--source", help="Provider source within the API (e.g. claude)")
    @functools.wraps(func)
    def wrapper(*args, key_name: Optional[str], api: Optional[str], source: Optional[str], **kwargs):
        ctx = click.get_current_context()
        try:
            secret_manager, _ = _get_manager(ctx)
            key = secret_manager.catalog.resolve(key=key_name, api=api, source=source)
        except Exception as e:
            ctx.obj["error_handler"].exit_with_error(e, "Key resolution")
        return func(*args, key=key, **kwargs)

    return wrapper


@cli.command()
@click.argument("key")
@click.argument("value")
@click.option("--track", is_flag=True, help="Also add the value to the key's rotation list, if it has one")
@click.pass_context
def write(ctx: click.Context, key: str, value: str, track: bool) -> None:
    """Set the active value of KEY."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would write secret {key}")
        return

    try:
        secret_manager, identity = _get_manager(ctx)
        key = secret_manager.catalog.normalize(key)
        changed = secret_manager.write_secret(identity, key, value, track=track)

        if changed:
            click.echo(f"✓ Secret {key} saved")
        else:
            click.echo(f"Secret {key} already has this value")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Writing secret")


@cli.command()
@click.argument("key")
@click.pass_context
def delete(ctx: click.Context, key: str) -> None:
    """Remove the active value of KEY."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would delete secret {key}")
        return

    try:
        secret_manager, identity = _get_manager(ctx)
        key = secret_manager.catalog.normalize(key)

        if secret_manager.delete_secret(identity, key):
            click.echo(f"✓ Secret {key} deleted")
        else:
            click.echo(f"Secret {key} is not set")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Deleting secret")


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("--all", "show_all", is_flag=True, help="Include keys that are not set")
@click.pass_context
def flags(ctx: click.Context, output_format: str, show_all: bool) -> None:
    """Show which secret keys are configured, without their values."""
    try:
        secret_manager, identity = _get_manager(ctx)
        state = secret_manager.read_secret_flags(identity)

        if output_format == "json":
            _echo_json(state)
            return

        configured = sum(1 for value in state.values() if value)
        click.echo(f"{configured} of {len(state)} secret keys configured for {identity}")
        for key, is_set in state.items():
            if is_set or show_all:
                click.echo(f"  {'✓' if is_set else '-'} {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Reading secret state")


@cli.command()
@click.argument("key")
@click.pass_context
def find(ctx: click.Context, key: str) -> None:
    """Print the raw value of KEY (requires keys exposure unless KEY is a URL)."""
    try:
        secret_manager, identity = _get_manager(ctx)
        key = secret_manager.catalog.normalize(key)
        click.echo(secret_manager.find_secret(identity, key))

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Reading secret value")


@cli.command()
@click.pass_context
def view(ctx: click.Context) -> None:
    """Print the whole secrets file, including raw values (requires keys exposure)."""
    try:
        secret_manager, identity = _get_manager(ctx)
        _echo_json(secret_manager.view_all_secrets(identity))

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Viewing secrets")


@cli.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def manager(ctx: click.Context) -> None:
    """Manage rotation lists of secret values.

    Each key may hold several labeled values. Exactly one of them is the
    active value that applications use; rotation switches between them.
    """
    pass


@manager.command()
@click.pass_context
def state(ctx: click.Context) -> None:
    """Show every rotation list (comments and the selected entry, no values)."""
    try:
        secret_manager, identity = _get_manager(ctx)
        _echo_json(secret_manager.manager_state(identity))

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Reading manager state")


@manager.command()
@key_options
@click.pass_context
def probe(ctx: click.Context, key: str) -> None:
    """Check whether the active value is in the rotation list."""
    try:
        secret_manager, identity = _get_manager(ctx)
        _echo_json(secret_manager.probe(identity, key).to_dict())

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Probing secret")


@manager.command(context_settings={"ignore_unknown_options": True})
@key_options
@click.argument("search", required=False, default="")
@click.pass_context
def rotate(ctx: click.Context, key: str, search: str) -> None:
    """Switch to another value: by index, by comment, or the next one.

    A SEARCH that is a number is always treated as an index, even when a
    comment consists of that number. A SEARCH starting with a dash (such as
    -1) is taken as SEARCH, not as an option; "--" also ends option parsing.
    An index outside the list selects the next value.
    """
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would rotate {key} (search: {search or 'next'})")
        return

    try:
        secret_manager, identity = _get_manager(ctx)

        if secret_manager.rotate(identity, key, search):
            click.echo(f"✓ Secret {key} rotated")
        else:
            click.echo(f"No values to rotate for {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Secret rotation")


@manager.command()
@key_options
@click.argument("value")
@click.option("--comment", "-c", default="", help="Label for the value (default: key-<timestamp>)")
@click.pass_context
def append(ctx: click.Context, key: str, value: str, comment: str) -> None:
    """Add VALUE to the end of the rotation list."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would append a value to {key}")
        return

    try:
        secret_manager, identity = _get_manager(ctx)
        secret_manager.append(identity, key, value, comment=comment.strip())
        click.echo(f"✓ Value added to the rotation list of {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Appending secret")


@manager.command()
@key_options
@click.argument("index", type=int)
@click.pass_context
def splice(ctx: click.Context, key: str, index: int) -> None:
    """Remove entry INDEX without changing the active value."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would remove entry {index} from {key}")
        return

    try:
        secret_manager, identity = _get_manager(ctx)

        if secret_manager.splice(identity, key, index):
            click.echo(f"✓ Entry {index} removed from {key}")
        else:
            click.echo(f"No entry {index} in the rotation list of {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Removing secret")


@manager.command()
@key_options
@click.argument("index", type=int)
@click.pass_context
def remove(ctx: click.Context, key: str, index: int) -> None:
    """Remove entry INDEX, rotating to the next value if it was active."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would remove entry {index} from {key}")
        return

    try:
        secret_manager, identity = _get_manager(ctx)

        if secret_manager.remove(identity, key, index):
            click.echo(f"✓ Entry {index} removed from {key}")
        else:
            click.echo(f"No entry {index} in the rotation list of {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Removing secret")


@manager.command()
@key_options
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, key: str, yes: bool) -> None:
    """Blank the active value and drop every value in the rotation list."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would clear all values of {key}")
        return

    if not yes and not click.confirm(f"Clear all values of {key}?"):
        click.echo("Clear cancelled")
        return

    try:
        secret_manager, identity = _get_manager(ctx)

        if secret_manager.clear(identity, key):
            click.echo(f"✓ All values of {key} cleared")
        else:
            click.echo(f"Nothing to clear for {key}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Clearing secret")


@manager.command()
@key_options
@click.option("--comment", "-c", default="", help="Label for the migrated value (default: key-<timestamp>)")
@click.pass_context
def migrate(ctx: click.Context, key: str, comment: str) -> None:
    """Move the active value into the rotation list."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would migrate {key} into its rotation list")
        return

    try:
        secret_manager, identity = _get_manager(ctx)

        if secret_manager.migrate(identity, key, comment=comment.strip()):
            click.echo(f"✓ Key {key} migrated successfully")
        else:
            click.echo(f"Secret {key} has no value to migrate")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Migrating secret")


@manager.command()
@key_options
@click.option("--comment", "show_comment", is_flag=True, help="Print the comment instead of the index, if it has one")
@click.option("--quiet", "-q", is_flag=True, help="Print nothing when the key is not managed")
@click.pass_context
def current(ctx: click.Context, key: str, show_comment: bool, quiet: bool) -> None:
    """Print the position of the active value in the rotation list."""
    try:
        secret_manager, identity = _get_manager(ctx)
        result = secret_manager.current(identity, key, comment=show_comment)

        if result is None:
            if not quiet:
                click.echo(f"Key {key} is not managed", err=True)
            return

        click.echo(str(result))

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Reading current secret")


@manager.command("list")
@key_options
@click.pass_context
def list_entries(ctx: click.Context, key: str) -> None:
    """List the comments of the rotation list, by index."""
    try:
        secret_manager, identity = _get_manager(ctx)
        entries = secret_manager.list_entries(identity, key)
        _echo_json({str(index): comment for index, comment in entries.items()})

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Listing secrets")


@cli.group("config", context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def config_group(ctx: click.Context) -> None:
    """Configuration file management."""
    pass


@config_group.command("init")
@click.option("--path", help="Where to write the file (default: ./keyrotate.yml)")
@click.option("--data-root", help="Directory holding the per-user secrets")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx: click.Context, path: Optional[str], data_root: Optional[str], force: bool) -> None:
    """Create a default configuration file."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would write configuration to {path or 'keyrotate.yml'}")
        return

    try:
        from keyrotate.config import ConfigManager

        overrides = {"data_root": data_root} if data_root else {}
        created = ConfigManager(ctx.obj.get("config_path")).initialize_config(path, force=force, **overrides)
        click.echo(f"✓ Configuration written to {created}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration initialization")


@config_group.command("validate")
@click.option("--path", help="File to validate (default: the active configuration)")
@click.pass_context
def config_validate(ctx: click.Context, path: Optional[str]) -> None:
    """Validate a configuration file."""
    try:
        from keyrotate.config import ConfigManager
        from keyrotate.utils.errors import ConfigurationError, format_validation_errors

        config_manager = ConfigManager(ctx.obj.get("config_path"))
        target = path or config_manager.get_config_path()
        if not target:
            raise ConfigurationError(
                "No configuration file found",
                suggestions=["Run 'keyrotate config init' to create one"],
            )

        errors = config_manager.validator.validate_config_file(target)

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration validation")
        return

    if errors:
        click.echo(f"✗ {format_validation_errors(errors)}", err=True)
        ctx.exit(1)

    click.echo(f"✓ {target} is valid")


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective settings."""
    try:
        from keyrotate.config import ConfigManager

        config_manager = ConfigManager(ctx.obj.get("config_path"))
        settings = config_manager.load_settings()
        click.echo(f"# source: {config_manager.get_config_path() or 'built-in defaults'}")
        _echo_json(settings.to_dict())

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Reading configuration")


if __name__ == "__main__":
    cli()
