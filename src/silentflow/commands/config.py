"""Config commands -- view and modify global configuration.

Provides the ``silentflow config`` sub-command group for reading,
updating, and resetting the user's global configuration file
(:class:`~silentflow.models.GlobalConfig`): the client id, default
authority, silent-flow policy, cache location and output format.
"""

from __future__ import annotations

import typer

from silentflow.exceptions import ConfigError
from silentflow.output import get_output


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Prints the config directory on stderr and the configuration after
    applying project config and ``SILENTFLOW_*`` environment variables on
    stdout.

    Example::

        silentflow config show
        silentflow --json config show
    """
    from silentflow.config import get_config_dir, resolve_config

    output = get_output()
    try:
        config = resolve_config()
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    output.info(f"Config directory: {get_config_dir()}")
    output.print_record(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'client.client_id')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value in the user config file.

    Example::

        silentflow config set client.client_id 00000000-0000-0000-0000-000000000000
        silentflow config set client.claims_based_caching_enabled true
        silentflow config set cache.backend memory
    """
    from silentflow.config import load_global_config, save_global_config, set_config_value

    output = get_output()
    try:
        config = set_config_value(load_global_config(), key, value)
    except ConfigError as exc:
        output.error(str(exc))
        raise typer.Exit(code=2) from None

    save_global_config(config)
    output.success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the user configuration to defaults.

    Example::

        silentflow config reset --force
    """
    from silentflow.config import save_global_config
    from silentflow.models import GlobalConfig

    output = get_output()
    if not force and not typer.confirm("Reset all config to defaults?"):
        output.info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    output.success("Configuration reset to defaults.")
