"""Typer application and CLI entry point for silentflow.

This module wires together the top-level Typer application, registers the
built-in commands (``accounts``, ``tokens``, ``acquire`` and the ``config``
group) and configures logging from the global flags.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. Unhandled :class:`~silentflow.exceptions.SilentFlowError`
instances exit with the error's ``exit_code``; anything else is reported as
a generic failure.

See Also:
    :mod:`silentflow.config`: Configuration resolution.
    :mod:`silentflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Optional

import typer

from silentflow import __version__
from silentflow.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="silentflow",
    help="Acquire OAuth2/OIDC tokens silently from a credential cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from silentflow.commands.cache import accounts_command, acquire_command, tokens_command  # noqa: E402
from silentflow.commands.config import config_app  # noqa: E402

app.command("accounts")(accounts_command)
app.command("tokens")(tokens_command)
app.command("acquire")(acquire_command)
app.add_typer(config_app, name="config", help="Configuration management.")


class _OutputLogHandler(logging.Handler):
    """Forward library log records to the active :class:`~silentflow.output.OutputManager`."""

    def emit(self, record: logging.LogRecord) -> None:
        from silentflow.output import get_output

        output = get_output()
        message = self.format(record)
        if record.levelno >= logging.WARNING:
            output.warning(message)
        else:
            output.debug(message)


def _configure_logging(verbose: bool) -> None:
    """Route the ``silentflow`` logger to stderr; DEBUG with ``--verbose``."""
    logger = logging.getLogger("silentflow")
    for handler in list(logger.handlers):
        if isinstance(handler, _OutputLogHandler):
            logger.removeHandler(handler)
    handler = _OutputLogHandler()
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"silentflow {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="Client id override (highest precedence)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~silentflow.output.OutputManager`, hooks
    the ``silentflow`` logger up to it, and stores shared options in
    ``ctx.obj``.
    """
    from silentflow.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["client_id"] = client_id
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``silentflow`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from silentflow.exceptions import SilentFlowError
        from silentflow.output import get_output

        if isinstance(exc, SilentFlowError):
            get_output().error(str(exc))
            sys.exit(exc.exit_code)
        logging.getLogger(__name__).debug("Unexpected error", exc_info=True)
        get_output().error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
