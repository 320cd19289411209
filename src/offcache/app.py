"""Typer application and CLI entry point for offcache.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``init``, ``config``, and the cache commands
``install``, ``fetch``, ``classify``, ``namespaces``, ``size``, ``clear``
and ``message``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and
invokes the Typer app. Unhandled exceptions are written to a crash log
under the data directory.

See Also:
    :mod:`offcache.config`: Configuration resolution.
    :mod:`offcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from offcache import __version__
from offcache.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="offcache",
    help="Offline caching layer between an application and its origins.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"offcache {__version__}")
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
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Config file to use."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~offcache.output.OutputManager` from
    CLI flags and stores the config path in the Typer context so that
    sub-commands can read it via ``ctx.obj``.
    """
    from offcache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(
        OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    )

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from offcache.commands.cache import register_cache_commands  # noqa: E402
from offcache.commands.config import config_app  # noqa: E402
from offcache.commands.init import init_command  # noqa: E402

app.command("init")(init_command)
app.add_typer(config_app, name="config", help="Configuration management.")
register_cache_commands(app)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from offcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``offcache`` console script.

    Unhandled :class:`~offcache.exceptions.OffcacheError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

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
        from offcache.exceptions import OffcacheError
        from offcache.output import error

        if isinstance(exc, OffcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
