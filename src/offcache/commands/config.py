"""Config commands -- view and modify the worker configuration.

Provides the ``offcache config`` sub-command group for reading and
updating the resolved :class:`~offcache.models.WorkerConfig`. Changes
are written back to the file the config was loaded from (or the global
config when none exists yet).
"""

from __future__ import annotations

import typer

from offcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


def _config_path(ctx: typer.Context):
    from offcache.config import global_config_path, resolve_config_path

    cli_path = ctx.obj.get("config_path") if ctx.obj else None
    return resolve_config_path(cli_path) or global_config_path()


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        offcache config show
        offcache --json config show
    """
    from offcache.config import resolve_config

    cli_path = ctx.obj.get("config_path") if ctx.obj else None
    config = resolve_config(cli_path)
    info(f"Config file: {_config_path(ctx)}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'versions.static_version')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, or str). List fields cannot be set
    this way; edit the file or re-run ``offcache init``.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or Pydantic validation fails.

    Example::

        offcache config set versions.static_version v1.3
        offcache config set request.max_retries 2
    """
    from offcache.config import load_config, save_config
    from offcache.models import WorkerConfig

    path = _config_path(ctx)
    config = load_config(path) if path.is_file() else WorkerConfig()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    if isinstance(current, (list, dict)):
        error(f"Cannot set structured key {key} from the command line")
        raise typer.Exit(code=2)
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    else:
        coerced = value  # type: ignore[assignment]

    target[final_key] = coerced

    try:
        new_config = WorkerConfig.model_validate(data)
    except Exception as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config, path)
    success(f"Set {key} = {coerced}")
