"""Init command -- write a starter worker configuration.

Implements the ``offcache init`` top-level command: builds a
:class:`~offcache.models.WorkerConfig` from the given scope, version and
asset lists, and writes it either as a project-local ``offcache.json``
or as the user's global config.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from offcache.output import error, info, success


def init_command(
    scope: str = typer.Option(
        ...,
        "--scope",
        "-s",
        help="Base URL of the application (relative assets resolve against it).",
    ),
    prefix: str = typer.Option("offcache", "--prefix", help="Namespace name prefix."),
    cache_version: str = typer.Option(
        "v1", "--cache-version", help="Version for both namespaces."
    ),
    static: Optional[list[str]] = typer.Option(
        None, "--static", help="Static asset URL (repeatable)."
    ),
    dynamic: Optional[list[str]] = typer.Option(
        None, "--dynamic", help="CDN-style asset URL (repeatable)."
    ),
    global_config: bool = typer.Option(
        False, "--global", help="Write the user config instead of ./offcache.json."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file."),
) -> None:
    """Write a starter configuration.

    Raises:
        typer.Exit: With code 2 if the target file exists and ``--force``
            was not given.

    Example::

        offcache init --scope https://app.example.com/
        offcache init -s https://app.example.com/ --static ./ --static ./index.html \\
            --dynamic https://cdn.example.com/lib.min.js --cache-version v1.2
    """
    from offcache.config import global_config_path, save_config
    from offcache.models import AssetManifest, CacheVersions, WorkerConfig

    target = global_config_path() if global_config else Path.cwd() / "offcache.json"
    if target.exists() and not force:
        error(f"Config already exists: {target}")
        info("Use --force to overwrite it.")
        raise typer.Exit(code=2)

    manifest = AssetManifest()
    if static:
        manifest.static_assets = list(static)
    if dynamic:
        manifest.dynamic_assets = list(dynamic)

    config = WorkerConfig(
        scope=scope,
        versions=CacheVersions(
            prefix=prefix, static_version=cache_version, dynamic_version=cache_version
        ),
        manifest=manifest,
    )
    path = save_config(config, target)
    success(f"Wrote {path}")
