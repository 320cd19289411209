"""Cache commands -- drive a worker from the command line.

Each command resolves the :class:`~offcache.models.WorkerConfig`, opens
a worker over the disk store and the httpx origin with
:func:`~offcache.worker.open_worker`, runs one operation, and closes the
worker (waiting for background revalidations).

Lifecycle state lives in the worker process, so ``install`` performs the
whole bring-up: populate, then activate unless ``--no-activate``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from offcache.exit_codes import EXIT_GENERIC_FAILURE
from offcache.output import error, format_response, info, print_data, print_table, success

T = TypeVar("T")


def _load_config(ctx: typer.Context):
    from offcache.config import resolve_config

    cli_path = ctx.obj.get("config_path") if ctx.obj else None
    return resolve_config(cli_path)


def _run(ctx: typer.Context, operation: Callable[[Any], Awaitable[T]]) -> T:
    """Run *operation(worker)* on a fresh worker, mapping errors to exit codes."""
    from offcache.exceptions import OffcacheError
    from offcache.worker import open_worker

    async def _main() -> T:
        async with open_worker(config) as worker:
            return await operation(worker)

    try:
        config = _load_config(ctx)
        return asyncio.run(_main())
    except OffcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def install_command(
    ctx: typer.Context,
    no_activate: bool = typer.Option(
        False, "--no-activate", help="Populate only; leave superseded namespaces in place."
    ),
) -> None:
    """Populate the current namespaces, then activate.

    Example::

        offcache install
        offcache --json install --no-activate
    """

    async def _install(worker):
        if no_activate:
            worker.config.skip_waiting = False
        return await worker.install()

    result = _run(ctx, _install)
    print_table(
        ["namespace", "assets", "status", "error"],
        [
            [p.namespace, str(len(p.urls)), "ok" if p.ok else "failed", p.error or ""]
            for p in result.populations
        ],
        title="Install",
    )
    if not result.ok:
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    success("Install complete")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to request through the cache."),
    accept: Optional[str] = typer.Option(
        None, "--accept", help="Accept header (e.g. text/html for navigations)."
    ),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
) -> None:
    """Request one URL through the caching layer and print the body.

    Example::

        offcache fetch https://app.example.com/index.html
        offcache -v fetch https://app.example.com/page --accept text/html
    """
    from offcache.models import RequestDescriptor

    headers = {"accept": accept} if accept else {}
    request = RequestDescriptor(url=url, method=method, headers=headers)
    response = _run(ctx, lambda worker: worker.intercept(request))
    if response is None:
        info(f"Not intercepted: {url}")
        raise typer.Exit(code=2)
    info(f"HTTP {response.status} {response.content_type}".rstrip())
    print_data(response.body.decode("utf-8", errors="replace"))


def classify_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to classify."),
) -> None:
    """Show which strategy a URL is handled with.

    Example::

        offcache classify https://cdn.example.com/lib.min.js
    """
    from offcache.classifier import Classifier
    from offcache.models import RequestDescriptor

    config = _load_config(ctx)
    tag = Classifier(config.manifest, config.scope).classify(RequestDescriptor(url=url))
    print_data(tag.value if tag is not None else "passthrough")


def namespaces_command(ctx: typer.Context) -> None:
    """List namespaces with their entry counts and sizes.

    Example::

        offcache namespaces
    """

    async def _list(worker):
        current = worker.config.versions.reserved_names()
        rows = []
        for name in await worker.store.keys():
            namespace = await worker.store.open(name)
            rows.append([
                name,
                str(len(await namespace.keys())),
                str(await namespace.size()),
                "current" if name in current else "stale",
            ])
        return rows

    rows = _run(ctx, _list)
    print_table(["namespace", "entries", "bytes", "status"], rows, title="Namespaces")


def size_command(ctx: typer.Context) -> None:
    """Print the total body size of every stored response.

    Example::

        offcache size
    """
    reply = _run(ctx, lambda worker: worker.handle_control_message({"type": "GET_CACHE_SIZE"}))
    format_response(reply)


def clear_command(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete every namespace, current or stale.

    Example::

        offcache clear --force
    """
    if not force:
        confirmed = typer.confirm("Delete every cache namespace?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()
    reply = _run(ctx, lambda worker: worker.handle_control_message({"type": "CLEAR_CACHE"}))
    format_response(reply)


def message_command(
    ctx: typer.Context,
    message_type: str = typer.Argument(help="Message type, e.g. GET_CACHE_SIZE."),
    payload: Optional[str] = typer.Option(None, "--payload", help="JSON payload."),
) -> None:
    """Send a raw control message and print its reply.

    Example::

        offcache message GET_CACHE_SIZE
    """
    message: dict[str, Any] = {"type": message_type}
    if payload is not None:
        try:
            message["payload"] = json.loads(payload)
        except json.JSONDecodeError as exc:
            error(f"Invalid JSON payload: {exc}")
            raise typer.Exit(code=2) from None

    reply = _run(ctx, lambda worker: worker.handle_control_message(message))
    if reply is None:
        info("No reply")
        return
    format_response(reply)


def register_cache_commands(app: typer.Typer) -> None:
    """Attach the cache commands to *app*."""
    app.command("install")(install_command)
    app.command("fetch")(fetch_command)
    app.command("classify")(classify_command)
    app.command("namespaces")(namespaces_command)
    app.command("size")(size_command)
    app.command("clear")(clear_command)
    app.command("message")(message_command)
