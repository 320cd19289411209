"""offcache -- an offline caching layer between a client app and its origins.

For every outgoing request offcache decides whether to answer from a
local persistent store, from the network, or from a combination of both,
and it manages the versioned lifecycle of that store: population of a
new generation at install time and removal of superseded generations at
activation time.

Typical workflow::

    offcache init --scope https://app.example.com/   # write a config
    offcache install                                  # populate the store
    offcache fetch https://app.example.com/index.html

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and precedence resolution.
    classifier: Maps requests to caching strategies.
    strategies: The cache-first, network-first and stale-while-revalidate engine.
    lifecycle: Install / activate state machine and client sessions.
    control: The control-message protocol.
    worker: Facade exposing ``intercept`` and ``handle_control_message``.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr diagnostics with Rich support.
"""

__version__ = "0.1.0"
