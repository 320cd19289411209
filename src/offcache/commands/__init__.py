"""Built-in CLI commands for offcache.

- :mod:`offcache.commands.init` -- ``offcache init``
- :mod:`offcache.commands.config` -- ``offcache config show|set``
- :mod:`offcache.commands.cache` -- ``install``, ``fetch``, ``classify``,
  ``namespaces``, ``size``, ``clear``, ``message``
"""
