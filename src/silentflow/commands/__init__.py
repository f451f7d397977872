"""Built-in CLI sub-commands for silentflow.

* :mod:`~silentflow.commands.cache` -- list cached accounts and tokens and
  run silent requests against the cache.
* :mod:`~silentflow.commands.config` -- view and modify global settings.

``config`` is a :class:`typer.Typer` sub-application; the cache commands
are plain callbacks registered directly on the root app.
"""
