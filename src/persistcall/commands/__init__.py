"""Built-in CLI sub-commands for persistcall.

* :mod:`~persistcall.commands.fetch` -- fetch a URL through the cache.
* :mod:`~persistcall.commands.cache` -- inspect, key, and evict cache entries.
* :mod:`~persistcall.commands.config` -- view and modify global settings.

``fetch`` is a plain callback registered on the root app; ``cache`` and
``config`` export :class:`typer.Typer` sub-applications.
"""
