"""Logging helpers for pgdialect."""

import logging


def get_logger(name: str = "pgdialect") -> logging.Logger:
    """Return a :class:`logging.Logger` under the ``pgdialect`` namespace.

    The library never installs handlers; applications configure logging
    (e.g. ``logging.basicConfig()``) in their entry point.
    """
    if name != "pgdialect" and not name.startswith("pgdialect."):
        name = f"pgdialect.{name}"
    return logging.getLogger(name)
