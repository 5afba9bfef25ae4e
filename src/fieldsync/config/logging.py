"""Root logger setup for the command line."""

from __future__ import annotations

import logging

_CHATTY_LIBRARIES = ("httpx", "httpcore", "hishel")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Log to stderr as ``time LEVEL [logger] message``.

    HTTP client libraries log every request at INFO; they are held at WARNING
    unless ``level`` is DEBUG. ``force=True`` replaces existing handlers.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)
