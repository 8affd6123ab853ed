"""Logging setup.

Modules log through ``logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once to route records to stderr through Rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_NAME = "bibliodesk-rich"


def setup_logging(level: str = "WARNING") -> None:
    """Attach a Rich handler to the ``bibliodesk`` logger.

    Calling it again only changes the level.
    """
    logger = logging.getLogger("bibliodesk")
    logger.setLevel(level.upper())

    if any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        return

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
