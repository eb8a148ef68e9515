"""Logging setup shared by the CLI and library callers."""

import logging
import sys

_HANDLER_NAME = "receipt_mint"


def setup_logging(level: int = logging.WARNING) -> None:
    """Configure the root logger with a single stderr handler.

    Calling it again replaces the handler installed by the previous call
    and leaves any other handlers alone.

    Args:
        level: Logging level for the root logger.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(name)-24s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(handler)
