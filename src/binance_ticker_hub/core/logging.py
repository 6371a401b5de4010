from __future__ import annotations

import logging

from rich.logging import RichHandler

_HANDLER_NAME = "binance_ticker_hub"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return

    handler = RichHandler(rich_tracebacks=True, show_path=False, log_time_format="%Y-%m-%d %H:%M:%S")
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)

    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(max(root.level, logging.INFO))
