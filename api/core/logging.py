"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)` with `event key=value`
messages; this only installs the root handler.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in list(root.handlers):
        if getattr(handler, "_listening_post", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler._listening_post = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # Access logs duplicate what the middleware already reports.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
