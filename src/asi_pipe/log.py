from __future__ import annotations

import logging
import time

from rich.logging import RichHandler


_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
# third-party loggers that flood DEBUG output (PIL logs every PNG chunk)
_NOISY = ("PIL", "h5py")


def setup_logging(level: str | None = None) -> None:
    """Install one RichHandler on the root logger.

    Hosts (notebooks, services, the read pipeline) call this once; the
    library never does. Calling it again replaces the handler. Unknown level
    names fall back to "INFO". Pillow and h5py stay at WARNING whatever the
    level.
    """

    level = str(level or "INFO").upper().strip()
    if level not in _LEVELS:
        level = "INFO"

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%H:%M:%S]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, omit_repeated_times=False)],
    )
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)


class timer:
    """Context timer for one decode step.

        with timer("decode THEMIS_ASI_RAW (60 files)", log) as t:
            ...
        t.elapsed  # seconds

    Start is logged at DEBUG, success at INFO, failure at ERROR.
    """

    def __init__(self, name: str, logger: logging.Logger | None = None):
        self.name = name
        self.logger = logger or logging.getLogger("asi_pipe")
        self.t0 = 0.0
        self.elapsed = 0.0

    def __enter__(self):
        self.t0 = time.perf_counter()
        self.logger.debug("▶ %s…", self.name)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed = time.perf_counter() - self.t0
        if exc is None:
            self.logger.info("✓ %s (%.2f s)", self.name, self.elapsed)
        else:
            self.logger.error("✗ %s failed after %.2f s: %s", self.name, self.elapsed, exc)
        return False
