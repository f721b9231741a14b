# hping/logging_config.py
import itertools
import logging
import sys
from pathlib import Path

DIAGNOSTIC_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"

_sink_ids = itertools.count()


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> logging.Logger:
    """Send diagnostics to stderr, never to stdout.

    stdout carries only status lines and exit summaries, so `hping host | grep DOWN`
    sees nothing but results. Transitions and summaries that must survive the run go
    to the separate `StatusLog`, not through here. Python warnings (for example
    aiohttp's unclosed-session warnings) are routed into the same stderr channel, and
    `log_file` adds a copy of the diagnostics on disk.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt=DIAGNOSTIC_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        root.info(f"Diagnostics also written to {log_file}")

    logging.captureWarnings(True)

    def log_uncaught(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        root.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = log_uncaught

    return root


class StatusLog:
    """Append-only, timestamped sink for status transitions and exit summaries.

    Backed by its own non-propagating logger so records never reach the
    diagnostic handlers, and each record is written whole under the handler lock.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S"))
        self._logger = logging.getLogger(f"{__name__}.status.{next(_sink_ids)}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._logger.addHandler(self._handler)
        self.closed = False

    def info(self, message: str) -> None:
        if self.closed:
            raise ValueError(f"Status log {self.path} is closed")
        self._logger.info(str(message))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._logger.removeHandler(self._handler)
        self._handler.close()


def create_status_log(log_file: str, home_dir: Path) -> StatusLog:
    path = Path(log_file or "logs/hping.log").expanduser()
    if not path.is_absolute():
        path = home_dir / path
    return StatusLog(path)
