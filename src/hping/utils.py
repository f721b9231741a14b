import asyncio
import logging
import re
import signal
import socket
import time
from collections.abc import Callable
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# ────────────────────────────────
# Time Helpers
# ────────────────────────────────


def now() -> float:
    return time.perf_counter()


def elapsed_ms(start: float) -> int:
    return int((now() - start) * 1000)


# ────────────────────────────────
# Target Normalization
# ────────────────────────────────

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_target(target: str) -> str:
    return target if _SCHEME_RE.match(target) else f"http://{target}"


async def resolve_ip(url: str) -> str:
    """First IPv4 address of the URL's host, or "" when it cannot be resolved."""
    host = urlparse(url).hostname
    if not host:
        return ""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except (OSError, UnicodeError) as e:
        logger.debug(f"Could not resolve {host}: {e}")
        return ""
    return infos[0][4][0] if infos else ""


# ────────────────────────────────
# Signal Handling
# ────────────────────────────────


class GracefulKiller:
    """Routes the first SIGINT/SIGTERM to a callback on the running event loop.

    The handlers are removed as soon as one signal arrives, so a second Ctrl+C
    falls through to the default behavior and interrupts a slow drain.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, on_signal: Callable[[], None]):
        self._on_signal = on_signal
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous: dict[int, object] = {}

    def install(self) -> None:
        self._loop = asyncio.get_running_loop()
        for sig in self.SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.exit_gracefully, sig)
            except NotImplementedError:
                # Event loops without add_signal_handler (Windows)
                self._previous[sig] = signal.signal(sig, self._threadsafe_handler)

    def restore(self) -> None:
        if self._loop is None:
            return
        for sig in self.SIGNALS:
            if sig in self._previous:
                signal.signal(sig, self._previous.pop(sig))
            else:
                self._loop.remove_signal_handler(sig)
        self._loop = None

    def _threadsafe_handler(self, signum, frame):
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.exit_gracefully, signum)

    def exit_gracefully(self, signum: int) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, draining targets")
        self.restore()
        self._on_signal()
