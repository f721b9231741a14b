import errno
import logging
import socket

import aiohttp

from .models import ErrorKind, RequestOutcome
from .utils import now, elapsed_ms

logger = logging.getLogger(__name__)

USER_AGENT = "hPING [git.io/hping]"

_ERRNO_KINDS = {
    errno.ECONNREFUSED: ErrorKind.CONNECTION_REFUSED,
    errno.ECONNRESET: ErrorKind.CONNECTION_RESET,
    errno.ETIMEDOUT: ErrorKind.TIMEOUT,
}


def classify_transport_failure(failure: BaseException) -> ErrorKind:
    """Map a transport exception to an ErrorKind, defaulting to OTHER."""
    if isinstance(failure, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(failure, aiohttp.ServerDisconnectedError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(failure, aiohttp.ClientConnectorDNSError):
        return ErrorKind.DNS_FAILURE

    # aiohttp wraps socket errors: ClientConnectorError.os_error, or the __cause__
    candidates = [failure, getattr(failure, "os_error", None), failure.__cause__]
    for cause in candidates:
        if isinstance(cause, socket.gaierror):
            return ErrorKind.DNS_FAILURE
        if isinstance(cause, OSError) and cause.errno in _ERRNO_KINDS:
            return _ERRNO_KINDS[cause.errno]
    return ErrorKind.OTHER


def _content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class Requester:
    """Issues single timed probes over a shared aiohttp session."""

    def __init__(self, session: aiohttp.ClientSession, headers: dict[str, str] | None = None):
        self.session = session
        self.headers = {"User-Agent": USER_AGENT, **(headers or {})}

    async def execute(self, url: str, method: str, timeout_ms: int) -> RequestOutcome:
        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
        start = now()
        try:
            async with self.session.request(
                method, url, headers=self.headers, timeout=timeout
            ) as resp:
                # Headers are in; the body is left unread and dropped on release
                latency = elapsed_ms(start)
                return RequestOutcome.from_response(
                    resp.status,
                    latency,
                    server=resp.headers.get("Server"),
                    content_length=_content_length(resp.headers.get("Content-Length")),
                )
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            kind = classify_transport_failure(e)
            logger.debug(f"{method} {url} failed: {kind.value} ({e!r})")
            return RequestOutcome.from_failure(kind)
        except Exception as e:
            logger.debug(f"Unexpected error probing {url}: {e!r}")
            return RequestOutcome.from_failure(ErrorKind.OTHER)
