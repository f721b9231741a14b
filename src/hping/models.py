from dataclasses import dataclass
from enum import Enum
from typing import Literal
from collections.abc import Callable

# Sentinel status code for requests that never produced an HTTP response
ERROR = "error"

Code = int | Literal["error"]


class StatusClass(str, Enum):
    UP = "[UP]"
    DOWN = "[DOWN]"


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    DNS_FAILURE = "dns-failure"
    CONNECTION_RESET = "connection-reset"
    CONNECTION_REFUSED = "connection-refused"
    OTHER = "other"

    @property
    def identifier(self) -> str:
        return _ERROR_IDENTIFIERS[self]

    @property
    def info(self) -> str | None:
        return _ERROR_INFO.get(self)


_ERROR_IDENTIFIERS = {
    ErrorKind.TIMEOUT: "ETIMEDOUT",
    ErrorKind.DNS_FAILURE: "ENOTFOUND",
    ErrorKind.CONNECTION_RESET: "ECONNRESET",
    ErrorKind.CONNECTION_REFUSED: "ECONNREFUSED",
    ErrorKind.OTHER: "REQUEST_FAILED",
}

_ERROR_INFO = {
    ErrorKind.TIMEOUT: "connection_timeout",
    ErrorKind.DNS_FAILURE: "server_not_found",
    ErrorKind.CONNECTION_RESET: "connection_closed",
    ErrorKind.CONNECTION_REFUSED: "connection_refused",
}


def classify_code(code: Code) -> StatusClass:
    if code == ERROR or code >= 500:
        return StatusClass.DOWN
    return StatusClass.UP


@dataclass(frozen=True)
class Target:
    url: str
    ip: str = ""


@dataclass(frozen=True)
class RequestOutcome:
    status_class: StatusClass
    code: Code
    elapsed_ms: int
    error_kind: ErrorKind | None = None
    server: str | None = None
    content_length: int | None = None

    @classmethod
    def from_response(
        cls,
        code: int,
        elapsed_ms: int,
        server: str | None = None,
        content_length: int | None = None,
    ) -> "RequestOutcome":
        return cls(
            status_class=classify_code(code),
            code=code,
            elapsed_ms=max(0, elapsed_ms),
            server=server,
            content_length=content_length,
        )

    @classmethod
    def from_failure(cls, kind: ErrorKind) -> "RequestOutcome":
        return cls(
            status_class=StatusClass.DOWN,
            code=ERROR,
            elapsed_ms=0,
            error_kind=kind,
        )

    @property
    def is_error(self) -> bool:
        return self.code == ERROR


@dataclass(frozen=True)
class LatencySummary:
    min: int
    avg: int
    max: int


@dataclass
class Statistics:
    total: int
    up: int
    down: int
    code_counts: dict[Code, int]
    latency: LatencySummary | None


# Display callback: (target, outcome, previous outcome or None)
OutcomeCallback = Callable[[Target, RequestOutcome, RequestOutcome | None], None]
