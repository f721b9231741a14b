from http import HTTPStatus
from urllib.parse import urlparse

from rich.console import Console
from rich.text import Text

from .config import DisplayOptions
from .metrics import percentage
from .models import ERROR, Code, RequestOutcome, Statistics, StatusClass, Target

PREFIX = "hPING:"


def make_console(**kwargs) -> Console:
    """Console for status output: no markup, no auto-highlighting, no wrapping."""
    return Console(highlight=False, markup=False, emoji=False, soft_wrap=True, **kwargs)


def status_color(code: Code) -> str:
    if code == ERROR or code >= 500:
        return "red"
    if code >= 400:
        return "yellow"
    return "green"


def status_changed(previous: RequestOutcome | None, outcome: RequestOutcome) -> bool:
    return previous is None or previous.status_class is not outcome.status_class


def format_percentage(value: float) -> str:
    return f"{value:g}"


def status_info(code: int) -> str | None:
    try:
        return HTTPStatus(code).phrase.replace(" ", "_")
    except ValueError:
        return None


class _Line:
    """Space-joined rich Text builder that applies styles only when colors are on."""

    def __init__(self, use_colors: bool):
        self.use_colors = use_colors
        self.text = Text()

    def style(self, style: str | None) -> str:
        if not self.use_colors or not style:
            return ""
        return style

    def add(self, *parts: str | Text | tuple[str, str]) -> None:
        if self.text:
            self.text.append(" ")
        for part in parts:
            if isinstance(part, tuple):
                self.text.append(part[0], style=self.style(part[1]))
            else:
                self.text.append(part)

    def token(self, label: str, value: str, color: str | None = None, suffix: str = "") -> None:
        self.add(f"{label}=", (value, color), suffix)


def _render_url(url: str, color: str, outcome: RequestOutcome, use_colors: bool) -> Text:
    text = Text(url)
    if not use_colors:
        return text
    parsed = urlparse(url)
    highlight = f"bold {color}"
    if parsed.hostname:
        start = url.find(parsed.hostname)
        if start >= 0:
            text.stylize(highlight, start, start + len(parsed.hostname))
    if parsed.port:
        port = f":{parsed.port}"
        start = url.find(port)
        if start >= 0:
            text.stylize(highlight, start + 1, start + len(port))
    if parsed.path and parsed.path != "/" and not outcome.is_error:
        start = url.find(parsed.path, len(parsed.scheme) + 3)
        if start >= 0:
            text.stylize(color, start, start + len(parsed.path))
    return text


def render_outcome(
    target: Target,
    outcome: RequestOutcome,
    method: str,
    display: DisplayOptions,
    use_colors: bool = True,
) -> Text:
    """One status line, e.g. ``hPING: [UP] http://host (1.2.3.4) code=200 info=OK time=12ms``."""
    color = status_color(outcome.code)
    line = _Line(use_colors)
    line.add(PREFIX)

    if display.status:
        line.add((outcome.status_class.value, f"bold {color}"))
    if display.url:
        line.add(_render_url(target.url, color, outcome, use_colors))
    if display.ip and target.ip:
        line.add((f"({target.ip})", "bright_black"))
    if display.type:
        line.token("type", method.lower())

    if outcome.is_error:
        kind = outcome.error_kind
        if display.status_code and kind is not None:
            line.token("error", kind.identifier.lower(), "red")
        if display.status_info and kind is not None and kind.info:
            line.token("info", kind.info, "red")
        return line.text

    highlight = None if color == "green" else color
    if display.status_code:
        line.token("code", str(outcome.code), highlight)
    info = status_info(outcome.code)
    if display.status_info and info:
        line.token("info", info, highlight)
    if display.server and outcome.server:
        line.token("server", outcome.server)
    if display.content_length and outcome.content_length:
        line.token("content-length", str(outcome.content_length))
    if display.response_time:
        line.token("time", str(outcome.elapsed_ms), "underline", "ms")
    return line.text


def _code_sort_key(code: Code) -> tuple[int, int]:
    return (1, 0) if code == ERROR else (0, code)


def render_statistics(url: str, stats: Statistics, use_colors: bool = True) -> Text:
    """Exit summary for one target; an empty Text when nothing was recorded."""
    if not stats.total:
        return Text()

    def entry(label: str, value: int, color: str, bold: bool = False) -> Text | None:
        if value <= 0:
            return None
        style = f"bold {color}" if bold else color
        return Text(
            f"{label}={format_percentage(percentage(value, stats.total))}%",
            style=style if use_colors else "",
        )

    lines: list[Text] = [
        Text(""),
        Text(f"--- {url} hPING statistics [last {stats.total} requests] ---"),
    ]
    for summary in (
        entry(StatusClass.UP.name, stats.up, "green", bold=True),
        entry(StatusClass.DOWN.name, stats.down, "red", bold=True),
    ):
        if summary is not None:
            lines.append(summary)

    codes = [
        entry("errors" if code == ERROR else str(code), count, status_color(code))
        for code, count in sorted(stats.code_counts.items(), key=lambda item: _code_sort_key(item[0]))
    ]
    codes = [c for c in codes if c is not None]
    if codes:
        lines.append(Text(" ").join(codes))

    if stats.latency is not None:
        lat = stats.latency
        lines.append(Text(f"time(min={lat.min} avg={lat.avg} max={lat.max})ms"))
    return Text("\n").join(lines)
