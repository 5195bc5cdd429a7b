from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO


RESET = "\033[0m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
GREY = "\033[90m"

_LEVEL_COLORS = {
    logging.DEBUG: GREY,
    logging.INFO: BLUE,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED,
}


def _supports_color(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, color: str, *, enabled: bool = True) -> str:
    if not enabled:
        return text
    return f"{color}{text}{RESET}"


class ColorFormatter(logging.Formatter):
    """Formatter that wraps each record in an ANSI color picked by level."""

    def __init__(self, fmt: str, *, use_color: bool = True) -> None:
        super().__init__(fmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if not self._use_color or color is None:
            return line
        return colorize(line, color)


def configure_logging(*, verbose: bool = False, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stderr
    handler = logging.StreamHandler(out)
    handler.setFormatter(
        ColorFormatter("%(levelname)-7s %(name)s: %(message)s", use_color=_supports_color(out))
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def format_failure(step: str, message: str, body: Optional[str] = None, *, color: bool = True) -> str:
    """
    Render a fatal diagnostic naming the failed step.

    The raw response body is appended verbatim when available so operators can
    see exactly what the agent or ledger returned.
    """
    lines = [colorize(f"Provisioning failed at step '{step}': {message}", RED, enabled=color)]
    if body:
        lines.append(colorize("Response body:", YELLOW, enabled=color))
        lines.append(body)
    return "\n".join(lines)


def print_failure(step: str, message: str, body: Optional[str] = None, *, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stderr
    print(format_failure(step, message, body, color=_supports_color(out)), file=out)


def print_success(message: str, *, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stdout
    print(colorize(message, GREEN, enabled=_supports_color(out)), file=out)


__all__ = [
    "ColorFormatter",
    "colorize",
    "configure_logging",
    "format_failure",
    "print_failure",
    "print_success",
]
