"""
Console logging for the tutor middleware and its regression reports.

Each record is tagged with the icon of the component that emitted it
(memory checks, math checks, sessions, ...) and colored by level when
writing to a terminal. ReportLogger adds the banner and check-status
lines the regression CLI prints.
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, TextIO

QUIET_LOGGERS = ("asyncio", "httpx", "httpcore", "hpack", "postgrest")


class Colors:
    """ANSI escape codes used by the console output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[90m'

    CYAN = '\033[36m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    RED = '\033[31m'
    MAGENTA = '\033[35m'
    BLUE = '\033[94m'


LEVEL_STYLES = {
    logging.DEBUG: ('🔍', Colors.CYAN),
    logging.INFO: ('ℹ️', Colors.GREEN),
    logging.WARNING: ('⚠️', Colors.YELLOW),
    logging.ERROR: ('❌', Colors.RED),
    logging.CRITICAL: ('🚨', Colors.MAGENTA),
}

# Keyed by module name, i.e. the last segment of the logger name
COMPONENT_ICONS = {
    'session_context': '💾',
    'session_registry': '💾',
    'memory_claim_validator': '🧠',
    'math_engine': '🔢',
    'learning_style_detector': '🎨',
    'user_profile_store': '👤',
    'middleware': '🛡️',
    'regression': '🧪',
    'config': '🚩',
}

STATUS_COLORS = {
    'pass': Colors.GREEN,
    'fail': Colors.RED,
    'error': Colors.MAGENTA,
    'skipped': Colors.DIM,
}


def _paint(text: str, color: str, enabled: bool) -> str:
    return f"{color}{text}{Colors.RESET}" if enabled else text


class ComponentFormatter(logging.Formatter):
    """`[HH:MM:SS.mmm] <icon> LEVEL component | message`"""

    def __init__(self, use_colors: bool = True, stream: Optional[TextIO] = None):
        super().__init__()
        stream = stream or sys.stdout
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        component = record.name.rsplit('.', 1)[-1]
        level_icon, level_color = LEVEL_STYLES.get(record.levelno, ('•', Colors.RESET))
        icon = COMPONENT_ICONS.get(component, level_icon)
        clock = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        line = " ".join((
            _paint(f"[{clock}]", Colors.DIM, self.use_colors),
            icon,
            _paint(f"{record.levelname:8s}", level_color, self.use_colors),
            _paint(component, Colors.BOLD, self.use_colors),
            f"| {record.getMessage()}",
        ))
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ReportLogger:
    """
    Logger wrapper for command-line reports.

    Plain messages go through the wrapped logging.Logger; banners and
    check-status lines are written straight to the report stream so they
    show up even when logging is quieted.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None, stream: Optional[TextIO] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)
        self.stream = stream or sys.stdout

    @property
    def colored(self) -> bool:
        return hasattr(self.stream, "isatty") and self.stream.isatty()

    def _write(self, text: str = "") -> None:
        self.stream.write(f"{text}\n")

    def _data_lines(self, data: Dict[str, Any], depth: int = 1) -> Iterable[str]:
        pad = "  " * depth
        for key, value in data.items():
            label = _paint(str(key), Colors.YELLOW, self.colored)
            if isinstance(value, dict):
                yield f"{pad}{label}:"
                yield from self._data_lines(value, depth + 1)
            else:
                yield f"{pad}{label}: {value}"

    def section(self, title: str, data: Optional[Dict[str, Any]] = None, width: int = 80):
        """Banner with an upper-cased title, followed by nested key/value data."""
        rule = _paint("=" * width, Colors.BLUE, self.colored)
        self._write()
        self._write(rule)
        self._write(_paint(f"📋 {title.upper()}", Colors.BLUE, self.colored))
        for line in self._data_lines(data or {}):
            self._write(line)
        self._write(rule)

    def check(self, name: str, status: str, elapsed_ms: Optional[float] = None):
        """One validation outcome, e.g. `memory_check: fail (0.42 ms)`."""
        shown = _paint(status, STATUS_COLORS.get(status, Colors.RESET), self.colored)
        timing = f" ({elapsed_ms:.2f} ms)" if elapsed_ms is not None else ""
        self._write(f"  {name}: {shown}{timing}")

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(f"⚠️ {message}")

    def error(self, message: str, error: Optional[Exception] = None):
        if error is None:
            self.logger.error(f"❌ {message}")
        else:
            self.logger.error(f"❌ {message}: {type(error).__name__}: {error}", exc_info=error)

    def success(self, message: str):
        self.logger.info(f"✅ {message}")


def setup_logging(level: int = logging.INFO, use_colors: bool = True,
                  quiet: Iterable[str] = QUIET_LOGGERS) -> logging.Logger:
    """Route the root logger to a single colored stdout handler."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ComponentFormatter(use_colors=use_colors, stream=sys.stdout))
    root.addHandler(handler)
    root.setLevel(level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str, stream: Optional[TextIO] = None) -> ReportLogger:
    return ReportLogger(name, logging.getLogger(name), stream=stream)
