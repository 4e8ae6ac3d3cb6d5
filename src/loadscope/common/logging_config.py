"""
Colored logging configuration for the loadscope console.

Log records go to stderr so they never interleave with streamed test output
written to stdout.
"""

import logging
import os
import sys
from typing import Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    CYAN = '\033[36m'


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors log levels and transport logger names.

    Color scheme:
    - DEBUG: Cyan
    - INFO: Green
    - WARNING: Yellow
    - ERROR: Red
    - CRITICAL: Bold Red
    - Transport logs (names containing 'stream', 'httpx', 'httpcore'): Blue
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.CYAN,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    TRANSPORT_KEYWORDS = ['stream', 'httpx', 'httpcore']

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
        stream=None,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color(stream or sys.stderr)

    @staticmethod
    def _supports_color(stream) -> bool:
        """
        Check if the target stream supports color output.

        NO_COLOR disables colors, FORCE_COLOR enables them even when the
        stream is not a TTY.
        """
        if os.environ.get('NO_COLOR'):
            return False
        if os.environ.get('FORCE_COLOR'):
            return True
        if not hasattr(stream, 'isatty') or not stream.isatty():
            return False
        if sys.platform == 'win32':
            return bool(os.environ.get('ANSICON') or os.environ.get('WT_SESSION'))
        return True

    def _is_transport_log(self, record: logging.LogRecord) -> bool:
        logger_name = record.name.lower()
        return any(keyword in logger_name for keyword in self.TRANSPORT_KEYWORDS)

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        levelname_orig = record.levelname
        name_orig = record.name

        level_color = self.LEVEL_COLORS.get(record.levelno, '')
        record.levelname = f"{level_color}{record.levelname}{Colors.RESET}"

        if self._is_transport_log(record):
            record.name = f"{Colors.BLUE}{record.name}{Colors.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = levelname_orig
            record.name = name_orig


def setup_colored_logging(
    level: int = logging.WARNING,
    format_string: Optional[str] = None,
    date_format: Optional[str] = None,
    use_colors: bool = True,
) -> None:
    """
    Configure colored logging for the console.

    Should be called once, early, from the CLI entry point.

    Args:
        level: The logging level (default: WARNING)
        format_string: Custom format string (default: timestamp, name, level, message)
        date_format: Custom date format string
        use_colors: Whether to use colors (auto-detects TTY support)
    """
    if format_string is None:
        format_string = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    formatter = ColoredFormatter(
        fmt=format_string,
        datefmt=date_format,
        use_colors=use_colors,
        stream=sys.stderr,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # httpx logs every request at INFO; keep it out of the way unless debugging
    if level > logging.DEBUG:
        logging.getLogger('httpx').setLevel(logging.WARNING)
        logging.getLogger('httpcore').setLevel(logging.WARNING)
