import logging
import sys

from colorama import Fore, Style

LOG_COLORS = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
}

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ColorFormatter(logging.Formatter):
    def __init__(self, tag: str = "UNVEIL") -> None:
        super().__init__("%(message)s")
        self.tag = tag

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelno, Fore.GREEN)
        message = super().format(record)
        return f"[{color}{self.tag}{Style.RESET_ALL}] - {color}{message}{Style.RESET_ALL}"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"unveil.{name}")


def configure_logging(level: str = "info") -> None:
    root = logging.getLogger("unveil")
    root.setLevel(LEVELS.get(level, logging.INFO))
    for handler in root.handlers:
        if isinstance(handler.formatter, ColorFormatter):
            handler.setStream(sys.stderr)
            return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColorFormatter())
    root.addHandler(handler)
