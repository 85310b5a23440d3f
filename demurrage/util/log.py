import os
import sys

from demurrage.config import LOG_LEVEL


COLORS = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "reset": "\033[0m",
}

LEVELS = {
    "DEBUG": 10,
    "INFO": 20,
    "WARN": 30,
    "ERROR": 40,
}


def _threshold() -> int:
    """
    Minimum level that gets printed; LOG_LEVEL in the environment wins over config.
    """
    name = os.environ.get("LOG_LEVEL", LOG_LEVEL).upper()
    return LEVELS.get(name, LEVELS["INFO"])


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def colorize(message: str, color: str) -> str:
    if not _supports_color():
        return message
    code = COLORS.get(color, "")
    reset = COLORS["reset"] if code else ""
    return f"{code}{message}{reset}"


def log(message: str, color: str = "reset", level: str = "INFO"):
    if LEVELS[level] < _threshold():
        return
    print(colorize(message, color))


def log_info(message: str):
    log(message, "cyan", "INFO")


def log_success(message: str):
    log(message, "green", "INFO")


def log_warn(message: str):
    log(message, "yellow", "WARN")


def log_error(message: str):
    log(message, "red", "ERROR")


def log_debug(message: str):
    log(message, "magenta", "DEBUG")


def short(address: str) -> str:
    """
    Abbreviate an address for log lines.
    """
    if not address:
        return "<none>"
    return f"{address[:10]}..."
