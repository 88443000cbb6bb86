"""Terminal colors for pkgsys output.

Red marks errors, yellow warnings, green success and blue information.
"""

import os
import sys

_CODES = {
    'reset': '\033[0m',
    'bold': '\033[1m',
    'red': '\033[91m',
    'yellow': '\033[93m',
    'green': '\033[92m',
    'blue': '\033[94m',
}

_enabled = True


def init(nocolor: bool = False, stream=None):
    """Decide once whether output gets colored.

    Colors are off with --nocolor, with NO_COLOR set, or when the
    stream is not a terminal.
    """
    global _enabled
    stream = stream or sys.stdout
    _enabled = not (nocolor or os.environ.get('NO_COLOR') or not stream.isatty())


def enabled() -> bool:
    return _enabled


def _paint(text: str, code: str) -> str:
    if not _enabled:
        return text
    return f"{_CODES[code]}{text}{_CODES['reset']}"


def error(text: str) -> str:
    return _paint(text, 'red')


def warning(text: str) -> str:
    return _paint(text, 'yellow')


def success(text: str) -> str:
    return _paint(text, 'green')


def info(text: str) -> str:
    return _paint(text, 'blue')


def bold(text: str) -> str:
    return _paint(text, 'bold')
