"""
Color utilities for terminal output outside the viewer.
"""


class Colors:
    """ANSI color codes for CLI messages."""

    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[0;33m'
    BLUE = '\033[0;34m'
    CYAN = '\033[0;36m'
    BOLD_RED = '\033[1;31m'

    RESET = '\033[0m'

    # Same palette as the viewer, indexed by LogLevel value
    LEVELS = (BLUE, CYAN, GREEN, YELLOW, BOLD_RED)

    @staticmethod
    def colorize(text: str, color: str) -> str:
        """Apply color to text."""
        return f"{color}{text}{Colors.RESET}"

    @staticmethod
    def error(text: str) -> str:
        return Colors.colorize(text, Colors.RED)

    @staticmethod
    def warning(text: str) -> str:
        return Colors.colorize(text, Colors.YELLOW)

    @staticmethod
    def info(text: str) -> str:
        return Colors.colorize(text, Colors.BLUE)

    @staticmethod
    def level(text: str, level: int) -> str:
        """Color text the way the viewer colors records of the given level."""
        return Colors.colorize(text, Colors.LEVELS[int(level)])
