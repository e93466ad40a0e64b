"""Common terminal helpers shared by the API launcher and the CLI client."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colorize(text: str, color: AnsiColors) -> str:
    """Wrap *text* in the escape code of *color* and a reset."""
    return f"{color.value}{text}\033[0m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(colorize(text, color), *args, **kwargs)


def sentiment_color(sentiment: str | None) -> AnsiColors:
    """Color used to render a journal sentiment."""
    return {
        "bullish": AnsiColors.GREEN,
        "bearish": AnsiColors.RED,
        "mixed": AnsiColors.YELLOW,
    }.get((sentiment or "").lower(), AnsiColors.GREY)
