"""Exception hierarchy for coffeemap."""

from typing import Optional


class CoffeemapError(Exception):
    """Base class for all coffeemap errors"""


class DialectSyntaxError(CoffeemapError):
    """The dialect compiler rejected the source text.

    This is the only compiler failure the compile ladder recovers from.
    Lines and columns are 0-based; ``last_column`` is inclusive.
    """

    def __init__(
        self,
        message: str,
        first_line: int,
        first_column: int,
        last_line: Optional[int] = None,
        last_column: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.first_line = first_line
        self.first_column = first_column
        self.last_line = last_line
        self.last_column = last_column if last_column is not None else first_column

    def __repr__(self):
        return (f"DialectSyntaxError({self.message!r}, "
                f"L{self.first_line}:{self.first_column})")


class FakeLineError(CoffeemapError):
    """A fake line compiled but its placeholder is missing from the output"""


class ConfigError(CoffeemapError):
    """Invalid settings"""
