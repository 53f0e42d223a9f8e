"""
Text helpers shared by all pipeline stages.

``SourceText`` is the document source: an immutable text buffer with
line/offset conversion. Positions are ``lsprotocol`` positions and count
characters of the Python string.
"""

import re
from typing import List, NamedTuple, Optional

from lsprotocol.types import Position


IDENTIFIER_CHAR = re.compile(r'[a-zA-Z0-9_$]')

# Leading `#` becomes `//`, but can also stay `#` or become a leading `*`
# inside block comments.
_COMMENT_PREFIX = re.compile(r'^\s*(//|/\*|\*|#+)?')
_COMMENT_SUFFIX = re.compile(r'(###|\*/)$')


class Word(NamedTuple):
    """An identifier found around an offset"""
    word: str
    offset: int     # offset of the first character of the word


def is_identifier_char(char: Optional[str]) -> bool:
    return bool(char) and IDENTIFIER_CHAR.match(char) is not None


def word_around(text: str, offset: int) -> Word:
    """Find the identifier touching ``offset``.

    Scans left while the previous character is an identifier character,
    then collects identifier characters to the right. An offset directly
    behind a word therefore yields that word.
    """
    start = offset
    while start > 0 and is_identifier_char(text[start - 1]):
        start -= 1
    end = start
    while end < len(text) and is_identifier_char(text[end]):
        end += 1
    return Word(text[start:end], start)


class SourceText:
    """A text buffer with 0-based line/character addressing"""

    def __init__(self, text: str, uri: str = ''):
        self.text = text
        self.uri = uri
        self._line_offsets = [0]
        for match in re.finditer('\n', text):
            self._line_offsets.append(match.end())

    @property
    def line_count(self) -> int:
        return len(self._line_offsets)

    def offset_at(self, position: Position) -> int:
        """Convert a position to an offset, clamping to the line's end"""
        if position.line >= self.line_count:
            return len(self.text)
        if position.line < 0:
            return 0
        line_start = self._line_offsets[position.line]
        line_end = self._line_end(position.line)
        return max(min(line_start + position.character, line_end), line_start)

    def offset_at_line(self, line: int) -> int:
        """Offset of the first character of ``line``"""
        return self.offset_at(Position(line=line, character=0))

    def position_at(self, offset: int) -> Position:
        offset = max(min(offset, len(self.text)), 0)
        low, high = 0, self.line_count
        while low < high:
            mid = (low + high) // 2
            if self._line_offsets[mid] > offset:
                high = mid
            else:
                low = mid + 1
        line = low - 1
        return Position(line=line, character=offset - self._line_offsets[line])

    def line_at(self, line: int) -> str:
        """Text of a line without its line break ('' when out of range)"""
        if line < 0 or line >= self.line_count:
            return ''
        return self.text[self._line_offsets[line]:self._line_end(line)]

    def lines(self) -> List[str]:
        return self.text.split('\n')

    def char_at(self, offset: int) -> Optional[str]:
        if 0 <= offset < len(self.text):
            return self.text[offset]
        return None

    def _line_end(self, line: int) -> int:
        if line + 1 < self.line_count:
            end = self._line_offsets[line + 1] - 1
            if end > self._line_offsets[line] and self.text[end - 1] == '\r':
                end -= 1
            return end
        return len(self.text)

    def __repr__(self):
        return f"SourceText({self.uri or '<anonymous>'}, {self.line_count} lines)"


def strip_comment_markers(line: str) -> str:
    """Reduce a line to its content without indentation or comment markers"""
    stripped = _COMMENT_PREFIX.sub('', line, count=1).strip()
    return _COMMENT_SUFFIX.sub('', stripped).rstrip()


def position_by_line_content(position: Position, line: str, in_text: str) -> Optional[Position]:
    """Find a line of ``in_text`` with the same content as ``line``.

    This is guesswork and only used where no source map exists, e.g. lines
    of a block comment which the compiler copies over without mappings.
    The column keeps its distance to the start of the shared content.

    Returns:
        Position in ``in_text``, or None if no line matches
    """
    stripped = strip_comment_markers(line)
    if not stripped:
        return None
    in_lines = in_text.split('\n')
    for i, in_line in enumerate(in_lines):
        if strip_comment_markers(in_line) == stripped:
            character = position.character - line.index(stripped) + in_line.index(stripped)
            return Position(line=i, character=max(character, 0))
    return None
