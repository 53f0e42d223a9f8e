"""
Position and range translation between source and generated text.

The source map is the primary signal. Where it is ambiguous (several
generated positions for one source position) a prioritized list of
narrowing heuristics picks one; where it is silent (comments, the fake
line, trimmed lines) line-content equivalence and fixed offsets fill in.

All functions are pure and return None when a position cannot be mapped.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from lsprotocol.types import Position, Range

from .pseudo import DECLARATION_PREFIX, receiver_expansion_before
from .result import ColumnMapping, FakeLineMechanism, SourceMap, TranspilationResult
from .text import SourceText, Word, is_identifier_char, position_by_line_content, word_around


logger = logging.getLogger(__name__)

MEMBER_ACCESS = '.'
_INLINE_BLOCK_COMMENT = re.compile(r'^(.*)(^|[^\n#])###*(.+)([^\n#])###(.*)')


def _before(a: Position, b: Position) -> bool:
    return (a.line, a.character) < (b.line, b.character)


# =============================================================================
# Generated -> source
# =============================================================================


def _closest_before(columns: Sequence[ColumnMapping], column: int) -> Optional[ColumnMapping]:
    before = [m for m in columns if m.output_column <= column]
    return max(before, key=lambda m: m.output_column) if before else None


def output_to_source_position(
    result: TranspilationResult,
    position: Position,
    source: SourceText
) -> Optional[Position]:
    """Map a position in generated text back to the source.

    Tries the exact column, then the closest column before, then any
    mapping on the line. Block comment lines have no usable mappings and
    are matched by line content instead. Failing all that, the next
    generated line with a mapping decides.
    """
    if not result.has_source_map:
        return None
    source_map = result.source_map
    js_line = SourceText(result.js).line_at(position.line)

    mapped = None
    line_map = source_map.line(position.line)
    if line_map is not None and not js_line.strip().startswith('/*'):
        mapped = (line_map.at(position.character)
                  or _closest_before(line_map.columns, position.character)
                  or line_map.first())
    if mapped is None:
        # e.g. a single line of a block comment
        by_content = position_by_line_content(position, js_line, source.text)
        if by_content is not None:
            return by_content
        for line_no in range(position.line + 1, len(source_map)):
            mapped = source_map.lines[line_no].first()
            if mapped is not None:
                break
    if mapped is None:
        return None
    return Position(line=mapped.source_line, character=mapped.source_column)


def output_to_source_range(
    result: TranspilationResult,
    range_: Range,
    source: SourceText
) -> Optional[Range]:
    start = output_to_source_position(result, range_.start, source)
    end = output_to_source_position(result, range_.end, source)
    if start is None or end is None:
        return None
    return Range(start=start, end=end)


# =============================================================================
# Source -> generated
# =============================================================================


@dataclass(frozen=True)
class Cursor:
    """What is known about a source position"""
    position: Position
    offset: int
    line: str
    char: Optional[str]         # None past the end of the line
    word: Word
    word_column: int            # column of the first character of `word`
    at_end_of_word: bool

    @classmethod
    def at(cls, source: SourceText, position: Position) -> 'Cursor':
        offset = source.offset_at(position)
        line = source.line_at(position.line)
        char = line[position.character] if 0 <= position.character < len(line) else None
        word = word_around(source.text, offset)
        return cls(
            position=position,
            offset=offset,
            line=line,
            char=char,
            word=word,
            word_column=source.position_at(word.offset).character,
            at_end_of_word=bool(word.word) and word.offset == offset - len(word.word),
        )

    def previous_non_space(self) -> Optional[int]:
        """Column of the closest non-space character left of the cursor"""
        i = min(self.position.character, len(self.line)) - 1
        while i >= 0 and self.line[i] == ' ':
            i -= 1
        return i if i >= 0 else None


@dataclass(frozen=True)
class Target:
    """A generated position a source position may map to"""
    line: int
    column: int


class GeneratedText:
    """Generated text with lookups by target"""

    def __init__(self, js: str):
        self.text = SourceText(js)

    def offset(self, target: Target) -> int:
        return self.text.offset_at(Position(line=target.line, character=target.column))

    def char_at(self, target: Target) -> Optional[str]:
        return self.text.char_at(self.offset(target))

    def word_at(self, target: Target) -> Word:
        return word_around(self.text.text, self.offset(target))

    def line_at(self, line: int) -> str:
        return self.text.line_at(line)


def fitting_mappings(
    source_map: SourceMap,
    cursor: Cursor,
    generated: GeneratedText
) -> List[ColumnMapping]:
    """Mappings of the cursor's source line that fit its column best"""
    character = cursor.position.character
    by_line = source_map.for_source_line(cursor.position.line)
    if not by_line:
        return []

    exact = [m for m in by_line if m.source_column == character]
    if exact:
        return exact
    if cursor.at_end_of_word:
        same_word = [m for m in by_line if m.source_column == cursor.word_column
                     and generated.word_at(Target(m.output_line, m.output_column)).word == cursor.word.word]
        if same_word:
            return same_word
    if cursor.char == MEMBER_ACCESS:
        # the operator's mapping is often attributed to the following token
        following = [m for m in by_line if m.source_column == character + 1]
        if following:
            return following
    if cursor.char is None:
        # the line was longer at compile time
        cut_off = [m for m in by_line if m.source_column > character]
        if cut_off:
            return cut_off
    previous = cursor.previous_non_space()
    if previous is not None and cursor.line[previous] == '{':
        # `{|}` is often mapped at the brace only
        at_brace = [m for m in by_line if m.source_column == previous]
        if at_brace:
            return at_brace
    before = [m.source_column for m in by_line if m.source_column <= character]
    if before:
        closest = max(before)
        return [m for m in by_line if m.source_column == closest]
    return by_line


# Narrowing heuristics, applied in order. Each takes the remaining targets
# and returns a subset (possibly with adjusted columns); an empty result
# means the heuristic does not apply and the targets stay as they were.
Narrower = Callable[[List[Target], Cursor, GeneratedText], List[Target]]


def by_word(targets: List[Target], cursor: Cursor, generated: GeneratedText) -> List[Target]:
    """Targets whose generated word equals the word at the cursor"""
    word = cursor.word.word
    if not word:
        return []
    matched = []
    for target in targets:
        offset = generated.offset(target)
        found = word_around(generated.text.text, offset)
        if found.word != word:
            target = Target(target.line, target.column + 1)
            offset += 1
            found = word_around(generated.text.text, offset)
            if found.word != word:
                continue
        if cursor.at_end_of_word and found.offset == offset:
            target = Target(target.line, target.column + len(word))
        matched.append(target)
    return matched


def by_line_containing_word(targets: List[Target], cursor: Cursor, generated: GeneratedText) -> List[Target]:
    word = cursor.word.word
    if not word:
        return []
    return [t for t in targets if word in generated.line_at(t.line)]


def by_same_char(targets: List[Target], cursor: Cursor, generated: GeneratedText) -> List[Target]:
    if cursor.char is None:
        return []
    return [t for t in targets if generated.char_at(t) == cursor.char]


def by_identifier_char(targets: List[Target], cursor: Cursor, generated: GeneratedText) -> List[Target]:
    if not is_identifier_char(cursor.char):
        return []
    return [t for t in targets if is_identifier_char(generated.char_at(t))]


NARROWERS = (by_word, by_line_containing_word, by_same_char, by_identifier_char)


def bottom_right(targets: Sequence[Target]) -> Target:
    """Later generated code for the same token is usually the more specific one"""
    return max(targets, key=lambda t: (t.line, t.column))


def choose_target(
    mappings: Sequence[ColumnMapping],
    cursor: Cursor,
    generated: GeneratedText,
    narrowers: Sequence[Narrower] = NARROWERS
) -> Optional[Target]:
    targets = [Target(m.output_line, m.output_column) for m in mappings]
    if not targets:
        return None
    for narrow in narrowers:
        narrowed = narrow(targets, cursor, generated)
        if narrowed:
            targets = narrowed
    return bottom_right(targets)


def _inline_comment_position(cursor: Cursor, generated: GeneratedText) -> Optional[Position]:
    """Map a position inside a one-line `###* ... ###` comment by its content"""
    match = _INLINE_BLOCK_COMMENT.match(cursor.line)
    if not match:
        return None
    content = match.group(3) + match.group(4)
    starts_at = len(match.group(1)) + len(match.group(2)) + 4
    character = cursor.position.character
    if not starts_at <= character <= starts_at + len(content):
        return None
    for line_no, js_line in enumerate(generated.text.lines()):
        if content in js_line:
            column = character - cursor.line.index(content) + js_line.index(content)
            return Position(line=line_no, character=column)
    return None


def source_to_output_position(
    result: TranspilationResult,
    position: Position,
    source: SourceText
) -> Optional[Position]:
    """Map a source position to where it ended up in the generated text.

    Collects the mappings of the source line that fit the column best,
    then narrows them down by word, by line content, by character and
    finally takes the bottom-right one. On a substituted fake line the
    mapping only tells the line; the column is the source column, shifted
    by the expansions of the pseudo-compiled line.
    """
    if not result.has_source_map:
        return None
    generated = GeneratedText(result.js)
    cursor = Cursor.at(source, position)

    in_comment = _inline_comment_position(cursor, generated)
    if in_comment is not None:
        logger.debug(f"mapped source => output as inline comment: "
                     f"{position.line}:{position.character} => {in_comment.line}:{in_comment.character}")
        return in_comment

    target = choose_target(fitting_mappings(result.source_map, cursor, generated), cursor, generated)
    if target is None:
        mapped = position_by_line_content(position, cursor.line, result.js)
    else:
        column = target.column
        if (position.line == result.fake_line
                and result.fake_line_mechanism is FakeLineMechanism.SOURCE_IN_OUTPUT):
            column = position.character
            if generated.line_at(target.line).startswith(DECLARATION_PREFIX):
                column += len(DECLARATION_PREFIX)
            column += receiver_expansion_before(cursor.line, position.character)
        mapped = Position(line=target.line, character=column)

    if mapped is None:
        logger.debug(f"could not map source => output: {position.line}:{position.character}")
    else:
        logger.debug(f"mapped source => output: "
                     f"{position.line}:{position.character} => {mapped.line}:{mapped.character}")
    return mapped


def source_to_output_range(
    result: TranspilationResult,
    range_: Range,
    source: SourceText
) -> Optional[Range]:
    """Map a source range; an inverted result counts as unavailable"""
    start = source_to_output_position(result, range_.start, source)
    end = source_to_output_position(result, range_.end, source)
    if start is None or end is None or _before(end, start):
        return None
    return Range(start=start, end=end)
