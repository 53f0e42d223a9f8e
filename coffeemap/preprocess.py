"""
Source rewrites that make unfinished source parseable.

The rewritten text must stay valid and parsable wherever the original was,
and should not shift characters around much since the compiler's source
map refers to the rewritten text. The two rewrites that do change the line
structure record what they did so that later stages can undo it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Tuple

from .sentinels import EMPTY_LINE, NEW_PROPERTY, RECEIVER


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessResult:
    text: str
    # line numbers (in `text`) of inserted single-line comments, ascending
    inserted_lines: Tuple[int, ...] = ()
    # line numbers (in `text`) of empty lines replaced by the empty-line sentinel
    object_tweak_lines: Tuple[int, ...] = ()


@dataclass(frozen=True)
class Rewrite:
    """A named regex rewrite, logged each time it fires"""
    name: str
    pattern: re.Pattern
    replace: Callable[[re.Match], str]

    def apply(self, text: str, uri: str = '') -> str:
        def _replace(match: re.Match) -> str:
            logger.debug(f"{self.name} {uri}")
            return self.replace(match)
        return self.pattern.sub(_replace, text)


REWRITES = (
    # `@|`: a lone receiver keyword does not compile. The marker evaluates to
    # the same object once postprocessed.
    Rewrite(
        'transform lone @ to receiver sentinel',
        re.compile(r'^([^#\r\n]*(?:[^a-zA-Z_$\r\n]|^))@(\s|$)', re.M),
        lambda m: f"{m.group(1)}{RECEIVER.marker}{m.group(2)}",
    ),
    # `a.|` -> `a.;`. Prevents `a.|\nb` from compiling as `a.b` and makes
    # `a.|\n# comment` fail on the right line.
    Rewrite(
        'terminate dangling dot',
        re.compile(r'^[^#\r\n]*(?:^|[^.])\.(?=\r?$)', re.M),
        lambda m: m.group(0) + ';',
    ),
    # `a: b\nc` -> `a: b\nc:c`. The bare identifier below a key is invalid and
    # would be reported one line too early; as a key the error is in place.
    Rewrite(
        'complete bare identifier below object key',
        re.compile(
            r'^([ \t]*)[a-zA-Z0-9_$]+[ \t]*:[ \t]*[^\r\n]+\r?\n'
            r'\1(?!(?:return|break|continue|debugger)\r?$)([a-zA-Z0-9_$]+)(?=\r?$)',
            re.M),
        lambda m: f"{m.group(0)}:{m.group(2)}",
    ),
    # `a |` -> `a ↯:↯`, room for a new inline object key or argument
    Rewrite(
        'mark trailing space',
        re.compile(r'^[^#\r\n]*[^ #\r\n] (?=\r?$)', re.M),
        lambda m: m.group(0) + NEW_PROPERTY.marker + ':' + NEW_PROPERTY.marker,
    ),
    # `{a, }` -> `{a,↯}`, same length
    Rewrite(
        'mark trailing comma before closing brace',
        re.compile(r', (\s*)\}'),
        lambda m: f",{NEW_PROPERTY.marker}{m.group(1)}}}",
    ),
)

AGGRESSIVE_REWRITES = (
    # `abc "|` -> `abc ""`
    Rewrite(
        'close open string',
        re.compile(r'^[^"\'\r\n]*(["\'])[^"\'\r\n]*(?=\r?$)', re.M),
        lambda m: m.group(0) + m.group(1),
    ),
    # `abc(|` -> `abc()`
    Rewrite(
        'close open call paren',
        re.compile(r'([a-zA-Z_$0-9])\(([^)\r\n]*)(?=\r?$)', re.M),
        lambda m: f"{m.group(1)}({m.group(2)})",
    ),
    # unclosed braces have little value in coffee
    Rewrite(
        'remove trailing brace',
        re.compile(r'[\t ]*[{}](?=\r?$)', re.M),
        lambda m: '',
    ),
    Rewrite(
        'remove leading spread',
        re.compile(r'\.\.\.([a-zA-Z_$])'),
        lambda m: f"_: {m.group(1)}",
    ),
    Rewrite(
        'remove trailing spread',
        re.compile(r'([a-zA-Z_$])\.\.\.'),
        lambda m: f"{m.group(1)}: _",
    ),
)

BLOCK_COMMENT_START = re.compile(r'\s*###(?:[^#]|$)')
BLANK_LINE = re.compile(r'[ \t]*\r?$')
INDENTED_EMPTY_LINE = re.compile(r'[ \t]+\r?$')


def _indentation(line: str) -> int:
    return len(line) - len(line.lstrip(' \t'))


def insert_block_comment_lines(lines: List[str], uri: str = '') -> List[int]:
    """Put a `#` line above each line starting a block comment.

    The compiler then places the block comment directly above its following
    statement. Modifies ``lines`` in place.

    Returns:
        Indices of the inserted lines in the modified list, ascending
    """
    starts = [i for i, line in enumerate(lines) if BLOCK_COMMENT_START.match(line)]
    # after inserting at starts[0], starts[1] moved down by one, and so on
    inserted = [line_i + i for i, line_i in enumerate(starts)]
    for line_i in inserted:
        logger.debug(f"prefix ### with single # line {uri}")
        lines.insert(line_i, '#')
    return inserted


def tweak_empty_lines(lines: List[str], uri: str = '') -> List[int]:
    """Replace indented empty lines with the empty-line sentinel.

    The compiler drops empty lines, so they could not be mapped and offer no
    completion inside objects. A line is left alone when the next line with
    text is indented deeper, since the sentinel would then open a block.
    Modifies ``lines`` in place.

    Returns:
        Indices of the replaced lines
    """
    tweaked = []
    for line_i, line in enumerate(lines):
        if not INDENTED_EMPTY_LINE.match(line):
            continue
        i = line_i + 1
        while i < len(lines) and BLANK_LINE.match(lines[i]):
            i += 1
        indentation = line.rstrip('\r')
        if i < len(lines) and _indentation(lines[i]) > len(indentation):
            continue
        logger.debug(f"replace indented empty line with {EMPTY_LINE.marker} {uri}")
        # keeps a CRLF line break intact
        lines[line_i] = indentation + EMPTY_LINE.marker + line[len(indentation):]
        tweaked.append(line_i)
    return tweaked


def preprocess(text: str, uri: str = '') -> PreprocessResult:
    """Rewrite source text so the dialect compiler accepts more unfinished code"""
    for rewrite in REWRITES:
        text = rewrite.apply(text, uri)
    lines = text.split('\n')
    # must come first: the tweak lines are recorded in post-insertion numbering
    inserted = insert_block_comment_lines(lines, uri)
    tweaked = tweak_empty_lines(lines, uri)
    return PreprocessResult('\n'.join(lines), tuple(inserted), tuple(tweaked))


def preprocess_aggressive(text: str, uri: str = '') -> str:
    """Further rewrites that *can break* valid source.

    Only used when compilation failed anyway. Keeps the line count.
    """
    for rewrite in AGGRESSIVE_REWRITES:
        text = rewrite.apply(text, uri)
    return text
