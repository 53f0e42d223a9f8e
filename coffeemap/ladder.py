"""
The compile ladder: compile, and if that fails, substitute the erroring
line with ever more invasive placeholders until the text compiles.

Language services can answer completion requests on half-baked code, the
dialect compiler cannot. So the erroring line is temporarily replaced with
a placeholder (same length, so no other line moves), the placeholder is
located in the compiled output, and the original line is put back there.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from .compiler import CompileOutcome, CompileSuccess, DialectCompiler, try_compile
from .errors import FakeLineError
from .pseudo import pseudo_compile
from .result import ColumnMapping, FakeLineMechanism, SourceMap, TranspilationResult
from .sentinels import PLACEHOLDER
from .text import SourceText


logger = logging.getLogger(__name__)

# `.;` is what preprocessing makes of a trailing dot
MEMBER_ACCESS_SUFFIXES = ('.;', '[')
OPTIONAL_PREFIX = '?'
# object key definitions, but not e.g. `b=[{a:1}].`
OBJECT_KEY_LINE = re.compile(r'^\s*[a-zA-Z0-9_$[\]]+\s*:')
_LEADING_WHITESPACE = re.compile(r'^\s+')


@dataclass(frozen=True)
class ErrorLine:
    """The source line a syntax error was reported on"""
    line_no: int
    offset: int     # offset of the first character of the line
    end: int        # offset of the line break, or the text length
    text: str
    indentation: str

    @classmethod
    def locate(cls, source: SourceText, line_no: int) -> 'ErrorLine':
        line_no = max(min(line_no, source.line_count - 1), 0)
        text = source.line_at(line_no)
        offset = source.offset_at_line(line_no)
        match = _LEADING_WHITESPACE.match(text)
        return cls(line_no, offset, offset + len(text), text, match.group(0) if match else '')

    def substitute(self, source: str, content: str) -> str:
        """Replace this line in ``source`` by ``content``, padded to the same length"""
        padding = ' ' * max(0, len(self.text) - len(self.indentation) - len(content))
        return ''.join([
            source[:self.offset],
            self.indentation,
            content,
            padding,
            source[self.end:],
        ])


@dataclass(frozen=True)
class Candidate:
    """Replacement content for the erroring line"""
    content: str
    mechanism: FakeLineMechanism
    # what was cut off the line, MODIFIED_SOURCE only
    removed_suffix: str = ''


def candidates(error_line: ErrorLine) -> List[Candidate]:
    """Fake-line contents to try, most specific first.

    A trailing dot or bracket is the most common cause of a failing line,
    so first try the line without it. Anything more complicated can only be
    guessed. Object-shaped lines try the key form before the bare
    placeholder, which sometimes compiles to the wrong output there.
    """
    result = []
    text = error_line.text
    for suffix in MEMBER_ACCESS_SUFFIXES:
        if text.endswith(suffix):
            if text.endswith(OPTIONAL_PREFIX + suffix):
                suffix = OPTIONAL_PREFIX + suffix
            # keep the placeholder to find the line in the output
            content = (text[:len(text) - len(suffix)] + '.' + PLACEHOLDER.marker).strip()
            result.append(Candidate(content, FakeLineMechanism.MODIFIED_SOURCE, suffix))
            break
    key_value = Candidate(f"{PLACEHOLDER.marker}:{PLACEHOLDER.marker}",
                          FakeLineMechanism.SOURCE_IN_OUTPUT)
    in_object = OBJECT_KEY_LINE.match(text) is not None
    if in_object:
        result.append(key_value)
    result.append(Candidate(PLACEHOLDER.marker, FakeLineMechanism.SOURCE_IN_OUTPUT))
    # for lines followed by a deeper indented block
    result.append(Candidate(f"if {PLACEHOLDER.marker}", FakeLineMechanism.SOURCE_IN_OUTPUT))
    if not in_object:
        result.append(key_value)
    return result


def first_success(
    candidates: Iterable[Candidate],
    attempt: Callable[[Candidate], CompileOutcome]
) -> Optional[Tuple[Candidate, CompileSuccess]]:
    """Try candidates in order and stop at the first one that compiles"""
    for candidate in candidates:
        outcome = attempt(candidate)
        if isinstance(outcome, CompileSuccess):
            return candidate, outcome
    return None


def collapse_fake_line_mappings(source_map: SourceMap, source_line: int, output_line: int) -> SourceMap:
    """Reduce the mappings of the substituted source line to one.

    Their columns refer to the placeholder and mean nothing once the line is
    put back; only the line relation is kept, at the start of both lines.
    """
    mappings = [m for m in source_map if m.source_line != source_line]
    mappings.append(ColumnMapping(source_line, 0, output_line, 0))
    return SourceMap.from_mappings(mappings)


def join_previous_statement(js_lines: List[str], line_no: int) -> None:
    """Drop the terminator of the statement above the fake line.

    Needed when the fake line continues the previous line, e.g. via dot:
    `[]\\n.|` compiles to `[];\\n\\nᛝ;`, and the first `;` breaks completion.
    """
    i = line_no - 1
    while i >= 0 and not js_lines[i].strip():
        i -= 1
    if i >= 0 and js_lines[i].endswith(';'):
        js_lines[i] = js_lines[i][:-1] + ' '


def _reconstruct(
    outcome: CompileSuccess,
    candidate: Candidate,
    error_line: ErrorLine,
    diagnostics,
    uri: str
) -> TranspilationResult:
    js_lines = outcome.js.split('\n')
    # the source map would work too but is less reliable than the chance
    # of the user typing the placeholder themselves
    output_line = next((i for i, line in enumerate(js_lines) if PLACEHOLDER.marker in line), None)
    if output_line is None:
        raise FakeLineError(f"could not find fake line placeholder in output {uri}")

    source_map = outcome.source_map
    if candidate.mechanism is FakeLineMechanism.SOURCE_IN_OUTPUT:
        js_lines[output_line] = pseudo_compile(error_line.text)
        source_map = collapse_fake_line_mappings(source_map, error_line.line_no, output_line)
    else:
        line = js_lines[output_line]
        marker = '.' + PLACEHOLDER.marker
        index = line.find(marker)
        if index < 0:
            raise FakeLineError(f"fake line placeholder lost its member access {uri}")
        after = line[index + len(marker):]
        # more than `;` happens when the fake line got merged with the next one
        tail = after if after != ';' else ''
        js_lines[output_line] = line[:index] + candidate.removed_suffix.replace(';', '') + tail

    join_previous_statement(js_lines, output_line)
    return TranspilationResult(
        js='\n'.join(js_lines),
        source_map=source_map,
        diagnostics=diagnostics,
        fake_line=error_line.line_no,
        fake_line_mechanism=candidate.mechanism,
    )


def compile_ladder(text: str, compiler: DialectCompiler, uri: str = '') -> TranspilationResult:
    """Compile ``text``, falling back to fake lines if it does not compile.

    Returns:
        A result with js and source map, and if a fake line was needed, the
        diagnostics of the first attempt and the fake line. If nothing
        compiled, only the diagnostics.
    """
    first = try_compile(compiler, text)
    if isinstance(first, CompileSuccess):
        logger.debug(f"successful simple compilation {uri}")
        return TranspilationResult(js=first.js, source_map=first.source_map)

    error_line = ErrorLine.locate(SourceText(text, uri), first.error_line)
    logger.debug(f"compilation failed at line {error_line.line_no}, trying fake lines {uri}")

    def attempt(candidate: Candidate) -> CompileOutcome:
        return try_compile(compiler, error_line.substitute(text, candidate.content))

    found = first_success(candidates(error_line), attempt)
    if found is None:
        logger.debug(f"no fake line compiled {uri}")
        return TranspilationResult(diagnostics=first.diagnostics)
    candidate, outcome = found
    logger.debug(f"successful compilation with fake content '{candidate.content}' {uri}")
    return _reconstruct(outcome, candidate, error_line, first.diagnostics, uri)
