"""
Rewrites of the generated text after compilation, with matching edits of
the source map.

Removes what preprocessing left behind, takes back the line shifts of
inserted lines, and moves hoisted declarations down to the first
assignment of each variable.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from lsprotocol.types import Diagnostic, Position, Range

from .compiler import copy_diagnostic
from .result import ColumnMapping, SourceMap, TranspilationResult
from .sentinels import EMPTY_LINE, NEW_PROPERTY, RECEIVER, Stage, violations


logger = logging.getLogger(__name__)

NARROW_KEYWORD = 'let '
DECLARATION_LINE = re.compile(r'^(\s*)var ([^\n=]+);$')
METHOD_FUNCTION = re.compile(r'([a-zA-Z0-9_$]+): (async )?function(\*?)\(')


def prefer_method_shorthand(js: str) -> str:
    """`a: function(` -> `a          (`, padded to the same length"""
    return METHOD_FUNCTION.sub(
        lambda m: f"{m.group(2) or ''}{m.group(3)}{m.group(1)}          (", js)


def shift_source_line(line: int, inserted_lines: Sequence[int]) -> int:
    """Undo the shift caused by lines inserted at or before ``line``"""
    return line - bisect_right(inserted_lines, line)


def shift_diagnostic(diagnostic: Diagnostic, inserted_lines: Sequence[int]) -> Diagnostic:
    """Move a diagnostic of the preprocessed text to source lines"""
    if not inserted_lines:
        return diagnostic
    start, end = diagnostic.range.start, diagnostic.range.end
    return copy_diagnostic(diagnostic, range_=Range(
        start=Position(line=shift_source_line(start.line, inserted_lines), character=start.character),
        end=Position(line=shift_source_line(end.line, inserted_lines), character=end.character),
    ))


def repair_source_map(
    source_map: SourceMap,
    js_lines: List[str],
    inserted_lines: Sequence[int],
    object_tweak_lines: Sequence[int]
) -> SourceMap:
    """Fix mappings that point at lines preprocessing added or altered.

    Mappings of empty-line sentinels only survive on generated lines that
    still hold the sentinel, reduced to the start of both lines, like fake
    line mappings. All source lines are shifted back by the number of
    inserted lines before them.
    """
    tweaked = set(object_tweak_lines)
    mappings = []
    for mapping in source_map:
        if mapping.source_line in tweaked:
            line = js_lines[mapping.output_line] if mapping.output_line < len(js_lines) else ''
            if not EMPTY_LINE.found_in(line):
                continue
            mapping = ColumnMapping(mapping.source_line, 0, mapping.output_line, 0)
        mappings.append(replace(
            mapping, source_line=shift_source_line(mapping.source_line, inserted_lines)))
    return SourceMap.from_mappings(mappings)


@dataclass(frozen=True)
class Declaration:
    """A variable listed in a hoisted `var` statement"""
    name: str
    indent: int
    line_no: int


@dataclass(frozen=True)
class Narrowing:
    """A first assignment that becomes the declaration of its variable"""
    declaration: Declaration
    line_no: int
    column: int


def find_declarations(js_lines: Sequence[str]) -> Dict[int, Tuple[str, List[Declaration]]]:
    """Hoisted declaration lines by line number, with their indentation"""
    found = {}
    for line_no, line in enumerate(js_lines):
        match = DECLARATION_LINE.match(line)
        if match:
            indentation = match.group(1)
            names = match.group(2).split(', ')
            found[line_no] = (indentation, [
                Declaration(name, len(indentation), line_no) for name in names])
    return found


def find_first_assignment(js_lines: Sequence[str], declaration: Declaration) -> Optional[Narrowing]:
    """Find the assignment that can declare ``declaration`` instead.

    Stops at the end of the declaring block, since a later match could
    belong to another declaration of the same name. An assignment nested
    deeper than the declaration is conditional and cannot be narrowed.
    """
    assignment = f"{declaration.name} = "
    for line_no in range(declaration.line_no, len(js_lines)):
        line = js_lines[line_no]
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip())
        if indent < declaration.indent:
            return None
        if line.startswith(assignment, indent):
            if indent > declaration.indent:
                return None
            return Narrowing(declaration, line_no, indent)
    return None


def insert_keyword_columns(mappings: List[ColumnMapping], column: int, length: int) -> List[ColumnMapping]:
    """Mappings of one generated line after inserting ``length`` characters at ``column``.

    Everything from ``column`` on moves right; the inserted characters map
    to wherever the original first character mapped to.
    """
    start = next((m for m in mappings if m.output_column == column), None)
    result = [replace(m, output_column=m.output_column + length) if m.output_column >= column else m
              for m in mappings]
    # can be missing for helper variables of the compiler itself
    if start is not None:
        result.extend(replace(start, output_column=column + i) for i in range(length))
    return result


def narrow_declarations(js_lines: List[str], source_map: SourceMap, uri: str = '') -> SourceMap:
    """Move hoisted `var` declarations down to each variable's first assignment.

    The compiler declares all variables of a scope at its top:

        var a;
        a = 1;
        a = 'one';

    which makes `a` a `number | string` for the type checker. Rewritten:

        let a = 1;
        a = 'one';

    Variables without a suitable first assignment stay in the `var` line,
    which is emptied if none remain. Modifies ``js_lines`` in place.
    """
    declarations = find_declarations(js_lines)
    narrowings = []
    for _, decls in declarations.values():
        for declaration in decls:
            narrowing = find_first_assignment(js_lines, declaration)
            if narrowing is not None:
                narrowings.append(narrowing)
    if not narrowings:
        return source_map

    by_line: Dict[int, List[ColumnMapping]] = {}
    for mapping in source_map:
        by_line.setdefault(mapping.output_line, []).append(mapping)

    for narrowing in narrowings:
        line = js_lines[narrowing.line_no]
        logger.debug(f"narrow declaration of {narrowing.declaration.name} {uri}")
        js_lines[narrowing.line_no] = line[:narrowing.column] + NARROW_KEYWORD + line[narrowing.column:]
        by_line[narrowing.line_no] = insert_keyword_columns(
            by_line.get(narrowing.line_no, []), narrowing.column, len(NARROW_KEYWORD))

    narrowed = {(n.declaration.line_no, n.declaration.name) for n in narrowings}
    for line_no, (indentation, decls) in declarations.items():
        remaining = [d.name for d in decls if (line_no, d.name) not in narrowed]
        js_lines[line_no] = f"{indentation}var {', '.join(remaining)};" if remaining else ''

    return SourceMap.from_mappings(m for mappings in by_line.values() for m in mappings)


def postprocess(
    result: TranspilationResult,
    inserted_lines: Sequence[int] = (),
    object_tweak_lines: Sequence[int] = (),
    uri: str = ''
) -> TranspilationResult:
    """Clean up a compiled result.

    Returns:
        A new result; results without js or source map are returned as is
    """
    if result.js is None or result.source_map is None:
        return result

    js = prefer_method_shorthand(result.js)
    for sentinel in (RECEIVER, NEW_PROPERTY):
        js = sentinel.clean(js)

    js_lines = js.split('\n')
    source_map = repair_source_map(result.source_map, js_lines, inserted_lines, object_tweak_lines)
    fake_line = result.fake_line
    if fake_line is not None:
        fake_line = shift_source_line(fake_line, inserted_lines)

    source_map = narrow_declarations(js_lines, source_map, uri)
    # leaves empty objects behind outside of objects, which do no harm
    js = EMPTY_LINE.clean('\n'.join(js_lines))

    for sentinel in violations(js, Stage.FINAL):
        logger.debug(f"{sentinel.name} sentinel left in output {uri}")

    return result.replace(js=js, source_map=source_map, fake_line=fake_line)
