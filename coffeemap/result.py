"""
Data model of a transpilation: the generated text, its source map and the
bookkeeping needed to map positions across a fake line.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from lsprotocol.types import Diagnostic


class FakeLineMechanism(Enum):
    """How the compile ladder got a failing source line to compile"""
    # The line compiled after removing an offending suffix (mostly a trailing
    # dot) which was spliced back into the generated line afterwards.
    MODIFIED_SOURCE = 'modified_source'
    # The line was replaced by a placeholder; the generated line holds a
    # pseudo-compiled copy of the source line.
    SOURCE_IN_OUTPUT = 'source_in_output'


@dataclass(frozen=True)
class ColumnMapping:
    """One source-map entry; all coordinates are 0-based"""
    source_line: int
    source_column: int
    output_line: int
    output_column: int

    def __repr__(self):
        return (f"ColumnMapping(out L{self.output_line}:{self.output_column} -> "
                f"src L{self.source_line}:{self.source_column})")


@dataclass(frozen=True)
class LineMap:
    """All mappings of one generated line, ordered by output column"""
    line: int
    columns: Tuple[ColumnMapping, ...] = ()

    def at(self, column: int) -> Optional[ColumnMapping]:
        for mapping in self.columns:
            if mapping.output_column == column:
                return mapping
        return None

    def first(self) -> Optional[ColumnMapping]:
        return self.columns[0] if self.columns else None


@dataclass(frozen=True)
class SourceMap:
    """Per-generated-line list of column mappings.

    Several mappings may point at the same source position; mapping
    heuristics rely on that.
    """
    lines: Tuple[LineMap, ...] = ()

    @classmethod
    def from_mappings(cls, mappings: Iterable[ColumnMapping]) -> 'SourceMap':
        """Group mappings by output line; the first mapping per column wins"""
        by_line: Dict[int, Dict[int, ColumnMapping]] = {}
        for mapping in mappings:
            columns = by_line.setdefault(mapping.output_line, {})
            columns.setdefault(mapping.output_column, mapping)
        if not by_line:
            return cls(())
        lines = []
        for line_no in range(max(by_line) + 1):
            columns = by_line.get(line_no, {})
            lines.append(LineMap(line_no, tuple(columns[c] for c in sorted(columns))))
        return cls(tuple(lines))

    def line(self, line_no: int) -> Optional[LineMap]:
        if 0 <= line_no < len(self.lines):
            return self.lines[line_no]
        return None

    def for_source_line(self, source_line: int) -> List[ColumnMapping]:
        return [m for m in self if m.source_line == source_line]

    def __iter__(self) -> Iterator[ColumnMapping]:
        for line_map in self.lines:
            yield from line_map.columns

    def __len__(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class TranspilationResult:
    """Output of one run of the transpilation pipeline.

    Immutable; a new edit produces a new result.
    """
    js: Optional[str] = None
    source_map: Optional[SourceMap] = None
    # parse diagnostics of the first, unmodified compilation attempt
    diagnostics: Optional[Tuple[Diagnostic, ...]] = None
    # 0-based source line that was substituted to make compilation succeed
    fake_line: Optional[int] = None
    fake_line_mechanism: Optional[FakeLineMechanism] = None

    def __post_init__(self):
        if self.js is None and not self.diagnostics:
            raise ValueError("a result without js must carry diagnostics")
        if self.fake_line is not None:
            if self.source_map is None:
                raise ValueError("a fake line requires a source map")
            if self.fake_line_mechanism is None:
                raise ValueError("a fake line requires its mechanism")

    @property
    def has_source_map(self) -> bool:
        return self.js is not None and self.source_map is not None

    def replace(self, **changes) -> 'TranspilationResult':
        return replace(self, **changes)
