"""
The dialect compiler collaborator.

A dialect compiler turns source text into generated text plus a source
map, or raises ``DialectSyntaxError``. ``try_compile`` turns that into a
tagged ``CompileSuccess | CompileFailure`` outcome. Any other exception is
not anticipated and propagates.

``CoffeeScriptCompiler`` runs the CoffeeScript compiler bundled with the
``CoffeeScript`` package on a JavaScript runtime picked by ``PyExecJS``.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence, Tuple, Union

import coffeescript
import execjs
from lsprotocol.types import Diagnostic, DiagnosticSeverity, Position, Range

from .errors import DialectSyntaxError
from .result import ColumnMapping, SourceMap


logger = logging.getLogger(__name__)

DIAGNOSTIC_SOURCE = 'coffeemap'


@dataclass(frozen=True)
class CompileSuccess:
    js: str
    source_map: SourceMap


@dataclass(frozen=True)
class CompileFailure:
    diagnostics: Tuple[Diagnostic, ...]

    @property
    def error_line(self) -> int:
        """0-based source line of the first diagnostic"""
        return self.diagnostics[0].range.start.line


CompileOutcome = Union[CompileSuccess, CompileFailure]


class DialectCompiler(Protocol):
    def compile(self, text: str) -> CompileSuccess:
        """Compile ``text`` with a source map; raise DialectSyntaxError on bad syntax"""
        ...


def syntax_error_to_diagnostic(error: DialectSyntaxError) -> Diagnostic:
    last_line = error.last_line if error.last_line is not None else error.first_line
    return Diagnostic(
        range=Range(
            start=Position(line=error.first_line, character=error.first_column),
            end=Position(line=last_line, character=error.last_column + 1),
        ),
        message=error.message,
        severity=DiagnosticSeverity.Error,
        code=0,
        source=DIAGNOSTIC_SOURCE,
        tags=[],
    )


def copy_diagnostic(
    diagnostic: Diagnostic,
    range_: Optional[Range] = None,
    message: Optional[str] = None
) -> Diagnostic:
    return Diagnostic(
        range=range_ or diagnostic.range,
        message=diagnostic.message if message is None else message,
        severity=diagnostic.severity,
        code=diagnostic.code,
        source=diagnostic.source,
        tags=diagnostic.tags,
    )


def try_compile(compiler: DialectCompiler, text: str) -> CompileOutcome:
    """Compile once; syntax errors become a CompileFailure"""
    try:
        return compiler.compile(text)
    except DialectSyntaxError as e:
        return CompileFailure((syntax_error_to_diagnostic(e),))


def source_map_from_rows(rows: Iterable[Sequence[int]]) -> SourceMap:
    """Build a SourceMap from [source_line, source_column, line, column] rows"""
    return SourceMap.from_mappings(
        ColumnMapping(source_line=row[0], source_column=row[1],
                      output_line=row[2], output_column=row[3])
        for row in rows
    )


# Appended to the compiler bundle. Flattens the source map into rows and
# reports syntax errors as values so their location survives the runtime
# boundary; everything else is rethrown.
_COMPILE_FUNCTION = r"""
function __coffeemapCompile(code, options) {
  var compiled;
  try {
    compiled = CoffeeScript.compile(code, options);
  } catch (err) {
    if (err && err.name === 'SyntaxError' && err.location) {
      return { error: { message: String(err.message), location: err.location } };
    }
    throw err;
  }
  var rows = [];
  var lines = compiled.sourceMap.lines;
  for (var i = 0; i < lines.length; i++) {
    if (!lines[i]) continue;
    var columns = lines[i].columns;
    for (var j = 0; j < columns.length; j++) {
      var c = columns[j];
      if (c) rows.push([c.sourceLine, c.sourceColumn, c.line, c.column]);
    }
  }
  return { js: compiled.js, rows: rows };
}
"""


class CoffeeScriptCompiler:
    """Dialect compiler backed by the official CoffeeScript compiler.

    Each compilation takes a few milliseconds once the runtime context
    exists; the context is created on first use.
    """

    def __init__(self, compiler_script: Optional[str] = None, runtime=None):
        self._compiler_script = compiler_script
        self._runtime = runtime
        self._context = None

    @classmethod
    def from_file(cls, path: str) -> 'CoffeeScriptCompiler':
        """Use a CoffeeScript browser bundle from disk instead of the packaged one"""
        with open(path, 'r', encoding='utf-8') as f:
            return cls(compiler_script=f.read())

    def _get_context(self):
        if self._context is None:
            script = self._compiler_script or coffeescript.get_compiler_script()
            runtime = self._runtime or coffeescript.get_runtime()
            logger.debug(f"creating CoffeeScript context on {runtime.name}")
            self._context = runtime.compile(script + _COMPILE_FUNCTION)
        return self._context

    def compile(self, text: str) -> CompileSuccess:
        response = self._get_context().call(
            '__coffeemapCompile', text, {'sourceMap': True, 'bare': True})
        error = response.get('error')
        if error:
            location = error['location']
            raise DialectSyntaxError(
                error['message'],
                location['first_line'],
                location['first_column'],
                location.get('last_line'),
                location.get('last_column'),
            )
        return CompileSuccess(response['js'], source_map_from_rows(response['rows']))


def runtime_available() -> bool:
    """Whether PyExecJS can find a JavaScript runtime"""
    try:
        execjs.get()
    except execjs.RuntimeUnavailableError:
        return False
    return True
