"""
The transpilation pipeline: preprocess, compile with fallbacks,
postprocess, and pseudo-compile when nothing else worked.
"""

import logging

from lsprotocol.types import Diagnostic

from .compiler import DialectCompiler, copy_diagnostic
from .ladder import compile_ladder
from .postprocess import postprocess, shift_diagnostic
from .preprocess import preprocess, preprocess_aggressive
from .pseudo import pseudo_compile
from .result import TranspilationResult
from .text import SourceText


logger = logging.getLogger(__name__)

# what the compiler says about the `;` that terminates a dangling dot
UNEXPECTED_TERMINATOR = 'unexpected ;'
DANGLING_DOT_MESSAGE = 'unexpected end of input'


def explain_dangling_dot(diagnostic: Diagnostic, source: SourceText) -> Diagnostic:
    """Name the dangling `x.` the user typed instead of the `;` added after it"""
    if diagnostic.message != UNEXPECTED_TERMINATOR:
        return diagnostic
    start = diagnostic.range.start
    line = source.line_at(start.line)
    if not line.endswith('.') or start.character != len(line):
        return diagnostic
    return copy_diagnostic(diagnostic, message=DANGLING_DOT_MESSAGE)


class Transpiler:
    """Turns source text into a TranspilationResult.

    Synchronous from start to end, so a result is never observed half
    built.
    """

    def __init__(self, compiler: DialectCompiler):
        self.compiler = compiler

    def transpile(self, text: str, uri: str = '') -> TranspilationResult:
        preprocessed = preprocess(text, uri)
        result = compile_ladder(preprocessed.text, self.compiler, uri)

        if result.js is None:
            # aggressive rewrites keep the line count, so the bookkeeping
            # of the first pass still holds
            aggressive = compile_ladder(preprocess_aggressive(preprocessed.text, uri), self.compiler, uri)
            if aggressive.js is not None:
                logger.debug(f"aggressive preprocessing made it compile {uri}")
                result = aggressive.replace(diagnostics=result.diagnostics)

        if result.diagnostics:
            # reported on the preprocessed text
            source = SourceText(text, uri)
            result = result.replace(diagnostics=tuple(
                explain_dangling_dot(shift_diagnostic(d, preprocessed.inserted_lines), source)
                for d in result.diagnostics))

        if result.has_source_map:
            return postprocess(result, preprocessed.inserted_lines, preprocessed.object_tweak_lines, uri)

        logger.debug(f"falling back to pseudo compilation {uri}")
        return result.replace(js=pseudo_compile(text))

    __call__ = transpile
