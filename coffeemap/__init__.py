"""
coffeemap: transpile CoffeeScript for a TypeScript-style language service
and map every position between the two texts.
"""

__version__ = '0.1.0'

from .cache import ResultCache
from .compiler import CoffeeScriptCompiler, CompileFailure, CompileSuccess, DialectCompiler
from .config import Settings
from .errors import CoffeemapError, ConfigError, DialectSyntaxError, FakeLineError
from .mapping import (
    output_to_source_position,
    output_to_source_range,
    source_to_output_position,
    source_to_output_range,
)
from .pipeline import Transpiler
from .result import ColumnMapping, FakeLineMechanism, LineMap, SourceMap, TranspilationResult
from .service import LanguageService, Workspace
from .text import SourceText
from .validation import CancellationToken, ValidationScheduler
