"""
Command line front end: transpile a file and inspect the result.

    coffeemap <file.coffee> [--map] [--diagnostics] [--position LINE:COL]
              [--verbose] [--compiler-script PATH] [--settings PATH]
"""

import logging
import sys
from typing import List, Optional

from lsprotocol.types import Position

from . import __version__
from .compiler import CoffeeScriptCompiler
from .config import Settings
from .errors import CoffeemapError
from .mapping import source_to_output_position
from .pipeline import Transpiler
from .result import TranspilationResult
from .text import SourceText


logger = logging.getLogger('coffeemap')

USAGE = """\
Usage: coffeemap <file.coffee> [options]

Options:
  --map                    Print all source map entries
  --diagnostics            Print syntax errors, exit 1 if there are any
  --position LINE:COL      Print the generated position of a source position (0-based)
  --compiler-script PATH   Use a CoffeeScript browser bundle instead of the packaged one
  --settings PATH          Read settings from a JSON file
  --verbose                Show debug output
  --version                Show the version"""


def configure_logging(level: str = 'INFO') -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('[coffeemap] %(message)s'))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def parse_position(value: str) -> Position:
    try:
        line, character = value.split(':')
        return Position(line=int(line), character=int(character))
    except ValueError:
        raise CoffeemapError(f"invalid position '{value}', expected LINE:COL")


def format_diagnostics(filename: str, result: TranspilationResult) -> List[str]:
    """`file:line:col: error: message`, 1-based like compiler output"""
    return [f"{filename}:{d.range.start.line + 1}:{d.range.start.character + 1}: error: {d.message}"
            for d in result.diagnostics or ()]


def format_map(result: TranspilationResult) -> List[str]:
    if result.source_map is None:
        return ["no source map (pseudo compiled)"]
    return [f"{m.output_line}:{m.output_column} -> {m.source_line}:{m.source_column}"
            for m in result.source_map]


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args or args[0] in ('-h', '--help'):
        print(USAGE, file=sys.stderr)
        return 1
    if args[0] == '--version':
        print(f"coffeemap {__version__}")
        return 0

    filename = None
    show_map = '--map' in args
    show_diagnostics = '--diagnostics' in args
    verbose = '--verbose' in args
    position = None
    compiler_script = None
    settings_path = None

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ('--position', '--compiler-script', '--settings'):
            if i + 1 >= len(args):
                print(f"Error: {arg} needs a value", file=sys.stderr)
                return 1
            if arg == '--position':
                position = args[i + 1]
            elif arg == '--settings':
                settings_path = args[i + 1]
            else:
                compiler_script = args[i + 1]
            i += 2
            continue
        if not arg.startswith('--') and filename is None:
            filename = arg
        i += 1

    if not filename:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    try:
        settings = Settings.load(settings_path) if settings_path else Settings()
        configure_logging('DEBUG' if verbose else settings.log_level)
        compiler_script = compiler_script or settings.compiler_script
        with open(filename, 'r', encoding='utf-8') as f:
            text = f.read()
        compiler = CoffeeScriptCompiler.from_file(compiler_script) if compiler_script else CoffeeScriptCompiler()
        logger.debug(f"Transpiling: {filename}")
        result = Transpiler(compiler).transpile(text, filename)

        if show_diagnostics:
            lines = format_diagnostics(filename, result)
            for line in lines:
                print(line, file=sys.stderr)
            return 1 if lines else 0
        if position is not None:
            source_position = parse_position(position)
            mapped = source_to_output_position(result, source_position, SourceText(text, filename))
            print(f"{mapped.line}:{mapped.character}" if mapped else "unavailable")
            return 0
        if show_map:
            print('\n'.join(format_map(result)))
            return 0
        print(result.js, end='' if result.js.endswith('\n') else '\n')
        return 0
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except CoffeemapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
