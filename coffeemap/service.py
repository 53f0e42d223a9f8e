"""
Bridge between source documents and an opaque language service that only
understands the generated text.

The ``Workspace`` keeps one virtual file per open document in the language
service, named after the document with a `.ts` suffix and holding the
latest generated text. Every request position is mapped into that file,
every response position is mapped back.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence
from urllib.parse import unquote, urlparse

from lsprotocol.types import (
    CompletionItem,
    CompletionItemKind,
    CompletionList,
    Diagnostic,
    DiagnosticSeverity,
    DiagnosticTag,
    Hover,
    Location,
    MarkupContent,
    MarkupKind,
    Position,
    Range,
    TextEdit,
)

from .cache import ResultCache
from .config import Settings
from .mapping import output_to_source_range, source_to_output_position
from .result import TranspilationResult
from .text import SourceText, is_identifier_char, word_around
from .validation import DiagnosticsSink, ValidationScheduler


logger = logging.getLogger(__name__)

VIRTUAL_SUFFIX = '.ts'
DIAGNOSTIC_SOURCE = 'coffeemap [ts]'
TRIGGER_CHARACTER = '.'
RECEIVER_VALUE = 'this.valueOf()'
# introduced by the aggressive spread rewrites
IGNORED_MESSAGES = (
    "Parameter '_' implicitly has an 'any' type.",
    "'_' is declared but its value is never read.",
)
UNMAPPED_CONTEXT_LINES = 2


# =============================================================================
# Language service contract
# =============================================================================


@dataclass(frozen=True)
class TextSpan:
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class CompletionEntry:
    name: str
    kind: Optional[CompletionItemKind] = None
    sort_text: Optional[str] = None
    insert_text: Optional[str] = None
    # only set for insertions that replace more than the word at the cursor
    replacement_span: Optional[TextSpan] = None


@dataclass(frozen=True)
class QuickInfo:
    text: str
    span: TextSpan
    documentation: str = ''


@dataclass(frozen=True)
class SpanLocation:
    file_name: str
    span: TextSpan


@dataclass(frozen=True)
class ServiceDiagnostic:
    message: str
    span: TextSpan
    code: int
    severity: DiagnosticSeverity = DiagnosticSeverity.Error
    tags: Sequence[DiagnosticTag] = ()


class LanguageService(Protocol):
    """Offset based language service working on generated text"""

    def update_file(self, name: str, content: str, version: int) -> None:
        ...

    def remove_file(self, name: str) -> None:
        ...

    def read_file(self, name: str) -> Optional[str]:
        """Content of a file the service knows that is not a virtual file"""
        ...

    def completions(self, name: str, offset: int) -> List[CompletionEntry]:
        ...

    def hover(self, name: str, offset: int) -> Optional[QuickInfo]:
        ...

    def definitions(self, name: str, offset: int) -> List[SpanLocation]:
        ...

    def references(self, name: str, offset: int) -> List[SpanLocation]:
        ...

    def diagnostics(self, name: str) -> List[ServiceDiagnostic]:
        ...


# =============================================================================
# Workspace
# =============================================================================


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme == 'file':
        return unquote(parsed.path)
    return uri


def path_to_uri(path: str) -> str:
    if path.startswith('/'):
        return 'file://' + path
    return path


@dataclass
class VirtualFile:
    name: str
    content: str
    version: int


@dataclass(frozen=True)
class Document:
    uri: str
    source: SourceText
    version: int


def caret(position: Position) -> Range:
    return Range(start=position, end=position)


def _contains(range_: Range, position: Position) -> bool:
    return (range_.start.line == position.line == range_.end.line
            and range_.start.character <= position.character <= range_.end.character)


class Workspace:
    """Open documents, their latest transpilation and their virtual files.

    Args:
        service: The language service answering requests on generated text
        transpile: ``transpile(text, uri) -> TranspilationResult``
        settings: Cache lifetime and diagnostic filtering
    """

    def __init__(
        self,
        service: LanguageService,
        transpile: Callable[[str, str], TranspilationResult],
        settings: Optional[Settings] = None
    ):
        self.service = service
        self.settings = settings or Settings()
        self.cache = ResultCache(transpile, ttl=self.settings.cache_ttl)
        self.documents: Dict[str, Document] = {}
        self.virtual_files: Dict[str, VirtualFile] = {}

    # ----- document lifecycle -----------------------------------------------

    def handles(self, uri: str) -> bool:
        """Whether ``uri`` has one of the configured file extensions"""
        extension = os.path.splitext(uri_to_path(uri))[1]
        return extension.lstrip('.') in self.settings.file_extensions

    def open(self, uri: str, text: str, version: int = 0) -> Optional[TranspilationResult]:
        return self.change(uri, text, version)

    def change(self, uri: str, text: str, version: int) -> Optional[TranspilationResult]:
        """Transpile the new text and sync the virtual file.

        Documents without a configured extension are ignored and give None.
        """
        if not self.handles(uri):
            logger.debug(f"ignoring {uri}, extension not in {self.settings.file_extensions}")
            return None
        self.documents[uri] = Document(uri, SourceText(text, uri), version)
        result = self.cache.get_or_compute(text, uri)
        self._sync_virtual_file(uri, result.js or '')
        return result

    def close(self, uri: str) -> None:
        self.documents.pop(uri, None)
        self.cache.forget(uri)
        virtual = self.virtual_files.pop(uri, None)
        if virtual is not None:
            self.service.remove_file(virtual.name)

    def validation_scheduler(self, sink: DiagnosticsSink) -> ValidationScheduler:
        """Debounced validation of changed documents, delivered to ``sink``"""
        return ValidationScheduler(self.validate, sink, delay=self.settings.validation_delay)

    def virtual_file_name(self, uri: str) -> str:
        return uri_to_path(uri) + VIRTUAL_SUFFIX

    def _sync_virtual_file(self, uri: str, content: str) -> None:
        virtual = self.virtual_files.get(uri)
        if virtual is None:
            virtual = VirtualFile(self.virtual_file_name(uri), content, 0)
            self.virtual_files[uri] = virtual
        elif virtual.content == content:
            return
        else:
            virtual.content = content
            virtual.version += 1
        logger.debug(f"update virtual file {virtual.name} to version {virtual.version}")
        self.service.update_file(virtual.name, virtual.content, virtual.version)

    def _uri_of_virtual_file(self, name: str) -> Optional[str]:
        for uri, virtual in self.virtual_files.items():
            if virtual.name == name:
                return uri
        return None

    def _state(self, uri: str):
        document = self.documents.get(uri)
        result = self.cache.get_latest(uri)
        if document is None or result is None or result.js is None:
            return None
        return document, result, SourceText(result.js)

    # ----- position translation ---------------------------------------------

    def _request_offset(
        self,
        document: Document,
        result: TranspilationResult,
        generated: SourceText,
        position: Position
    ) -> Optional[int]:
        if not result.has_source_map:
            # pseudo compiled text is close enough to the source
            return generated.offset_at(position)
        mapped = source_to_output_position(result, position, document.source)
        if mapped is None:
            return None
        return generated.offset_at(mapped)

    def _response_range(self, name: str, span: TextSpan, request: Optional[Position] = None) -> Optional[Range]:
        """Map a span of any file the service knows back to its source"""
        uri = self._uri_of_virtual_file(name)
        if uri is None:
            text = self.service.read_file(name)
            if text is None:
                return None
            target = SourceText(text)
            return Range(start=target.position_at(span.start), end=target.position_at(span.end))
        state = self._state(uri)
        if state is None:
            return None
        document, result, generated = state
        range_ = Range(start=generated.position_at(span.start), end=generated.position_at(span.end))
        if not result.has_source_map:
            return range_
        mapped = output_to_source_range(result, range_, document.source)
        if mapped is None and request is not None:
            return caret(request)
        return mapped

    def _location(self, location: SpanLocation) -> Optional[Location]:
        range_ = self._response_range(location.file_name, location.span)
        if range_ is None:
            return None
        uri = self._uri_of_virtual_file(location.file_name) or path_to_uri(location.file_name)
        return Location(uri=uri, range=range_)

    # ----- language features ------------------------------------------------

    def completions(self, uri: str, position: Position) -> CompletionList:
        """Completions at ``position``.

        The trigger dot is left out when mapping the position, since the
        source map knows nothing about a dot that has no member after it,
        and put back afterwards.
        """
        empty = CompletionList(is_incomplete=False, items=[])
        state = self._state(uri)
        if state is None:
            return empty
        document, result, generated = state
        source = document.source
        offset = source.offset_at(position)
        last_char = source.char_at(offset - 1)
        after_trigger = last_char == TRIGGER_CHARACTER

        request = position
        if after_trigger and result.has_source_map:
            request = Position(line=position.line, character=position.character - 1)
        js_offset = self._request_offset(document, result, generated, request)
        if js_offset is None:
            logger.debug(f"no completions, position {position.line}:{position.character} unmapped {uri}")
            return empty
        if after_trigger and result.has_source_map:
            js_offset += 1
        # source cursor is at `@|`, which ends up at or right before `this.valueOf()`
        receiver = generated.text.find(RECEIVER_VALUE, js_offset, js_offset + len(RECEIVER_VALUE) + 1)
        if receiver >= 0:
            js_offset = receiver + len('this.')

        entries = self.service.completions(self.virtual_file_name(uri), js_offset)
        if is_identifier_char(last_char):
            word = word_around(source.text, offset).word
            entries = [e for e in entries if word in e.name]

        items = []
        for entry in entries:
            text_edit = None
            if entry.replacement_span is not None:
                range_ = self._response_range(self.virtual_file_name(uri), entry.replacement_span)
                if range_ is None or not _contains(range_, position):
                    range_ = caret(position)
                    if after_trigger and (entry.insert_text or '').startswith(('?.', '[')):
                        # `].|` becomes `]?.name`, replacing the dot
                        range_ = Range(start=Position(line=position.line, character=position.character - 1),
                                       end=position)
                text_edit = TextEdit(range=range_, new_text=entry.insert_text or entry.name)
            items.append(CompletionItem(
                label=entry.name,
                kind=entry.kind,
                sort_text=entry.sort_text,
                insert_text=entry.insert_text,
                text_edit=text_edit,
            ))
        return CompletionList(is_incomplete=False, items=items)

    def hover(self, uri: str, position: Position) -> Optional[Hover]:
        state = self._state(uri)
        if state is None:
            return None
        document, result, generated = state
        js_offset = self._request_offset(document, result, generated, position)
        if js_offset is None:
            return None
        info = self.service.hover(self.virtual_file_name(uri), js_offset)
        if info is None:
            return None
        value = f"```ts\n{info.text}\n```"
        if info.documentation:
            value += f"\n\n{info.documentation}"
        range_ = self._response_range(self.virtual_file_name(uri), info.span, position)
        return Hover(
            contents=MarkupContent(kind=MarkupKind.Markdown, value=value),
            range=range_ or caret(position),
        )

    def definitions(self, uri: str, position: Position) -> List[Location]:
        """Definitions of the symbol at ``position``.

        Variables are declared by their first assignment in the source, so
        when the service knows no definition, the closest assignment above
        in the same block is taken.
        """
        state = self._state(uri)
        if state is None:
            return []
        document, result, generated = state
        js_offset = self._request_offset(document, result, generated, position)
        found = []
        if js_offset is not None:
            for location in self.service.definitions(self.virtual_file_name(uri), js_offset):
                mapped = self._location(location)
                if mapped is not None:
                    found.append(mapped)
        if not found:
            assignment = find_assignment_above(document.source, position)
            if assignment is not None:
                found.append(Location(uri=uri, range=assignment))
        return found

    def references(self, uri: str, position: Position) -> List[Location]:
        state = self._state(uri)
        if state is None:
            return []
        document, result, generated = state
        js_offset = self._request_offset(document, result, generated, position)
        if js_offset is None:
            return []
        found = []
        for location in self.service.references(self.virtual_file_name(uri), js_offset):
            mapped = self._location(location)
            if mapped is not None:
                found.append(mapped)
        return found

    # ----- validation -------------------------------------------------------

    def validate(self, uri: str, token=None) -> List[Diagnostic]:
        """Diagnostics of a document in source coordinates.

        Syntax errors of the unmodified source win: as long as there are
        any, the service's diagnostics on the recovered text would mostly
        be follow-up noise.
        """
        if token is not None and token.is_cancelled:
            return []
        state = self._state(uri)
        if state is None:
            latest = self.cache.get_latest(uri)
            return list(latest.diagnostics or ()) if latest is not None else []
        document, result, generated = state
        if result.diagnostics:
            return list(result.diagnostics)

        raw = self.service.diagnostics(self.virtual_file_name(uri))
        if token is not None and token.is_cancelled:
            return []

        diagnostics = []
        for diag in raw:
            if diag.code in self.settings.ignored_error_codes or diag.message in IGNORED_MESSAGES:
                continue
            diagnostics.append(self._map_diagnostic(diag, document, result, generated))
        return diagnostics

    def _map_diagnostic(
        self,
        diag: ServiceDiagnostic,
        document: Document,
        result: TranspilationResult,
        generated: SourceText
    ) -> Diagnostic:
        message = diag.message
        range_ = Range(start=generated.position_at(diag.span.start),
                       end=generated.position_at(diag.span.end))
        if result.has_source_map:
            mapped = output_to_source_range(result, range_, document.source)
            if mapped is None:
                message += ("\n\nThe position of this error could not be mapped back to the source. "
                            f"Generated context:\n\n{unmapped_context(generated, range_.start.line)}")
                range_ = Range(start=Position(line=0, character=0), end=Position(line=0, character=0))
            else:
                range_ = mapped
            if (range_.end.line, range_.end.character) < (range_.start.line, range_.start.character):
                range_ = word_range(document.source, range_.start)
        return Diagnostic(
            range=range_,
            message=message,
            severity=diag.severity,
            code=diag.code,
            source=DIAGNOSTIC_SOURCE,
            tags=list(diag.tags),
        )


def unmapped_context(generated: SourceText, line: int) -> str:
    first = max(line - UNMAPPED_CONTEXT_LINES, 0)
    last = min(line + UNMAPPED_CONTEXT_LINES, generated.line_count - 1)
    return '\n'.join(generated.line_at(i) for i in range(first, last + 1))


def word_range(source: SourceText, start: Position) -> Range:
    """At least one character from ``start``, extended over identifier characters"""
    line = source.line_at(start.line)
    end = start.character + 1
    while end < len(line) and is_identifier_char(line[end]):
        end += 1
    return Range(start=start, end=Position(line=start.line, character=end))


def find_assignment_above(source: SourceText, position: Position) -> Optional[Range]:
    """Range of the closest `word = ...` at or above ``position`` in its block.

    Scans upwards until an empty line.
    """
    word = word_around(source.text, source.offset_at(position)).word
    if not word:
        return None
    assignment = re.compile(rf'^(\s*)({re.escape(word)})\s*=(?:[^=]|$)')
    line_no = position.line
    while line_no >= 0:
        line = source.line_at(line_no)
        if not line.strip():
            break
        match = assignment.match(line)
        if match:
            start = len(match.group(1))
            return Range(start=Position(line=line_no, character=start),
                         end=Position(line=line_no, character=start + len(word)))
        line_no -= 1
    return None
