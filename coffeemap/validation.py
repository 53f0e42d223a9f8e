"""
Debounced validation per document.

Every change of a document cancels its pending and running validation
and schedules a new one, so only the diagnostics of the latest edit are
ever delivered.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Union

from lsprotocol.types import Diagnostic


logger = logging.getLogger(__name__)

DiagnosticsSink = Callable[[str, List[Diagnostic]], None]
Validate = Callable[[str, 'CancellationToken'], Union[List[Diagnostic], Awaitable[List[Diagnostic]]]]


class CancellationToken:
    """Flag checked by a validation at each of its yield points"""

    def __init__(self):
        self.is_cancelled = False

    def cancel(self) -> None:
        self.is_cancelled = True


class ValidationScheduler:
    """Runs ``validate`` for a URI ``delay`` seconds after its last change.

    Must be used from within a running event loop.
    """

    def __init__(self, validate: Validate, sink: DiagnosticsSink, delay: float = 0.2):
        self._validate = validate
        self._sink = sink
        self.delay = delay
        self._pending: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    def schedule(self, uri: str) -> asyncio.Task:
        self.cancel(uri)
        token = CancellationToken()
        task = asyncio.get_running_loop().create_task(self._run(uri, token))
        self._tokens[uri] = token
        self._pending[uri] = task
        return task

    def cancel(self, uri: str) -> None:
        token = self._tokens.pop(uri, None)
        if token is not None:
            token.cancel()
        task = self._pending.pop(uri, None)
        if task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        for uri in list(self._pending):
            self.cancel(uri)

    @property
    def pending(self) -> List[str]:
        return [uri for uri, task in self._pending.items() if not task.done()]

    async def _run(self, uri: str, token: CancellationToken) -> None:
        await asyncio.sleep(self.delay)
        if token.is_cancelled:
            return
        try:
            diagnostics = self._validate(uri, token)
            if inspect.isawaitable(diagnostics):
                diagnostics = await diagnostics
        except asyncio.CancelledError:
            raise
        except Exception:
            # degrade this validation only
            logger.exception(f"validation of {uri} failed")
            return
        if token.is_cancelled:
            logger.debug(f"validation cancelled {uri}")
            return
        self._sink(uri, list(diagnostics))
        if self._tokens.get(uri) is token:
            del self._tokens[uri]
            self._pending.pop(uri, None)
