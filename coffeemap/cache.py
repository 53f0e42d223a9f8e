"""
Content-hash keyed cache of transpilation results.

Entries expire after a fixed TTL regardless of document lifecycle. A
second index holds the latest result per document URI; it never expires
and is only cleared when the document is closed.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .result import TranspilationResult


logger = logging.getLogger(__name__)

DEFAULT_TTL = 180.0


def content_hash(text: str) -> str:
    return hashlib.md5(text.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    result: TranspilationResult
    expires_at: float


class ResultCache:
    """Runs ``transpile`` at most once per distinct text within the TTL.

    Args:
        transpile: ``transpile(text, uri) -> TranspilationResult``
        ttl: Lifetime of a hash entry in seconds
        clock: Monotonic time source, replaceable in tests
    """

    def __init__(
        self,
        transpile: Callable[[str, str], TranspilationResult],
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic
    ):
        self._transpile = transpile
        self.ttl = ttl
        self._clock = clock
        self._by_hash: Dict[str, CacheEntry] = {}
        self._latest: Dict[str, TranspilationResult] = {}

    def get_or_compute(self, text: str, uri: Optional[str] = None) -> TranspilationResult:
        """Return the cached result for ``text`` or transpile it now.

        Either way the result becomes the latest result of ``uri``.
        """
        key = content_hash(text)
        now = self._clock()
        entry = self._by_hash.get(key)
        if entry is not None and entry.expires_at > now:
            logger.debug(f"cache hit {uri or ''}")
            result = entry.result
        else:
            result = self._transpile(text, uri or '')
            self._by_hash[key] = CacheEntry(result, now + self.ttl)
        if uri is not None:
            self._latest[uri] = result
        self.purge_expired(now)
        return result

    def get_latest(self, uri: str) -> Optional[TranspilationResult]:
        return self._latest.get(uri)

    def forget(self, uri: str) -> None:
        """Drop the latest result of a closed document"""
        self._latest.pop(uri, None)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Remove expired hash entries; returns how many were removed"""
        if now is None:
            now = self._clock()
        expired = [key for key, entry in self._by_hash.items() if entry.expires_at <= now]
        for key in expired:
            del self._by_hash[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._by_hash)
