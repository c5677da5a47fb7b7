"""File and matcher-response caches.

Two independently keyed, bounded LRU caches:

* ``FileCache`` keys on the absolute path and stays valid while the file's
  ``(mtime_ns, size)`` pair is unchanged. There is no TTL.
* ``MatcherResponseCache`` keys on a digest of the request payload and serves
  an entry only while it is younger than ``max_age_seconds``.

Reads are safe from any thread. Loads for the same key are serialized by a
per-key lock so two concurrent misses never interleave their writes.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

from tracecov.errors import CacheCorruption, InputNotFound, MalformedInput
from tracecov.hashing import hash_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FILE_CACHE_SIZE = 100
DEFAULT_MATCHER_CACHE_SIZE = 50
DEFAULT_MATCHER_MAX_AGE_SECONDS = 3600.0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    evictions: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, counter: str, count: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + count)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.invalidations
        if total == 0:
            return 0.0
        return round(self.hits / total * 100, 1)

    def as_dict(self, size: int) -> Dict[str, Any]:
        with self._lock:
            return {
                "hits": self.hits,
                "misses": self.misses,
                "invalidations": self.invalidations,
                "evictions": self.evictions,
                "hit_rate": self.hit_rate,
                "size": size,
            }


@dataclass
class _LockSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class _KeyedLocks:
    """One lock per key, alive only while some thread holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: Dict[str, _LockSlot] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _LockSlot()
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class _LruStore(Generic[T]):
    def __init__(self, max_entries: int, stats: CacheStats) -> None:
        if max_entries < 1:
            raise ValueError("Cache size must be at least 1")
        self.max_entries = max_entries
        self._stats = stats
        self._entries: "OrderedDict[str, T]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, key: str, entry: T) -> None:
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._stats.record("evictions")
                logger.debug("Evicted cache entry %s", evicted)

    def pop(self, key: str) -> Optional[T]:
        with self._lock:
            return self._entries.pop(key, None)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


@dataclass(frozen=True)
class _FileEntry:
    content: Any
    mtime_ns: int
    size: int


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedInput(f"{path} is not valid UTF-8: {exc}", path=str(path)) from exc


class FileCache:
    """Caches file contents until the file's mtime or size changes."""

    def __init__(self, max_entries: int = DEFAULT_FILE_CACHE_SIZE) -> None:
        self.stats = CacheStats()
        self._store: _LruStore[_FileEntry] = _LruStore(max_entries, self.stats)
        self._locks = _KeyedLocks()

    def read(self, path: Path | str, loader: Optional[Callable[[Path], T]] = None) -> T:
        """Return the loaded content of ``path``, reusing it while the file is unchanged.

        ``loader`` defaults to reading UTF-8 text. A missing file drops any
        cached entry and raises ``InputNotFound``.
        """
        file_path = Path(path).expanduser().resolve()
        key = str(file_path)
        load = loader or _read_text
        with self._locks.hold(key):
            try:
                stat = file_path.stat()
            except FileNotFoundError as exc:
                if self._store.pop(key) is not None:
                    self.stats.record("invalidations")
                raise InputNotFound(f"File not found: {file_path}", path=key) from exc

            cached = self._store.get(key)
            if cached and cached.mtime_ns == stat.st_mtime_ns and cached.size == stat.st_size:
                self.stats.record("hits")
                return cached.content
            if cached:
                self.stats.record("invalidations")
                logger.debug("File changed on disk, re-reading %s", file_path)
            else:
                self.stats.record("misses")

            try:
                content = load(file_path)
            except FileNotFoundError as exc:
                self._store.pop(key)
                raise InputNotFound(f"File not found: {file_path}", path=key) from exc
            except Exception:
                self._store.pop(key)
                raise
            self._store.put(key, _FileEntry(content=content, mtime_ns=stat.st_mtime_ns, size=stat.st_size))
            return content

    def has_changed(self, path: Path | str) -> bool:
        file_path = Path(path).expanduser().resolve()
        cached = self._store.get(str(file_path))
        if cached is None or not file_path.exists():
            return True
        stat = file_path.stat()
        return stat.st_mtime_ns != cached.mtime_ns or stat.st_size != cached.size

    def invalidate(self, path: Path | str) -> None:
        key = str(Path(path).expanduser().resolve())
        if self._store.pop(key) is not None:
            self.stats.record("invalidations")

    def clear(self) -> None:
        self.stats.record("invalidations", self._store.clear())

    def __len__(self) -> int:
        return len(self._store)


@dataclass(frozen=True)
class _MatcherEntry:
    response: Any
    stored_at: float
    digest: str


def _response_digest(response: Any) -> str:
    return hash_payload(_jsonable(response))


def _jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return value


@dataclass
class MatcherResponseCache:
    """Age-bounded cache of matcher responses keyed by request digest."""

    max_entries: int = DEFAULT_MATCHER_CACHE_SIZE
    max_age_seconds: float = DEFAULT_MATCHER_MAX_AGE_SECONDS
    clock: Callable[[], float] = time.time
    stats: CacheStats = field(default_factory=CacheStats)

    def __post_init__(self) -> None:
        self._store: _LruStore[_MatcherEntry] = _LruStore(self.max_entries, self.stats)
        self._locks = _KeyedLocks()

    @staticmethod
    def key_for(payload: Any) -> str:
        return hash_payload(payload)

    def get(self, key: str) -> Optional[Any]:
        """Return a fresh response or ``None``.

        Expired entries are not served but stay in place until a newer
        success replaces them. Raises ``CacheCorruption`` when the stored
        response no longer matches its digest; the entry is dropped first.
        """
        entry = self._store.get(key)
        if entry is None:
            self.stats.record("misses")
            return None
        age = self.clock() - entry.stored_at
        if age >= self.max_age_seconds:
            self.stats.record("invalidations")
            logger.debug("Matcher cache entry %s expired (age %.1fs)", key[:12], age)
            return None
        if _response_digest(entry.response) != entry.digest:
            self._store.pop(key)
            raise CacheCorruption(f"Matcher cache entry {key[:12]} failed its integrity check")
        self.stats.record("hits")
        return entry.response

    def put(self, key: str, response: Any) -> None:
        """Store a successful response. Failures must never be passed here."""
        self._store.put(
            key,
            _MatcherEntry(response=response, stored_at=self.clock(), digest=_response_digest(response)),
        )

    def get_or_compute(self, payload: Any, compute: Callable[[], T]) -> Tuple[T, bool]:
        """Serve ``payload`` from cache or call ``compute`` and store its result.

        Returns ``(response, from_cache)``. Exceptions from ``compute``
        propagate and leave any earlier entry untouched.
        """
        key = self.key_for(payload)
        with self._locks.hold(key):
            try:
                cached = self.get(key)
            except CacheCorruption as exc:
                logger.warning("%s; recomputing", exc)
                cached = None
            if cached is not None:
                return cached, True
            response = compute()
            self.put(key, response)
            return response, False

    def invalidate(self, key: str) -> None:
        if self._store.pop(key) is not None:
            self.stats.record("invalidations")

    def clear(self) -> None:
        self.stats.record("invalidations", self._store.clear())

    def __len__(self) -> int:
        return len(self._store)


@dataclass
class CacheManager:
    """Both caches, constructed explicitly and passed to the analyzer."""

    files: FileCache = field(default_factory=FileCache)
    matcher: MatcherResponseCache = field(default_factory=MatcherResponseCache)

    @classmethod
    def create(
        cls,
        *,
        file_max_entries: int = DEFAULT_FILE_CACHE_SIZE,
        matcher_max_entries: int = DEFAULT_MATCHER_CACHE_SIZE,
        matcher_max_age_seconds: float = DEFAULT_MATCHER_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> "CacheManager":
        return cls(
            files=FileCache(max_entries=file_max_entries),
            matcher=MatcherResponseCache(
                max_entries=matcher_max_entries,
                max_age_seconds=matcher_max_age_seconds,
                clock=clock,
            ),
        )

    def stats(self) -> Dict[str, Any]:
        return {
            "file": self.files.stats.as_dict(len(self.files)),
            "matcher": self.matcher.stats.as_dict(len(self.matcher)),
        }

    def clear(self) -> None:
        self.files.clear()
        self.matcher.clear()
