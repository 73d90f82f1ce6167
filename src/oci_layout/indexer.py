"""
Descriptor index backed by a layout's ``index.json``.

The index is the ordered ``manifests`` array of an OCI image index
document. Mutations are read-modify-write cycles that publish a complete new
document via temp file + rename; readers never lock and always see the last
fully published document.

Policies:
- add() of a digest already in the index raises Conflict, even when the
  descriptor is byte-for-byte identical.
- replace() with a matcher that selects nothing appends the new entry.
- find() raises Ambiguous when more than one entry matches.
"""
from __future__ import annotations

import fcntl
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_delay, wait_exponential

from .errors import Ambiguous, Conflict, IndexCorrupt, IOFailure, NotFound
from .fsutil import atomic_write_bytes, raise_if_cancelled
from .matcher import EVERY, Matcher
from .media_types import LAYOUT_INDEX_FILE
from .models import Descriptor, ImageIndex

__all__ = ["Indexer", "Filename"]

logger = logging.getLogger(__name__)

Filename = LAYOUT_INDEX_FILE

T = TypeVar("T")


class Indexer:
    """
    Persisted, ordered collection of image descriptors.

    Mutations are serialized twice: a thread lock orders mutations made
    through this instance, and an advisory ``flock`` on ``<index>.lock``
    orders them across instances and processes sharing the file.
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        lock_timeout_s: float = 30.0,
        fsync: bool = True,
    ) -> None:
        """
        Open the index at ``path``, creating an empty one if missing.

        Args:
            path: Path of the index file (usually ``<layout>/index.json``)
            lock_timeout_s: How long a mutation waits for the index lock
            fsync: Flush the index and its directory on every mutation

        Raises:
            IndexCorrupt: If an existing index file cannot be parsed
            IOFailure: If a new index cannot be written
        """
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._lock_timeout_s = lock_timeout_s
        self._fsync = fsync
        self._mutex = threading.Lock()

        if self._path.exists():
            self._load()
        else:
            with self._exclusive():
                if not self._path.exists():
                    self._persist(ImageIndex())
                    logger.debug(f"Created empty index at {self._path}")

    @property
    def path(self) -> Path:
        return self._path

    # Locking and persistence

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold both the thread lock and the file lock."""
        if not self._mutex.acquire(timeout=self._lock_timeout_s):
            raise IOFailure(f"Timed out waiting for index lock on {self._path}")
        try:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self._lock_path, "a+b")
            except OSError as e:
                raise IOFailure(f"Cannot open index lock {self._lock_path}: {e}") from e
            with lock_file:
                self._flock(lock_file.fileno())
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            self._mutex.release()

    def _flock(self, fd: int) -> None:
        """Take the exclusive file lock, retrying until the lock timeout."""
        retrying = Retrying(
            stop=stop_after_delay(self._lock_timeout_s),
            wait=wait_exponential(multiplier=0.005, max=0.25),
            retry=retry_if_exception_type(BlockingIOError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise IOFailure(f"Timed out waiting for index lock on {self._lock_path}") from e
        except OSError as e:
            raise IOFailure(f"Cannot lock index {self._lock_path}: {e}") from e

    def _load(self) -> ImageIndex:
        """Read and validate the current index document."""
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError as e:
            raise IOFailure(f"Index file missing: {self._path}") from e
        except OSError as e:
            raise IOFailure(f"Cannot read index {self._path}: {e}") from e

        try:
            return ImageIndex.model_validate_json(raw)
        except ValidationError as e:
            raise IndexCorrupt(f"Invalid image index {self._path}: {e}") from e

    def _persist(self, index: ImageIndex) -> None:
        try:
            atomic_write_bytes(self._path, index.to_bytes(), fsync=self._fsync)
        except OSError as e:
            raise IOFailure(f"Failed to write index {self._path}: {e}") from e

    def _mutate(
        self,
        change: Callable[[List[Descriptor]], Tuple[List[Descriptor], T]],
        cancel: Optional[threading.Event] = None,
    ) -> T:
        """
        Apply ``change`` to the current entries and publish the result.

        ``change`` receives a copy of the entries and returns the new entries
        plus a value handed back to the caller. Errors raised by ``change``
        abort the mutation without touching the file.
        """
        with self._exclusive():
            index = self._load()
            manifests, result = change(list(index.manifests))
            raise_if_cancelled(cancel, "index update")
            self._persist(index.model_copy(update={"manifests": manifests}))
            return result

    # Operations

    def add(self, descriptor: Descriptor, *, cancel: Optional[threading.Event] = None) -> None:
        """
        Append ``descriptor`` to the index.

        Raises:
            Conflict: If an entry with the same digest is already indexed
            IOFailure: If the index cannot be persisted
        """
        def change(manifests: List[Descriptor]) -> Tuple[List[Descriptor], None]:
            for existing in manifests:
                if existing.digest == descriptor.digest:
                    raise Conflict(f"Descriptor {descriptor.digest} is already indexed")
            manifests.append(descriptor)
            return manifests, None

        self._mutate(change, cancel)
        logger.debug(f"Indexed {descriptor.digest}")

    def replace(
        self,
        descriptor: Descriptor,
        matcher: Matcher,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> List[Descriptor]:
        """
        Remove every entry selected by ``matcher`` and insert ``descriptor``.

        The new entry takes the position of the first removed entry. When
        nothing matches it is appended.

        Returns:
            The removed entries, in index order

        Raises:
            Conflict: If ``descriptor``'s digest is held by an entry the
                matcher does not remove
            IOFailure: If the index cannot be persisted
        """
        def change(manifests: List[Descriptor]) -> Tuple[List[Descriptor], List[Descriptor]]:
            removed: List[Descriptor] = []
            result: List[Descriptor] = []
            for existing in manifests:
                if matcher.matches(existing):
                    if not removed:
                        result.append(descriptor)
                    removed.append(existing)
                    continue
                if existing.digest == descriptor.digest:
                    raise Conflict(f"Descriptor {descriptor.digest} is already indexed")
                result.append(existing)
            if not removed:
                result.append(descriptor)
            return result, removed

        removed = self._mutate(change, cancel)
        logger.debug(f"Replaced {len(removed)} entries with {descriptor.digest}")
        return removed

    def remove(self, matcher: Matcher, *, cancel: Optional[threading.Event] = None) -> List[Descriptor]:
        """
        Remove every entry selected by ``matcher``.

        Returns:
            The removed entries, in index order

        Raises:
            NotFound: If nothing matched
        """
        def change(manifests: List[Descriptor]) -> Tuple[List[Descriptor], List[Descriptor]]:
            removed = [m for m in manifests if matcher.matches(m)]
            if not removed:
                raise NotFound(f"No index entry matches {matcher!r}")
            return [m for m in manifests if not matcher.matches(m)], removed

        removed = self._mutate(change, cancel)
        logger.debug(f"Removed {len(removed)} index entries")
        return removed

    def find(self, matcher: Matcher) -> Descriptor:
        """
        Return the single entry selected by ``matcher``.

        Raises:
            NotFound: If nothing matched
            Ambiguous: If more than one entry matched
        """
        found = self.list(matcher)
        if not found:
            raise NotFound(f"No index entry matches {matcher!r}")
        if len(found) > 1:
            digests = ", ".join(d.digest for d in found)
            raise Ambiguous(f"{len(found)} index entries match {matcher!r}: {digests}")
        return found[0]

    def list(self, matcher: Matcher = EVERY) -> List[Descriptor]:
        """Return all entries selected by ``matcher`` in index order."""
        return [d for d in self._load().manifests if matcher.matches(d)]
