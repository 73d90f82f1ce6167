"""
Content-addressable blob store.

Blobs live at ``<root>/blobs/<algorithm>/<encoded>``. Content is streamed
into a temporary file next to its final location, hashed on the way, and
published with an atomic rename under its digest, so a blob path either
does not exist or holds exactly the bytes its name promises.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, Union

from .digest import Digester, SUPPORTED_ALGORITHMS, parse_digest
from .errors import DigestMismatch, IOFailure, NotFound
from .fsutil import TEMP_PREFIX, discard, fsync_dir, raise_if_cancelled
from .media_types import LAYOUT_BLOBS_DIR, OCI_GENERIC_LAYER
from .models import Descriptor
from .settings import Settings

__all__ = ["LocalStore", "Content"]

logger = logging.getLogger(__name__)

# Anything the store can ingest
Content = Union[bytes, bytearray, memoryview, BinaryIO, Iterable[bytes]]


def _iter_chunks(content: Content, chunk_size: int) -> Iterator[bytes]:
    """Yield ``content`` as byte chunks regardless of its shape."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        view = memoryview(content)
        for start in range(0, len(view), chunk_size):
            yield bytes(view[start:start + chunk_size])
    elif hasattr(content, "read"):
        while True:
            chunk = content.read(chunk_size)
            if not chunk:
                break
            yield chunk
    else:
        for chunk in content:
            yield chunk


class LocalStore:
    """
    Filesystem content store rooted at a layout directory.

    The blob namespace is append-only, so concurrent writers need no lock:
    writes of distinct digests never touch the same path and writes of the
    same digest rename identical bytes into place.
    """

    def __init__(self, root: Union[str, Path], settings: Optional[Settings] = None) -> None:
        """
        Initialize the store, creating the blobs directory if needed.

        Args:
            root: Layout root directory
            settings: Store settings (defaults to ``Settings()``)

        Raises:
            IOFailure: If the blobs directory cannot be created
        """
        self._root = Path(root)
        self._settings = settings or Settings()
        self._blobs = self._root / LAYOUT_BLOBS_DIR
        try:
            self._blobs.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create blob directory {self._blobs}: {e}") from e

    @property
    def root(self) -> Path:
        return self._root

    def blob_path(self, digest: str) -> Path:
        """
        Resolve the on-disk path of ``digest``.

        Raises:
            ValueError: If the digest is malformed
        """
        algorithm, encoded = parse_digest(digest)
        return self._blobs / algorithm / encoded

    def exists(self, digest: str) -> bool:
        """Check whether a blob is present without reading it."""
        return self.blob_path(digest).is_file()

    def info(self, digest: str) -> int:
        """
        Return the stored size of a blob.

        Raises:
            NotFound: If the blob does not exist
        """
        try:
            return self.blob_path(digest).stat().st_size
        except FileNotFoundError as e:
            raise NotFound(f"Blob not found: {digest}") from e

    def open(self, digest: str) -> BinaryIO:
        """
        Open a blob for reading. The caller closes the returned file.

        Raises:
            NotFound: If the blob does not exist
            IOFailure: For other I/O errors
        """
        path = self.blob_path(digest)
        try:
            return open(path, "rb")
        except FileNotFoundError as e:
            raise NotFound(f"Blob not found: {digest}") from e
        except OSError as e:
            raise IOFailure(f"Cannot open blob {digest}: {e}") from e

    def read(self, digest: str, *, verify: bool = True) -> bytes:
        """
        Read a whole blob, verifying it still hashes to its digest.

        Raises:
            NotFound: If the blob does not exist
            DigestMismatch: If the stored bytes were altered
        """
        algorithm, _ = parse_digest(digest)
        digester = Digester(algorithm)
        chunks = []
        with self.open(digest) as f:
            for chunk in _iter_chunks(f, self._settings.chunk_size):
                digester.update(chunk)
                chunks.append(chunk)
        data = b"".join(chunks)
        if verify and digester.digest() != digest:
            raise DigestMismatch(
                f"Stored blob is corrupt: expected {digest}, got {digester.digest()}",
                expected=digest,
                actual=digester.digest(),
            )
        return data

    def walk(self) -> Iterator[str]:
        """Yield the digests of all published blobs."""
        for algorithm in sorted(SUPPORTED_ALGORITHMS):
            algo_dir = self._blobs / algorithm
            if not algo_dir.is_dir():
                continue
            for entry in sorted(algo_dir.iterdir()):
                if entry.name.startswith(TEMP_PREFIX) or not entry.is_file():
                    continue
                yield f"{algorithm}:{entry.name}"

    def write(
        self,
        content: Content,
        *,
        media_type: str = OCI_GENERIC_LAYER,
        expected: Optional[Descriptor] = None,
        annotations: Optional[dict] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Descriptor:
        """
        Ingest content and return its descriptor.

        Writing content that is already stored is a no-op. When ``expected``
        is given and its blob already exists the content is not read at all.

        Args:
            content: Bytes, a binary file object, or an iterable of chunks
            media_type: Media type recorded on the returned descriptor
            expected: Descriptor the content must match (digest and size)
            annotations: Annotations recorded on the returned descriptor
            cancel: Event that aborts the write when set

        Returns:
            Descriptor of the stored content

        Raises:
            DigestMismatch: If content does not match ``expected``
            Cancelled: If ``cancel`` was set before the blob was published
            IOFailure: If the blob cannot be persisted
        """
        if expected is not None:
            media_type = expected.media_type
            if annotations is None:
                annotations = expected.annotations
            if self.exists(expected.digest):
                stored_size = self.info(expected.digest)
                if stored_size != expected.size:
                    raise DigestMismatch(
                        f"Content does not match descriptor: expected {expected.digest} "
                        f"({expected.size} bytes), stored blob has {stored_size} bytes",
                        expected=expected.digest,
                        actual=expected.digest,
                    )
                logger.debug(f"Blob {expected.digest} already present, skipping write")
                return expected
            algorithm = expected.algorithm
        else:
            algorithm = self._settings.digest_algorithm

        algo_dir = self._blobs / algorithm
        try:
            algo_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=algo_dir)
        except OSError as e:
            raise IOFailure(f"Cannot create temporary blob in {algo_dir}: {e}") from e
        temp_path = Path(temp_name)

        try:
            digester = Digester(algorithm)
            with os.fdopen(fd, "wb") as out:
                for chunk in _iter_chunks(content, self._settings.chunk_size):
                    raise_if_cancelled(cancel, "blob write")
                    digester.update(chunk)
                    out.write(chunk)
                out.flush()
                if self._settings.fsync:
                    os.fsync(out.fileno())

            raise_if_cancelled(cancel, "blob write")
            digest = digester.digest()
            if expected is not None and (digest != expected.digest or digester.size != expected.size):
                raise DigestMismatch(
                    f"Content does not match descriptor: expected {expected.digest} "
                    f"({expected.size} bytes), got {digest} ({digester.size} bytes)",
                    expected=expected.digest,
                    actual=digest,
                )

            target = algo_dir / digester.hexdigest()
            if target.is_file():
                logger.debug(f"Blob {digest} already present, discarding duplicate")
                discard(temp_path)
            else:
                os.replace(temp_path, target)
                if self._settings.fsync:
                    fsync_dir(algo_dir)
                logger.debug(f"Wrote blob {digest} ({digester.size} bytes)")
        except OSError as e:
            discard(temp_path)
            raise IOFailure(f"Failed to write blob: {e}") from e
        except BaseException:
            discard(temp_path)
            raise

        if expected is not None:
            return expected
        return Descriptor(
            media_type=media_type,
            digest=digest,
            size=digester.size,
            annotations=annotations or None,
        )
