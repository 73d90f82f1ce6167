"""
OCI image layout.

A layout directory holds a content store, an ``index.json`` of image
descriptors and an ``oci-layout`` marker. The Layout writes an image's blobs
before registering its descriptor, so every index entry points at content
that is already stored.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from .content import Image, StoreImage, write_image_to_ingester
from .errors import IOFailure, LayoutError
from .fsutil import atomic_write_bytes, raise_if_cancelled
from .indexer import Filename, Indexer
from .matcher import EVERY, Equal, Matcher
from .media_types import LAYOUT_MARKER_FILE
from .models import Descriptor, LayoutMarker
from .settings import Settings, create_settings_from_env
from .store import LocalStore

__all__ = ["Layout", "new"]

logger = logging.getLogger(__name__)


class Layout:
    """
    An OCI image layout on disk.

    Owns exactly one store and one indexer for its directory. Errors from
    either are re-raised as the same kind with the failing operation
    prefixed to the message.
    """

    def __init__(self, path: Path, store: LocalStore, indexer: Indexer) -> None:
        self._path = path
        self._store = store
        self._indexer = indexer

    @classmethod
    def new(cls, path: Union[str, Path], settings: Optional[Settings] = None) -> Layout:
        """
        Create or reopen a layout at ``path``.

        Reopening an existing layout reuses its store and index; the marker
        is rewritten every time.

        Args:
            path: Layout directory (created if missing)
            settings: Layout settings (defaults to environment settings)

        Raises:
            IOFailure: If the directory or marker cannot be written
            IndexCorrupt: If an existing index cannot be parsed
        """
        if settings is None:
            settings = create_settings_from_env()
        path = Path(path)

        try:
            store = LocalStore(path, settings)
        except LayoutError as e:
            raise e.with_context("error creating store") from e

        try:
            indexer = Indexer(path / Filename, lock_timeout_s=settings.lock_timeout_s, fsync=settings.fsync)
        except LayoutError as e:
            raise e.with_context("error creating indexer") from e

        try:
            atomic_write_bytes(path / LAYOUT_MARKER_FILE, LayoutMarker().to_bytes(), fsync=settings.fsync)
        except OSError as e:
            raise IOFailure(f"error writing oci layout marker: {e}") from e

        logger.debug(f"Opened OCI layout at {path}")
        return cls(path, store, indexer)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def store(self) -> LocalStore:
        """The backing content store."""
        return self._store

    @property
    def indexer(self) -> Indexer:
        """The layout's indexer."""
        return self._indexer

    def _write_image(self, image: Image, cancel: Optional[threading.Event]) -> Descriptor:
        desc = image.descriptor()
        try:
            write_image_to_ingester(self._store, image, cancel=cancel)
        except LayoutError as e:
            raise e.with_context(f"error writing image {desc.digest}") from e
        raise_if_cancelled(cancel, f"adding image {desc.digest}")
        return desc

    def add_image(self, image: Image, *, cancel: Optional[threading.Event] = None) -> None:
        """
        Add an image to the layout.

        Raises:
            Conflict: If the image is already indexed
            Cancelled: If ``cancel`` is set before the index is updated
            IOFailure: If blobs or the index cannot be persisted
        """
        desc = self._write_image(image, cancel)
        try:
            self._indexer.add(desc, cancel=cancel)
        except LayoutError as e:
            raise e.with_context(f"error adding image {desc.digest} to index") from e
        logger.info(f"Added image {desc.digest}")

    def replace_image(
        self,
        image: Image,
        match: Matcher,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> List[Descriptor]:
        """
        Replace the images selected by ``match`` with ``image``.

        When nothing matches the image is simply added.

        Returns:
            Descriptors removed from the index
        """
        desc = self._write_image(image, cancel)
        try:
            removed = self._indexer.replace(desc, match, cancel=cancel)
        except LayoutError as e:
            raise e.with_context(f"error replacing image {desc.digest} in index") from e
        logger.info(f"Replaced {len(removed)} image(s) with {desc.digest}")
        return removed

    def remove_image(self, match: Matcher, *, cancel: Optional[threading.Event] = None) -> List[Descriptor]:
        """
        Unregister the images selected by ``match``.

        Blobs stay in the store.
        """
        try:
            removed = self._indexer.remove(match, cancel=cancel)
        except LayoutError as e:
            raise e.with_context("error removing image from index") from e
        logger.info(f"Removed {len(removed)} image(s)")
        return removed

    def image(self, desc: Descriptor) -> StoreImage:
        """
        Return the image registered under ``desc``.

        Raises:
            NotFound: If the descriptor is not in the index
        """
        try:
            found = self._indexer.find(Equal(desc))
        except LayoutError as e:
            raise e.with_context(f"could not find descriptor {desc.digest} in index") from e
        return StoreImage(self._store, found)

    def find_images(self, match: Matcher) -> List[StoreImage]:
        """Return the images selected by ``match`` in index order."""
        try:
            descs = self._indexer.list(match)
        except LayoutError as e:
            raise e.with_context("error listing index") from e
        return [StoreImage(self._store, desc) for desc in descs]

    def images(self) -> List[StoreImage]:
        """List all images."""
        return self.find_images(EVERY)


def new(path: Union[str, Path], settings: Optional[Settings] = None) -> Layout:
    """Create or reopen a layout at ``path``."""
    return Layout.new(path, settings)
