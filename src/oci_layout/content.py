"""
Image and ingester boundary.

The layout does not care how an image is represented; it needs an object
that names its top-level descriptor, lists its blobs through an OCI
manifest, and can stream each blob. Two implementations live here: a
read-only view over a content store and an in-memory image built from
layer bytes.
"""
from __future__ import annotations

import io
import logging
import threading
from typing import BinaryIO, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import ValidationError

from .digest import compute_digest
from .errors import DigestMismatch, NotFound
from .fsutil import raise_if_cancelled
from .media_types import (
    OCI_EMPTY_CONFIG,
    OCI_EMPTY_CONFIG_BYTES,
    OCI_GENERIC_LAYER,
    OCI_IMAGE_MANIFEST,
    OCI_REF_NAME_ANNOTATION,
)
from .models import Descriptor, Manifest
from .store import Content, LocalStore

__all__ = [
    "Ingester",
    "Image",
    "BaseImage",
    "StoreImage",
    "MemoryImage",
    "write_image_to_ingester",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class Ingester(Protocol):
    """Anything that can persist content and describe it."""

    def write(
        self,
        content: Content,
        *,
        expected: Optional[Descriptor] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Descriptor:
        """
        Persist content and return its descriptor.

        Raises:
            DigestMismatch: If content does not match ``expected``
        """
        ...


@runtime_checkable
class Image(Protocol):
    """An image: a top-level manifest descriptor plus the blobs it names."""

    def descriptor(self) -> Descriptor:
        ...

    def manifest(self) -> Manifest:
        ...

    def open_blob(self, descriptor: Descriptor) -> BinaryIO:
        ...


class BaseImage:
    """Accessors shared by the concrete images."""

    def descriptor(self) -> Descriptor:
        raise NotImplementedError

    def manifest(self) -> Manifest:
        raise NotImplementedError

    def open_blob(self, descriptor: Descriptor) -> BinaryIO:
        raise NotImplementedError

    @property
    def digest(self) -> str:
        return self.descriptor().digest

    def config(self) -> Descriptor:
        return self.manifest().config

    def layers(self) -> List[Descriptor]:
        return list(self.manifest().layers)

    def blobs(self) -> List[Descriptor]:
        """All blobs of the image in write order: layers, config, manifest."""
        return [*self.layers(), self.config(), self.descriptor()]

    def read_blob(self, descriptor: Descriptor) -> bytes:
        with self.open_blob(descriptor) as f:
            return f.read()

    def config_bytes(self) -> bytes:
        return self.read_blob(self.config())

    def layer_bytes(self) -> List[bytes]:
        return [self.read_blob(layer) for layer in self.layers()]

    def write_to(self, ingester: Ingester, *, cancel: Optional[threading.Event] = None) -> Descriptor:
        """Stream this image into ``ingester`` and return its descriptor."""
        write_image_to_ingester(ingester, self, cancel=cancel)
        return self.descriptor()

    def _check_member(self, descriptor: Descriptor) -> None:
        if descriptor.digest not in {d.digest for d in self.blobs()}:
            raise NotFound(f"Blob {descriptor.digest} is not part of image {self.digest}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.digest})"


class StoreImage(BaseImage):
    """
    Image view backed by a content store.

    The manifest is read and verified on first use; blobs are opened from the
    store on demand.
    """

    def __init__(self, store: LocalStore, descriptor: Descriptor) -> None:
        self._store = store
        self._descriptor = descriptor
        self._manifest: Optional[Manifest] = None

    def descriptor(self) -> Descriptor:
        return self._descriptor

    def manifest(self) -> Manifest:
        """
        Parse the image manifest from the store.

        Raises:
            NotFound: If the manifest blob is missing
            DigestMismatch: If the manifest blob is corrupt
            ValueError: If the blob is not a valid image manifest
        """
        if self._manifest is None:
            raw = self._store.read(self._descriptor.digest)
            try:
                self._manifest = Manifest.model_validate_json(raw)
            except ValidationError as e:
                raise ValueError(f"Invalid manifest {self._descriptor.digest}: {e}") from e
        return self._manifest

    def open_blob(self, descriptor: Descriptor) -> BinaryIO:
        self._check_member(descriptor)
        return self._store.open(descriptor.digest)

    def read_blob(self, descriptor: Descriptor) -> bytes:
        self._check_member(descriptor)
        return self._store.read(descriptor.digest)


class MemoryImage(BaseImage):
    """Image whose manifest and blobs are held in memory."""

    def __init__(self, descriptor: Descriptor, manifest: Manifest, blobs: Dict[str, bytes]) -> None:
        self._descriptor = descriptor
        self._manifest = manifest
        self._blobs = dict(blobs)

    @classmethod
    def build(
        cls,
        layers: Sequence[bytes],
        *,
        config: bytes = OCI_EMPTY_CONFIG_BYTES,
        config_media_type: str = OCI_EMPTY_CONFIG,
        layer_media_type: str = OCI_GENERIC_LAYER,
        annotations: Optional[Dict[str, str]] = None,
        ref_name: Optional[str] = None,
        algorithm: str = "sha256",
    ) -> MemoryImage:
        """
        Build an image over in-memory layers.

        Args:
            layers: Layer contents in order
            config: Config blob (defaults to the empty ``{}`` config)
            config_media_type: Media type of the config blob
            layer_media_type: Media type applied to every layer
            annotations: Annotations written into the manifest
            ref_name: Ref name annotation placed on the index descriptor
            algorithm: Digest algorithm for every blob

        Returns:
            MemoryImage with a canonical OCI image manifest
        """
        blobs: Dict[str, bytes] = {}

        def describe(data: bytes, media_type: str) -> Descriptor:
            digest = compute_digest(data, algorithm)
            blobs[digest] = data
            return Descriptor(media_type=media_type, digest=digest, size=len(data))

        manifest = Manifest(
            config=describe(config, config_media_type),
            layers=[describe(layer, layer_media_type) for layer in layers],
            annotations=annotations or None,
        )
        payload = manifest.to_bytes()
        descriptor = describe(payload, OCI_IMAGE_MANIFEST)
        if ref_name:
            descriptor = descriptor.model_copy(update={"annotations": {OCI_REF_NAME_ANNOTATION: ref_name}})
        return cls(descriptor, manifest, blobs)

    def descriptor(self) -> Descriptor:
        return self._descriptor

    def manifest(self) -> Manifest:
        return self._manifest

    def open_blob(self, descriptor: Descriptor) -> BinaryIO:
        try:
            return io.BytesIO(self._blobs[descriptor.digest])
        except KeyError as e:
            raise NotFound(f"Blob {descriptor.digest} is not part of image {self.digest}") from e


def write_image_to_ingester(
    ingester: Ingester,
    image: Image,
    *,
    cancel: Optional[threading.Event] = None,
) -> None:
    """
    Write every blob of ``image`` into ``ingester``.

    Layers go first, then the config, then the manifest, so the manifest
    only becomes addressable once everything it names is stored.

    Raises:
        DigestMismatch: If a blob does not match its descriptor
        Cancelled: If ``cancel`` is set between blobs
    """
    manifest = image.manifest()
    top = image.descriptor()
    for desc in [*manifest.layers, manifest.config, top]:
        raise_if_cancelled(cancel, f"writing image {top.digest}")
        with image.open_blob(desc) as content:
            written = ingester.write(content, expected=desc, cancel=cancel)
        if written.digest != desc.digest:
            raise DigestMismatch(
                f"Ingester stored {written.digest} for {desc.digest}",
                expected=desc.digest,
                actual=written.digest,
            )
        logger.debug(f"Wrote blob {desc.digest} of image {top.digest}")
