"""
oci-layout: local OCI image layouts.

A content-addressable blob store plus a persistent descriptor index, laid
out on disk per the OCI Image Layout specification.
"""
from .content import Image, MemoryImage, StoreImage, write_image_to_ingester
from .errors import (
    Ambiguous,
    Cancelled,
    Conflict,
    DigestMismatch,
    IndexCorrupt,
    IOFailure,
    LayoutError,
    NotFound,
)
from .indexer import Indexer
from .layout import Layout, new
from .matcher import EVERY, And, Annotation, Digest, Equal, Every, Matcher, Not, Or, RefName
from .models import Descriptor, ImageIndex, Manifest
from .settings import Settings, create_settings_from_env
from .store import LocalStore

__version__ = "0.1.0"

__all__ = [
    "Layout",
    "new",
    "LocalStore",
    "Indexer",
    "Image",
    "MemoryImage",
    "StoreImage",
    "write_image_to_ingester",
    "Descriptor",
    "ImageIndex",
    "Manifest",
    "Matcher",
    "Equal",
    "Every",
    "EVERY",
    "Digest",
    "Annotation",
    "RefName",
    "And",
    "Or",
    "Not",
    "Settings",
    "create_settings_from_env",
    "LayoutError",
    "NotFound",
    "Ambiguous",
    "Conflict",
    "IOFailure",
    "IndexCorrupt",
    "DigestMismatch",
    "Cancelled",
]
