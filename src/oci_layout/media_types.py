"""
OCI media types and layout constants.

Single source of truth for all OCI-related media types, annotation keys and
on-disk names used by the layout.
"""
from __future__ import annotations

# OCI standard manifest types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_EMPTY_CONFIG = "application/vnd.oci.empty.v1+json"

# OCI standard layer types
OCI_IMAGE_LAYER = "application/vnd.oci.image.layer.v1.tar"
OCI_GENERIC_LAYER = "application/octet-stream"

# Empty config for minimal OCI images (always {})
OCI_EMPTY_CONFIG_BYTES = b"{}"
OCI_EMPTY_CONFIG_DIGEST = "sha256:44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a"

# Standard annotations
OCI_REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"

# Layout on-disk names
LAYOUT_MARKER_FILE = "oci-layout"
LAYOUT_INDEX_FILE = "index.json"
LAYOUT_BLOBS_DIR = "blobs"
LAYOUT_VERSION = "1.0.0"
LAYOUT_MARKER_BYTES = b'{"imageLayoutVersion":"1.0.0"}'


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "OCI_IMAGE_CONFIG",
    "OCI_EMPTY_CONFIG",
    "OCI_IMAGE_LAYER",
    "OCI_GENERIC_LAYER",
    "OCI_EMPTY_CONFIG_BYTES",
    "OCI_EMPTY_CONFIG_DIGEST",
    "OCI_REF_NAME_ANNOTATION",
    "LAYOUT_MARKER_FILE",
    "LAYOUT_INDEX_FILE",
    "LAYOUT_BLOBS_DIR",
    "LAYOUT_VERSION",
    "LAYOUT_MARKER_BYTES",
]
