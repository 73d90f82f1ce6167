"""
Data models for the OCI wire shapes the layout reads and writes.

These Pydantic models provide validation for descriptors, the image index
document backing ``index.json``, image manifests and the layout marker.
Unknown fields are preserved so documents written by other tools survive a
read-modify-write cycle through the indexer.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .digest import parse_digest
from .media_types import LAYOUT_VERSION, OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST

__all__ = [
    "Descriptor",
    "ImageIndex",
    "Manifest",
    "LayoutMarker",
    "canonical_json",
]


def canonical_json(data: Any) -> bytes:
    """Serialize ``data`` as canonical JSON (sorted keys, no whitespace)."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=True,
    ).encode('utf-8')


class Descriptor(BaseModel):
    """
    OCI content descriptor.

    Identifies a piece of content by digest, size and media type. Two
    descriptors hash alike when those three identity fields agree;
    annotations are carried but do not take part in hashing.

    ref: https://github.com/opencontainers/image-spec/blob/main/descriptor.md
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    media_type: str = Field(..., alias="mediaType", description="Media type of the referenced content")
    digest: str = Field(..., description="Content digest (algorithm:hex)")
    size: int = Field(..., ge=0, description="Content size in bytes")
    urls: Optional[List[str]] = Field(default=None, description="Alternate download locations")
    annotations: Optional[Dict[str, str]] = Field(default=None, description="Free-form annotations")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType", description="Artifact type")

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        parse_digest(v)
        return v

    def __hash__(self) -> int:
        return hash((self.digest, self.size, self.media_type))

    @property
    def algorithm(self) -> str:
        return self.digest.split(":", 1)[0]

    @property
    def encoded(self) -> str:
        return self.digest.split(":", 1)[1]

    def annotation(self, key: str) -> Optional[str]:
        """Return the annotation value for ``key``, if any."""
        if not self.annotations:
            return None
        return self.annotations.get(key)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with OCI keys, omitting unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def short(self) -> str:
        """Abbreviated digest for human output."""
        return f"{self.algorithm}:{self.encoded[:12]}"


class ImageIndex(BaseModel):
    """
    OCI image index document.

    This is the content of a layout's ``index.json``; its ``manifests``
    array is the ordered collection the indexer manages.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: Optional[str] = Field(default=OCI_IMAGE_INDEX, alias="mediaType")
    manifests: List[Descriptor] = Field(default_factory=list)
    annotations: Optional[Dict[str, str]] = Field(default=None)

    @field_validator("schema_version")
    @classmethod
    def validate_schema_version(cls, v: int) -> int:
        if v != 2:
            raise ValueError(f"unsupported image index schemaVersion: {v}")
        return v

    def to_bytes(self) -> bytes:
        return canonical_json(self.model_dump(mode="json", by_alias=True, exclude_none=True))


class Manifest(BaseModel):
    """OCI image manifest."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_IMAGE_MANIFEST, alias="mediaType")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    config: Descriptor = Field(..., description="Image config descriptor")
    layers: List[Descriptor] = Field(default_factory=list, description="Layer descriptors in order")
    annotations: Optional[Dict[str, str]] = Field(default=None)

    def to_bytes(self) -> bytes:
        """Canonical serialized manifest; its digest is the image digest."""
        return canonical_json(self.model_dump(mode="json", by_alias=True, exclude_none=True))


class LayoutMarker(BaseModel):
    """The ``oci-layout`` marker document."""
    image_layout_version: str = Field(default=LAYOUT_VERSION, alias="imageLayoutVersion")

    model_config = ConfigDict(populate_by_name=True)

    def to_bytes(self) -> bytes:
        return canonical_json(self.model_dump(by_alias=True))
