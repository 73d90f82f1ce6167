"""
Settings and configuration for OCI layouts.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables when a layout is opened without
explicit settings.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from .digest import SUPPORTED_ALGORITHMS

__all__ = ["Settings", "create_settings_from_env"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for a layout and its store and indexer.

    Store Settings:
        digest_algorithm: Algorithm used to address newly written blobs
        chunk_size: Read/write chunk size in bytes when streaming content
        fsync: Flush blobs, index and directories to disk before publishing

    Index Settings:
        lock_timeout_s: How long a mutation waits for the index lock
    """
    digest_algorithm: str = "sha256"
    chunk_size: int = 1024 * 1024
    fsync: bool = True
    lock_timeout_s: float = 30.0

    def __post_init__(self):
        """Validate settings on construction."""
        if self.digest_algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(
                f"Unsupported digest_algorithm: {self.digest_algorithm}. "
                f"Supported values: {', '.join(sorted(SUPPORTED_ALGORITHMS))}"
            )

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        if self.lock_timeout_s <= 0:
            raise ValueError(f"lock_timeout_s must be positive, got {self.lock_timeout_s}")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - OCI_LAYOUT_DIGEST_ALGORITHM (default: sha256)
        - OCI_LAYOUT_CHUNK_SIZE (default: 1048576)
        - OCI_LAYOUT_FSYNC (default: true)
        - OCI_LAYOUT_LOCK_TIMEOUT (default: 30.0)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    return Settings(
        digest_algorithm=os.getenv("OCI_LAYOUT_DIGEST_ALGORITHM", "sha256").lower(),
        chunk_size=get_int("OCI_LAYOUT_CHUNK_SIZE", 1024 * 1024),
        fsync=str_to_bool(os.getenv("OCI_LAYOUT_FSYNC", "true")),
        lock_timeout_s=get_float("OCI_LAYOUT_LOCK_TIMEOUT", 30.0),
    )
