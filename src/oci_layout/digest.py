"""
Digest parsing and computation.

Digests follow the OCI form ``<algorithm>:<encoded>``. Only registered
algorithms can be computed; parsing validates the grammar and, for known
algorithms, the encoded length.
"""
from __future__ import annotations

import hashlib
import re
from typing import Tuple

__all__ = ["SUPPORTED_ALGORITHMS", "parse_digest", "compute_digest", "Digester"]

_DIGEST_RE = re.compile(r"^([a-z0-9]+(?:[.+_-][a-z0-9]+)*):([a-zA-Z0-9=_-]+)$")

# algorithm -> hex length
SUPPORTED_ALGORITHMS = {
    "sha256": 64,
    "sha512": 128,
}


def parse_digest(digest: str) -> Tuple[str, str]:
    """
    Split and validate a digest string.

    Args:
        digest: Digest such as ``sha256:44136f...``

    Returns:
        ``(algorithm, encoded)`` tuple

    Raises:
        ValueError: If the digest is malformed or uses an unsupported algorithm

    Examples:
        >>> parse_digest("sha256:" + "a" * 64)
        ('sha256', 'aaaa...')

        >>> parse_digest("sha256:xyz")
        ValueError: invalid digest: sha256:xyz
    """
    if not isinstance(digest, str):
        raise ValueError(f"invalid digest: {digest!r}")
    match = _DIGEST_RE.match(digest)
    if not match:
        raise ValueError(f"invalid digest: {digest}")
    algorithm, encoded = match.group(1), match.group(2)
    expected_len = SUPPORTED_ALGORITHMS.get(algorithm)
    if expected_len is None:
        raise ValueError(f"unsupported digest algorithm: {algorithm}")
    if len(encoded) != expected_len or not re.fullmatch(r"[a-f0-9]+", encoded):
        raise ValueError(f"invalid digest: {digest}")
    return algorithm, encoded


def compute_digest(data: bytes, algorithm: str = "sha256") -> str:
    """Compute the digest string of ``data``."""
    digester = Digester(algorithm)
    digester.update(data)
    return digester.digest()


class Digester:
    """
    Streaming digest computation.

    Tracks the number of bytes fed so a descriptor can be built without a
    second pass over the content.
    """

    def __init__(self, algorithm: str = "sha256") -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"unsupported digest algorithm: {algorithm}")
        self.algorithm = algorithm
        self._hash = hashlib.new(algorithm)
        self.size = 0

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)
        self.size += len(chunk)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def digest(self) -> str:
        return f"{self.algorithm}:{self._hash.hexdigest()}"
