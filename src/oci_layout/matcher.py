"""
Descriptor matchers.

A matcher is a pure predicate over descriptors used to select index
entries. Matchers are frozen dataclasses, so they are safe to share between
threads and compose with ``&``, ``|`` and ``~``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple, runtime_checkable

from .media_types import OCI_REF_NAME_ANNOTATION
from .models import Descriptor

__all__ = [
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
]


@runtime_checkable
class Matcher(Protocol):
    """Protocol for descriptor predicates."""

    def matches(self, candidate: Descriptor) -> bool:
        """
        Decide whether ``candidate`` is selected.

        Implementations must not depend on any state besides the candidate
        and their own (immutable) fields.
        """
        ...


class _Composable:
    """Operator sugar shared by the built-in matchers."""

    def __and__(self, other: Matcher) -> And:
        return And((self, other))  # type: ignore[arg-type]

    def __or__(self, other: Matcher) -> Or:
        return Or((self, other))  # type: ignore[arg-type]

    def __invert__(self) -> Not:
        return Not(self)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Equal(_Composable):
    """
    Match descriptors identical to ``target``.

    Identity fields are digest, size and media type. Annotations, urls and
    any extra fields are ignored, so an entry re-annotated with a new ref
    name is still equal to its original descriptor.
    """
    target: Descriptor

    def matches(self, candidate: Descriptor) -> bool:
        return (
            candidate.digest == self.target.digest
            and candidate.size == self.target.size
            and candidate.media_type == self.target.media_type
        )


@dataclass(frozen=True)
class Every(_Composable):
    """Match every descriptor."""

    def matches(self, candidate: Descriptor) -> bool:
        return True


EVERY = Every()


@dataclass(frozen=True)
class Digest(_Composable):
    """Match descriptors by digest only."""
    digest: str

    def matches(self, candidate: Descriptor) -> bool:
        return candidate.digest == self.digest


@dataclass(frozen=True)
class Annotation(_Composable):
    """
    Match descriptors carrying annotation ``key``.

    When ``value`` is given the annotation must also equal it.
    """
    key: str
    value: Optional[str] = None

    def matches(self, candidate: Descriptor) -> bool:
        actual = candidate.annotation(self.key)
        if actual is None:
            return False
        return self.value is None or actual == self.value


def RefName(name: str) -> Annotation:
    """Match descriptors tagged with ``org.opencontainers.image.ref.name``."""
    return Annotation(OCI_REF_NAME_ANNOTATION, name)


@dataclass(frozen=True)
class And(_Composable):
    """Match when every sub-matcher matches (vacuously true when empty)."""
    matchers: Tuple[Matcher, ...]

    def matches(self, candidate: Descriptor) -> bool:
        return all(m.matches(candidate) for m in self.matchers)


@dataclass(frozen=True)
class Or(_Composable):
    """Match when any sub-matcher matches (false when empty)."""
    matchers: Tuple[Matcher, ...]

    def matches(self, candidate: Descriptor) -> bool:
        return any(m.matches(candidate) for m in self.matchers)


@dataclass(frozen=True)
class Not(_Composable):
    """Invert a matcher."""
    matcher: Matcher

    def matches(self, candidate: Descriptor) -> bool:
        return not self.matcher.matches(candidate)
