"""
Domain: tagged results for sale operations.

Operations return Ok(value) or Err(kind, message, violations) instead of
raising across layers. Err always carries the full batch of violations
collected by validation, never just the first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Sequence, TypeVar, Union

from .errors import ErrorKind
from .validation import Violation

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    kind: ErrorKind
    message: str
    violations: tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def is_ok(self) -> bool:
        return False

    @staticmethod
    def validation(violations: Sequence[Violation]) -> "Err":
        return Err(
            kind=ErrorKind.DOMAIN_VALIDATION,
            message="One or more domain validation errors occurred.",
            violations=tuple(violations),
        )

    @staticmethod
    def from_exception(exc: Any) -> "Err":
        """Build an Err from any exception that carries a `kind` attribute."""

        kind = getattr(exc, "kind", ErrorKind.DOMAIN_VALIDATION)
        return Err(kind=kind, message=str(exc))


Result = Union[Ok[T], Err]


__all__ = ["Ok", "Err", "Result"]
