from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class TransactionResult(Generic[T]):
    """
    Outcome of a batch transaction call.

    Write failures are reported here, never raised: callers inspect
    ``failed``, ``failed_entities`` and ``messages``. On completion
    ``passed + failed == total_entities``; a cancelled call may leave
    entities that were neither attempted nor counted.
    """
    total_entities: int = 0
    passed: int = 0
    failed: int = 0
    messages: list[str] = field(default_factory=list)
    failed_entities: list[T] = field(default_factory=list)
    cancelled: bool = False

    @property
    def is_complete(self) -> bool:
        return self.passed + self.failed == self.total_entities

    @property
    def succeeded(self) -> bool:
        return self.failed == 0 and self.is_complete

    def merge(self, other: "TransactionResult[T]") -> "TransactionResult[T]":
        """Return a new result combining both; neither operand is modified."""
        return TransactionResult(
            total_entities=self.total_entities + other.total_entities,
            passed=self.passed + other.passed,
            failed=self.failed + other.failed,
            messages=[*self.messages, *other.messages],
            failed_entities=[*self.failed_entities, *other.failed_entities],
            cancelled=self.cancelled or other.cancelled,
        )

    def map_failed(self, fn: Callable[[T], U]) -> "TransactionResult[U]":
        return replace(
            self,
            messages=list(self.messages),
            failed_entities=[fn(e) for e in self.failed_entities],
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_entities": self.total_entities,
            "passed": self.passed,
            "failed": self.failed,
            "messages": list(self.messages),
            "failed_entities": list(self.failed_entities),
            "cancelled": self.cancelled,
        }
