"""
Enrollment data model.

Queries, discovered enrollment references and per-strategy discovery results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Query / Result Types
# =============================================================================


def _clean_ids(values: Any, name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
        raise TypeError(f"{name} must be a sequence of ids, got {type(values).__name__}")
    return tuple(str(v).strip() for v in values if v is not None and str(v).strip())


@dataclass(frozen=True)
class EnrollmentQuery:
    """What to look for: target learning items, users and optionally the course."""

    learning_item_ids: tuple[str, ...] = ()
    user_ids: tuple[str, ...] = ()
    course_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "learning_item_ids", _clean_ids(self.learning_item_ids, "learning_item_ids"))
        object.__setattr__(self, "user_ids", _clean_ids(self.user_ids, "user_ids"))
        object.__setattr__(self, "course_id", (self.course_id or "").strip() or None)


@dataclass
class EnrollmentRef:
    """A user's enrollment in one learning item."""

    learning_item_id: str
    enrollment_id: str
    user_id: str | None = None
    course_enrollment_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "learning_item_id": self.learning_item_id,
            "user_id": self.user_id,
            "enrollment_id": self.enrollment_id,
            "course_enrollment_id": self.course_enrollment_id,
        }


@dataclass
class DiscoveryResult:
    """Outcome of one discovery strategy."""

    strategy: str
    enrollments: list[EnrollmentRef] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.enrollments)

    def summary(self) -> dict[str, Any]:
        """Diagnostic view without the full enrollment list."""
        data: dict[str, Any] = {"strategy": self.strategy, "count": len(self.enrollments), **self.meta}
        if self.error:
            data["error"] = self.error
        return data
