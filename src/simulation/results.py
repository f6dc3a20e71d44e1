"""Per-item simulation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Failure reasons
NO_ENROLLMENT = "no_enrollment"
NO_CARD_ENROLLMENTS = "no_card_enrollments"
NO_QUESTION_CARDS = "no_question_cards"
REMOTE_ERROR = "remote_error"

REASON_MESSAGES = {
    NO_ENROLLMENT: "No learning item enrollment found",
    NO_CARD_ENROLLMENTS: "No card enrollments found",
    NO_QUESTION_CARDS: "No question card enrollments found (only non-question cards present)",
    REMOTE_ERROR: "Ethos API request failed",
}


@dataclass
class QuizStats:
    """Counters for one quiz answering run."""

    total_questions: int = 0
    desired_correct: int = 0
    answered: int = 0
    correct_targeted: int = 0
    option_not_found: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_questions": self.total_questions,
            "desired_correct": self.desired_correct,
            "answered": self.answered,
            "correct_targeted": self.correct_targeted,
            "option_not_found": self.option_not_found,
        }


@dataclass
class ItemResult:
    """Outcome of completing a lesson or answering a quiz for one user."""

    ok: bool
    kind: str  # "lesson" or "quiz"
    enrollment_id: str | None = None
    user_id: str | None = None
    learning_item_id: str | None = None
    reason: str | None = None
    error: str | None = None
    final_enrollment: dict[str, Any] | None = None
    stats: QuizStats | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    debug_samples: list[dict[str, Any]] | None = None

    @classmethod
    def failure(cls, kind: str, reason: str, error: str | None = None, **kwargs: Any) -> ItemResult:
        return cls(ok=False, kind=kind, reason=reason, error=error or REASON_MESSAGES.get(reason), **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "kind": self.kind,
            "enrollment_id": self.enrollment_id,
            "user_id": self.user_id,
            "learning_item_id": self.learning_item_id,
        }
        if not self.ok:
            data["reason"] = self.reason
            data["error"] = self.error
        if self.final_enrollment is not None:
            data["final_enrollment"] = self.final_enrollment
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        if self.meta:
            data["meta"] = self.meta
        if self.debug_samples is not None:
            data["debug_samples"] = self.debug_samples
        return data
