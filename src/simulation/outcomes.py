"""
Stochastic learner outcome model.

Decides what each simulated learner does: which lessons they finish, which
quizzes they take, and what percentage they aim for on each quiz.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OutcomeRates:
    lesson_completion_rate: float = 0.8
    quiz_participation_rate: float = 0.7
    quiz_score_mean: float = 0.78
    quiz_score_std: float = 0.12

    def to_dict(self) -> dict[str, float]:
        return {
            "lesson_completion_rate": self.lesson_completion_rate,
            "quiz_participation_rate": self.quiz_participation_rate,
            "quiz_score_mean": self.quiz_score_mean,
            "quiz_score_std": self.quiz_score_std,
        }


@dataclass
class LessonOutcome:
    learning_item_id: str
    completed: bool


@dataclass
class QuizOutcome:
    learning_item_id: str
    took: bool
    percent_correct: int | None = None


@dataclass
class UserOutcome:
    user_id: str
    lessons: list[LessonOutcome] = field(default_factory=list)
    quizzes: list[QuizOutcome] = field(default_factory=list)


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def simulate_outcomes(
    user_ids: list[str],
    lesson_ids: list[str],
    quiz_ids: list[str],
    rates: OutcomeRates | None = None,
    rng: random.Random | None = None,
) -> list[UserOutcome]:
    """Draw lesson completions and quiz scores for every user."""
    rates = rates or OutcomeRates()
    rng = rng or random.Random()

    outcomes = []
    for user_id in user_ids:
        lessons = [LessonOutcome(i, rng.random() < rates.lesson_completion_rate) for i in lesson_ids]
        quizzes = []
        for quiz_id in quiz_ids:
            took = rng.random() < rates.quiz_participation_rate
            percent = None
            if took:
                percent = round(_clamp01(rng.gauss(rates.quiz_score_mean, rates.quiz_score_std)) * 100)
            quizzes.append(QuizOutcome(quiz_id, took, percent))
        outcomes.append(UserOutcome(user_id, lessons, quizzes))
    return outcomes


def summarize(outcomes: list[UserOutcome], rates: OutcomeRates) -> dict[str, Any]:
    lessons = len(outcomes[0].lessons) if outcomes else 0
    quizzes = len(outcomes[0].quizzes) if outcomes else 0
    return {
        "users": len(outcomes),
        "lessons": lessons,
        "quizzes": quizzes,
        "planned_lesson_completions": sum(lesson.completed for o in outcomes for lesson in o.lessons),
        "planned_quiz_attempts": sum(quiz.took for o in outcomes for quiz in o.quizzes),
        **rates.to_dict(),
    }
