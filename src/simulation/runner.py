"""
Batch Simulation Runner.

Takes a published snapshot (the users, lessons and quizzes created in
Ethos), decides learner outcomes, waits once for the whole batch of
enrollments, then completes lessons and answers quizzes per user.

A failure for one user/item is recorded in the report and never aborts
the rest of the batch.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.enrollment.cache import CourseEnrollmentUserCache
from src.enrollment.invitations import enroll_invitations_best_effort
from src.enrollment.locator import EnrollmentLocator
from src.enrollment.models import EnrollmentQuery
from src.enrollment.reconcile import ReconciliationLoop
from src.ethos.client import EthosApiError, EthosClient
from src.ethos.lms import EthosLmsApi
from src.ethos.references import extract_uuid

from .lesson import LessonCompletionDriver
from .outcomes import OutcomeRates, UserOutcome, simulate_outcomes, summarize
from .quiz import QuizAnsweringEngine
from .results import REMOTE_ERROR, ItemResult


def _item_id(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return extract_uuid(entry)
    item = entry.get("learningItem", entry)
    if isinstance(item, dict):
        return extract_uuid(item.get("id") or item.get("@id"))
    return extract_uuid(item)


@dataclass
class PublishedSnapshot:
    """Ids of what was published to Ethos."""

    user_ids: list[str] = field(default_factory=list)
    lesson_ids: list[str] = field(default_factory=list)
    quiz_ids: list[str] = field(default_factory=list)
    course_id: str | None = None

    @property
    def learning_item_ids(self) -> list[str]:
        return self.lesson_ids + self.quiz_ids

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_course_id: str | None = None) -> PublishedSnapshot:
        """
        Parse a publish result.

        Expected keys: users[].id, lessons[].learningItem, quizzes[].learningItem,
        and optionally courseRef.id / courseId.
        """
        if not isinstance(data, dict):
            raise TypeError("published snapshot must be a JSON object")

        users = data.get("users") or []
        lessons = data.get("lessons") or []
        quizzes = data.get("quizzes") or []

        course_ref = data.get("courseRef") if isinstance(data.get("courseRef"), dict) else {}
        course_id = course_ref.get("id") or data.get("courseId")
        if not course_id and lessons and isinstance(lessons[0], dict):
            item = lessons[0].get("learningItem")
            if isinstance(item, dict):
                course_id = extract_uuid(item.get("course"))

        return cls(
            user_ids=[u["id"] for u in users if isinstance(u, dict) and u.get("id")],
            lesson_ids=[i for i in (_item_id(x) for x in lessons) if i],
            quiz_ids=[i for i in (_item_id(x) for x in quizzes) if i],
            course_id=course_id or default_course_id,
        )


class SimulationRunner:
    """Orchestrates one simulate request against Ethos."""

    def __init__(
        self,
        api: EthosLmsApi,
        locator: EnrollmentLocator,
        reconciler: ReconciliationLoop,
        quiz_engine: QuizAnsweringEngine,
        lesson_driver: LessonCompletionDriver,
        rates: OutcomeRates | None = None,
        rng: random.Random | None = None,
    ):
        self.api = api
        self.locator = locator
        self.reconciler = reconciler
        self.quiz_engine = quiz_engine
        self.lesson_driver = lesson_driver
        self.rates = rates or OutcomeRates()
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(cls, client: EthosClient, settings, rng: random.Random | None = None) -> SimulationRunner:
        """Wire the engine with a fresh per-request cache."""
        api = EthosLmsApi(client)
        locator = EnrollmentLocator(
            api,
            cache=CourseEnrollmentUserCache(),
            concurrency=settings.hydration_concurrency,
            per_item_cap=settings.per_item_cap,
        )

        async def kickoff(query: EnrollmentQuery) -> dict[str, int]:
            attempted = await enroll_invitations_best_effort(
                api, query.course_id, query.user_ids, settings.hydration_concurrency
            )
            return {"attempted": attempted}

        reconciler = ReconciliationLoop(
            locator,
            kickoff=kickoff,
            timeout_seconds=settings.enrollment_timeout_seconds,
            poll_seconds=settings.enrollment_poll_seconds,
        )
        quiz_engine = QuizAnsweringEngine(
            api,
            concurrency=settings.hydration_concurrency,
            card_poll_attempts=settings.card_poll_attempts,
            card_poll_seconds=settings.card_poll_seconds,
            score_poll_attempts=settings.score_poll_attempts,
            score_poll_seconds=settings.score_poll_seconds,
            rng=rng,
        )
        rates = OutcomeRates(
            lesson_completion_rate=settings.lesson_completion_rate,
            quiz_participation_rate=settings.quiz_participation_rate,
            quiz_score_mean=settings.quiz_score_mean,
            quiz_score_std=settings.quiz_score_std,
        )
        return cls(api, locator, reconciler, quiz_engine, LessonCompletionDriver(api), rates, rng)

    async def _complete_lesson(self, enrollment_id: str | None, user_id: str, item_id: str) -> ItemResult:
        try:
            result = await self.lesson_driver.complete(enrollment_id, user_id)
        except EthosApiError as e:
            logger.warning(f"Completing lesson {item_id} for {user_id} failed: {e}")
            result = ItemResult.failure("lesson", REMOTE_ERROR, str(e), enrollment_id=enrollment_id, user_id=user_id)
        result.learning_item_id = item_id
        return result

    async def _answer_quiz(
        self, enrollment_id: str | None, user_id: str, item_id: str, percent: int, debug: bool
    ) -> ItemResult:
        try:
            result = await self.quiz_engine.answer(enrollment_id, user_id, percent, debug=debug)
        except EthosApiError as e:
            logger.warning(f"Answering quiz {item_id} for {user_id} failed: {e}")
            result = ItemResult.failure("quiz", REMOTE_ERROR, str(e), enrollment_id=enrollment_id, user_id=user_id)
        result.learning_item_id = item_id
        return result

    async def _simulate_user(
        self, outcome: UserOutcome, lookup: dict[tuple[str, str], str], debug: bool
    ) -> dict[str, Any]:
        user_id = outcome.user_id
        lessons: list[ItemResult] = []
        quizzes: list[ItemResult] = []
        misses: list[dict[str, str]] = []

        for lesson in outcome.lessons:
            if not lesson.completed:
                continue
            enrollment_id = lookup.get((user_id, lesson.learning_item_id))
            result = await self._complete_lesson(enrollment_id, user_id, lesson.learning_item_id)
            if not result.ok:
                misses.append({"type": "lesson", "learning_item_id": lesson.learning_item_id, "reason": result.reason})
            lessons.append(result)

        for quiz in outcome.quizzes:
            if not quiz.took or quiz.percent_correct is None:
                continue
            enrollment_id = lookup.get((user_id, quiz.learning_item_id))
            result = await self._answer_quiz(enrollment_id, user_id, quiz.learning_item_id, quiz.percent_correct, debug)
            if not result.ok:
                misses.append({"type": "quiz", "learning_item_id": quiz.learning_item_id, "reason": result.reason})
            quizzes.append(result)

        return {
            "user_id": user_id,
            "completed_lessons": [r.to_dict() for r in lessons],
            "completed_quizzes": [r.to_dict() for r in quizzes],
            "enrollment_misses": misses,
        }

    async def run(self, snapshot: PublishedSnapshot, debug: bool = False) -> dict[str, Any]:
        """Simulate learner activity for a published snapshot and report per user."""
        outcomes = simulate_outcomes(
            snapshot.user_ids, snapshot.lesson_ids, snapshot.quiz_ids, self.rates, self.rng
        )
        query = EnrollmentQuery(
            learning_item_ids=snapshot.learning_item_ids,
            user_ids=snapshot.user_ids,
            course_id=snapshot.course_id,
        )

        # One wait for the whole batch, not per user
        wait = await self.reconciler.run(query)

        run_diagnostics = debug or not wait.enrollments
        if run_diagnostics:
            enrollment_debug = [r.summary() for r in await self.locator.diagnose(query)]
        else:
            enrollment_debug = [
                {"strategy": "skipped", "reason": "enrollments_found", "found_enrollments": len(wait.enrollments)}
            ]
        course_enrollment_debug = None
        if run_diagnostics and query.course_id:
            course_enrollment_debug = await self.locator.sample_course_enrollment(query)

        lookup = await self.locator.build_lookup(wait.enrollments)
        logger.info(f"Enrollment lookup built: {len(lookup)} user/item pairs")

        per_user = [await self._simulate_user(outcome, lookup, debug) for outcome in outcomes]

        return {
            "ok": True,
            "course_id": query.course_id,
            "enrollment_wait": wait.to_dict(),
            "enrollment_debug": enrollment_debug,
            "course_enrollment_debug": course_enrollment_debug,
            "simulation": summarize(outcomes, self.rates),
            "per_user_results": per_user,
        }
