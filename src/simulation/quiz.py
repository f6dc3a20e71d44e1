"""
Quiz Answering Engine.

Drives a learner's quiz enrollment to a target score:

1. Wait (bounded) for the card enrollments of the quiz to exist
2. Classify cards: only multiple choice / true-false cards are questions
3. Plan answers: the first round(target% * questions) are answered
   correctly, the rest incorrectly
4. Answer each question, best-effort submit it, then complete the quiz
5. Wait (bounded) for the grade to settle

Missing enrollments and quizzes without question cards come back as
ItemResult failures, never exceptions.
"""

from __future__ import annotations

import asyncio
import json
import math
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from src.enrollment.pool import DEFAULT_CONCURRENCY, map_with_concurrency
from src.ethos.client import EthosApiError
from src.ethos.lms import EthosLmsApi
from src.ethos.references import extract_id

from .results import NO_CARD_ENROLLMENTS, NO_ENROLLMENT, NO_QUESTION_CARDS, REMOTE_ERROR, ItemResult, QuizStats

QUESTION_BLOCK_TYPES = ("multipleChoice", "trueFalse")
DEBUG_SAMPLE_LIMIT = 3


# =============================================================================
# Card Classification
# =============================================================================


def parse_card_json(value: Any) -> dict[str, Any] | None:
    """Card content may arrive as an object or as a JSON string."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def question_block(card: Any) -> dict[str, Any] | None:
    """First question-type content block of a card."""
    content = parse_card_json(card.get("json")) if isinstance(card, dict) else None
    for block in (content or {}).get("contentBlocks") or []:
        if isinstance(block, dict) and block.get("type") in QUESTION_BLOCK_TYPES:
            return block
    return None


def is_question_card(card: Any) -> bool:
    if question_block(card) is not None:
        return True
    content = parse_card_json(card.get("json")) if isinstance(card, dict) else None
    return bool(content and content.get("templateType") == "multipleChoice")


def pick_option_id(card: Any, correct: bool) -> str | None:
    """
    Id of an option flagged correct (or incorrect).

    Falls back to the first option when the wanted pool is empty; None when
    the card has no options at all.
    """
    block = question_block(card)
    options = [o for o in (block or {}).get("options") or [] if isinstance(o, dict)]
    if not options:
        return None
    pool = [o for o in options if bool(o.get("isCorrect")) == correct]
    chosen = pool[0] if pool else options[0]
    return extract_id(chosen.get("id"))


# =============================================================================
# Answer Planning
# =============================================================================


def desired_correct_count(target_percent: float, total_questions: int) -> int:
    """round(target% * total), half up, clamped to [0, total]."""
    if isinstance(target_percent, bool) or not isinstance(target_percent, (int, float)):
        raise TypeError("target_percent must be a number")
    if not 0 <= target_percent <= 100:
        raise ValueError(f"target_percent must be within [0, 100], got {target_percent}")
    if total_questions <= 0:
        return 0
    desired = math.floor(target_percent / 100 * total_questions + 0.5)
    return max(0, min(total_questions, desired))


def plan_answers(target_percent: float, total_questions: int) -> list[bool]:
    """Correctness per question in discovery order: correct ones first."""
    desired = desired_correct_count(target_percent, total_questions)
    return [i < desired for i in range(total_questions)]


def score_settled(enrollment: Any) -> bool:
    if not isinstance(enrollment, dict):
        return False
    for key in ("score", "percentCorrect"):
        value = enrollment.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return True
    return False


# =============================================================================
# Engine
# =============================================================================


class QuizAnsweringEngine:
    """Answers a quiz enrollment to hit a target percentage."""

    def __init__(
        self,
        api: EthosLmsApi,
        concurrency: int = DEFAULT_CONCURRENCY,
        card_poll_attempts: int = 10,
        card_poll_seconds: float = 0.5,
        score_poll_attempts: int = 10,
        score_poll_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        rng: random.Random | None = None,
    ):
        self.api = api
        self.concurrency = concurrency
        self.card_poll_attempts = max(1, card_poll_attempts)
        self.card_poll_seconds = card_poll_seconds
        self.score_poll_attempts = score_poll_attempts
        self.score_poll_seconds = score_poll_seconds
        self.sleep = sleep
        self.now = now
        self.rng = rng or random.Random()

    async def card_enrollments(self, item_enrollment_id: str) -> list[dict[str, Any]]:
        """Card enrollments of a quiz, hydrating bare refs that lack a cardId."""
        refs = await self.api.card_enrollments_of(item_enrollment_id)

        async def hydrate(ref: Any) -> Any:
            ref_id = extract_id(ref)
            if ref_id and not (isinstance(ref, dict) and ref.get("cardId")):
                try:
                    return await self.api.get_card_enrollment(ref_id)
                except EthosApiError as e:
                    logger.debug(f"Card enrollment {ref_id} hydration failed: {e}")
            return ref

        hydrated = await map_with_concurrency(refs, hydrate, self.concurrency)
        return [e for e in hydrated if isinstance(e, dict)]

    async def _wait_for_card_enrollments(self, item_enrollment_id: str) -> list[dict[str, Any]]:
        enrollments: list[dict[str, Any]] = []
        for attempt in range(self.card_poll_attempts):
            try:
                enrollments = await self.card_enrollments(item_enrollment_id)
            except EthosApiError as e:
                logger.debug(f"Card enrollments of {item_enrollment_id} not available yet: {e}")
                enrollments = []
            if enrollments:
                break
            if attempt < self.card_poll_attempts - 1:
                await self.sleep(self.card_poll_seconds)
        return enrollments

    async def _question_entries(
        self, eligible: list[dict[str, Any]]
    ) -> tuple[list[tuple[dict[str, Any], dict[str, Any]]], int]:
        """Return (question entries, number of cards that could not be fetched)."""
        failures = 0

        async def classify(card_enrollment: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]] | None:
            nonlocal failures
            try:
                card = await self.api.get_card(card_enrollment["cardId"])
            except EthosApiError as e:
                logger.warning(f"Card {card_enrollment['cardId']} unavailable: {e}")
                failures += 1
                return None
            if not isinstance(card, dict):
                logger.warning(f"Card {card_enrollment['cardId']} returned no record")
                failures += 1
                return None
            if not is_question_card(card):
                return None
            return card_enrollment, card

        entries = await map_with_concurrency(eligible, classify, self.concurrency)
        return [e for e in entries if e is not None], failures

    def _answer_payload(self, card_enrollment: dict[str, Any], option_id: str) -> dict[str, Any]:
        now = self.now().isoformat()
        return {
            "answer": [option_id],
            "confidence": 100,
            "startedAt": card_enrollment.get("startedAt") or now,
            "completedAt": now,
            "elapsedSec": self.rng.randint(10, 59),
            "progress": 100,
        }

    async def _debug_sample(self, card_enrollment: dict[str, Any]) -> dict[str, Any] | None:
        try:
            after = await self.api.get_card_enrollment(card_enrollment["id"])
        except EthosApiError as e:
            logger.debug(f"Card enrollment {card_enrollment['id']} sample unavailable: {e}")
            return None
        if not isinstance(after, dict):
            return None
        return {
            "card_enrollment_id": card_enrollment["id"],
            "card_id": card_enrollment.get("cardId"),
            "type": after.get("type"),
            "answer": after.get("answer"),
            "score": after.get("score"),
            "percent_correct": after.get("percentCorrect"),
            "graded_at": after.get("gradedAt"),
        }

    async def _fetch_enrollment(self, enrollment_id: str) -> dict[str, Any] | None:
        try:
            enrollment = await self.api.get_item_enrollment(enrollment_id)
        except EthosApiError as e:
            logger.warning(f"Fetching score of {enrollment_id} failed: {e}")
            return None
        return enrollment if isinstance(enrollment, dict) else None

    async def _wait_for_score(self, enrollment_id: str) -> dict[str, Any] | None:
        # The quiz is already completed; a failed fetch keeps the last good record
        enrollment = await self._fetch_enrollment(enrollment_id)
        for _ in range(self.score_poll_attempts):
            if score_settled(enrollment):
                break
            await self.sleep(self.score_poll_seconds)
            latest = await self._fetch_enrollment(enrollment_id)
            if latest is not None:
                enrollment = latest
        return enrollment

    async def answer(
        self,
        enrollment_id: str | None,
        user_id: str | None,
        target_percent: float,
        debug: bool = False,
    ) -> ItemResult:
        """
        Answer a quiz enrollment to approximately target_percent correct.

        Args:
            enrollment_id: Learning item enrollment of the quiz (None fails fast)
            user_id: Learner, for reporting only
            target_percent: Desired percentage correct, 0-100
            debug: Attach re-fetched state of the first answered cards

        Raises:
            EthosApiError: When answering or completing fails
        """
        desired_correct_count(target_percent, 0)  # validates input before any I/O
        if not enrollment_id:
            return ItemResult.failure("quiz", NO_ENROLLMENT, user_id=user_id)

        card_enrollments = await self._wait_for_card_enrollments(enrollment_id)
        eligible = [ce for ce in card_enrollments if ce.get("id") and ce.get("cardId")]
        entries, fetch_failures = await self._question_entries(eligible)

        if not entries:
            error = None
            if not card_enrollments:
                reason = NO_CARD_ENROLLMENTS
            elif fetch_failures and fetch_failures == len(eligible):
                reason = REMOTE_ERROR
                error = f"None of the {fetch_failures} cards could be fetched"
            else:
                reason = NO_QUESTION_CARDS
            return ItemResult.failure(
                "quiz",
                reason,
                error,
                enrollment_id=enrollment_id,
                user_id=user_id,
                meta={
                    "card_enrollments": len(card_enrollments),
                    "eligible": len(eligible),
                    "question_cards": 0,
                    "card_fetch_failures": fetch_failures,
                    "non_question_count": len(eligible) - fetch_failures,
                },
            )

        plan = plan_answers(target_percent, len(entries))
        stats = QuizStats(total_questions=len(entries), desired_correct=sum(plan))
        samples: list[dict[str, Any]] = []

        for (card_enrollment, card), choose_correct in zip(entries, plan):
            option_id = pick_option_id(card, correct=choose_correct)
            if not option_id:
                stats.option_not_found += 1
                continue

            await self.api.answer_card_enrollment(card_enrollment["id"], self._answer_payload(card_enrollment, option_id))
            stats.answered += 1
            if choose_correct:
                stats.correct_targeted += 1

            # Some tenants grade on answer alone and have no submit endpoint
            try:
                await self.api.complete_card_enrollment(card_enrollment["id"])
            except EthosApiError as e:
                logger.debug(f"Card enrollment {card_enrollment['id']} submit skipped: {e}")

            if debug and len(samples) < DEBUG_SAMPLE_LIMIT:
                sample = await self._debug_sample(card_enrollment)
                if sample:
                    samples.append(sample)

        await self.api.complete_item_enrollment(enrollment_id)
        final_enrollment = await self._wait_for_score(enrollment_id)

        logger.info(
            f"Quiz {enrollment_id} answered {stats.answered}/{stats.total_questions} "
            f"(targeting {stats.desired_correct} correct, score settled: {score_settled(final_enrollment)})"
        )
        return ItemResult(
            ok=True,
            kind="quiz",
            enrollment_id=enrollment_id,
            user_id=user_id,
            final_enrollment=final_enrollment,
            stats=stats,
            meta={"score_settled": score_settled(final_enrollment)},
            debug_samples=samples if debug else None,
        )
