"""Lesson Completion Driver."""

from __future__ import annotations

from loguru import logger

from src.ethos.lms import EthosLmsApi

from .results import NO_ENROLLMENT, ItemResult


class LessonCompletionDriver:
    """Marks a lesson enrollment complete and returns the settled record. No retries."""

    def __init__(self, api: EthosLmsApi):
        self.api = api

    async def complete(self, enrollment_id: str | None, user_id: str | None = None) -> ItemResult:
        """
        Complete a lesson enrollment.

        Completing an already completed enrollment is accepted by Ethos and
        returns the same record shape.

        Raises:
            EthosApiError: When the completion or the follow-up fetch fails
        """
        if not enrollment_id:
            return ItemResult.failure("lesson", NO_ENROLLMENT, user_id=user_id)

        await self.api.complete_item_enrollment(enrollment_id)
        final_enrollment = await self.api.get_item_enrollment(enrollment_id)
        logger.debug(f"Lesson enrollment {enrollment_id} completed for user {user_id}")
        return ItemResult(
            ok=True,
            kind="lesson",
            enrollment_id=enrollment_id,
            user_id=user_id,
            final_enrollment=final_enrollment,
        )
