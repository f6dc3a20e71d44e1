"""
Invitation kickoff.

Users can sit on pending invitations without Ethos ever materializing their
learning item enrollments. Enrolling each invitation on the user's behalf
creates the course, item and card enrollment records.
"""

from __future__ import annotations

from loguru import logger

from src.ethos.client import EthosApiError
from src.ethos.lms import EthosLmsApi
from src.ethos.references import extract_id

from .pool import DEFAULT_CONCURRENCY, map_with_concurrency


async def enroll_invitations_best_effort(
    api: EthosLmsApi,
    course_id: str,
    user_ids: tuple[str, ...] | list[str] = (),
    concurrency: int = DEFAULT_CONCURRENCY,
) -> int:
    """
    Enroll every pending invitation found on the users' course enrollments.

    Individual enroll calls may fail (already enrolled, forbidden); those are
    logged and skipped.

    Returns:
        Number of distinct (invitation, user) pairs attempted
    """
    listing = await api.course_enrollments_best_effort(course_id, user_ids)

    jobs: list[tuple[str, str]] = []
    seen: set[tuple[str, str]] = set()
    for ce in listing.enrollments:
        user_id = ce.get("userId")
        invitations = ce.get("invitations")
        if not user_id or not isinstance(invitations, list):
            continue
        for invitation in invitations:
            invitation_id = extract_id(invitation)
            if not invitation_id:
                continue
            # Same invitation can appear in several representations
            key = (invitation_id, user_id)
            if key in seen:
                continue
            seen.add(key)
            jobs.append(key)

    async def enroll(job: tuple[str, str]) -> bool:
        invitation_id, user_id = job
        try:
            await api.enroll_invitation(invitation_id, user_id)
            return True
        except EthosApiError as e:
            logger.debug(f"Enrolling invitation {invitation_id} for user {user_id} skipped: {e}")
            return False

    results = await map_with_concurrency(jobs, enroll, concurrency)
    logger.info(f"Invitation kickoff for course {course_id}: {sum(results)}/{len(jobs)} enrolled")
    return len(jobs)
