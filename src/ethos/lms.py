"""
Ethos LMS endpoints used by the enrollment engine.

Typed access to course enrollments, learning item enrollments, card
enrollments, cards and invitations. Single-request methods raise
EthosApiError; walking methods are tolerant (see CollectionWalker.walk).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .client import MERGE_PATCH_HEADERS, EthosClient
from .listing import CollectionWalker, collection_members
from .records import normalize_card_enrollment, normalize_item_enrollment

COURSE_ENROLLMENTS = "/v1/course_enrollments"
ITEM_ENROLLMENTS = "/v1/learning_item_enrollments"
CARD_ENROLLMENTS = "/v1/card_enrollments"
CARDS = "/v1/cards"
INVITATIONS = "/v1/invitations"

NEWEST_FIRST = ("order[updatedAt]", "desc")


@dataclass
class CourseEnrollmentListing:
    """Course enrollments for a set of users, and how they were found."""

    enrollments: list[dict[str, Any]] = field(default_factory=list)
    used_course_filter: bool = False


class EthosLmsApi:
    """Remote learning-management operations on top of EthosClient."""

    def __init__(self, client: EthosClient):
        self.client = client
        self.walker = CollectionWalker(client)

    # =========================================================================
    # Course Enrollments
    # =========================================================================

    async def walk_course_enrollments(
        self,
        course_id: str | None,
        page_size: int = 500,
        max_pages: int = 25,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, Any]] = [NEWEST_FIRST]
        if course_id:
            params.append(("courseId", course_id))
        return await self.walker.walk(COURSE_ENROLLMENTS, params, page_size=page_size, max_pages=max_pages)

    async def course_enrollments_best_effort(
        self,
        course_id: str | None,
        user_ids: tuple[str, ...] | list[str] = (),
        page_size: int = 500,
        max_pages: int = 25,
    ) -> CourseEnrollmentListing:
        """
        Course enrollments for the given users.

        Tries the courseId filter first and falls back to an unfiltered walk
        when that yields nothing. The user filter is always applied locally
        since server-side user filtering is unreliable on some tenants.
        """
        enrollments: list[dict[str, Any]] = []
        used_course_filter = False

        if course_id:
            enrollments = await self.walk_course_enrollments(course_id, page_size, max_pages)
            used_course_filter = bool(enrollments)

        if not enrollments:
            enrollments = await self.walk_course_enrollments(None, page_size, max_pages)

        enrollments = [ce for ce in enrollments if isinstance(ce, dict)]
        wanted = set(user_ids or ())
        if wanted:
            enrollments = [ce for ce in enrollments if ce.get("userId") in wanted]

        logger.debug(
            f"Course enrollments: {len(enrollments)} (course filter used: {used_course_filter})"
        )
        return CourseEnrollmentListing(enrollments=enrollments, used_course_filter=used_course_filter)

    async def get_course_enrollment(self, course_enrollment_id: str) -> dict[str, Any]:
        return await self.client.get(f"{COURSE_ENROLLMENTS}/{course_enrollment_id}")

    async def item_enrollments_of_course_enrollment(self, course_enrollment_id: str) -> list[Any]:
        """Item enrollments subresource; entries may be full records or bare refs."""
        data = await self.client.get(f"{COURSE_ENROLLMENTS}/{course_enrollment_id}/learning_item_enrollments")
        return [normalize_item_enrollment(e) for e in collection_members(data)]

    # =========================================================================
    # Learning Item Enrollments
    # =========================================================================

    async def get_item_enrollment(self, enrollment_id: str) -> dict[str, Any]:
        return normalize_item_enrollment(await self.client.get(f"{ITEM_ENROLLMENTS}/{enrollment_id}"))

    async def list_item_enrollments(
        self,
        learning_item_ids: tuple[str, ...] | list[str],
        user_ids: tuple[str, ...] | list[str],
        page_size: int = 500,
    ) -> list[dict[str, Any]]:
        """Bulk filter with repeated learningItemId[] and courseEnrollment.userId[] params."""
        params: list[tuple[str, Any]] = [("learningItemId[]", i) for i in learning_item_ids if i]
        params += [("courseEnrollment.userId[]", u) for u in user_ids if u]
        records = await self.walker.list(ITEM_ENROLLMENTS, params, page_size=page_size)
        return [normalize_item_enrollment(e) for e in records]

    async def list_item_enrollments_for_item(self, learning_item_id: str, page_size: int = 500) -> list[dict[str, Any]]:
        params = [("learningItemId", learning_item_id), NEWEST_FIRST]
        records = await self.walker.list(ITEM_ENROLLMENTS, params, page_size=page_size)
        return [normalize_item_enrollment(e) for e in records]

    async def list_recent_item_enrollments(self, page_size: int = 100) -> list[dict[str, Any]]:
        records = await self.walker.list(ITEM_ENROLLMENTS, [NEWEST_FIRST], page_size=page_size)
        return [normalize_item_enrollment(e) for e in records]

    async def walk_item_enrollments(
        self,
        page_size: int = 200,
        max_pages: int = 10,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        records = await self.walker.walk(
            ITEM_ENROLLMENTS, [NEWEST_FIRST], page_size=page_size, max_pages=max_pages, timeout=timeout
        )
        return [normalize_item_enrollment(e) for e in records]

    async def complete_item_enrollment(self, enrollment_id: str) -> Any:
        return await self.client.post(f"{ITEM_ENROLLMENTS}/{enrollment_id}/complete", {})

    # =========================================================================
    # Card Enrollments / Cards
    # =========================================================================

    async def card_enrollments_of(self, item_enrollment_id: str) -> list[Any]:
        data = await self.client.get(f"{ITEM_ENROLLMENTS}/{item_enrollment_id}/card_enrollments")
        return [normalize_card_enrollment(e) for e in collection_members(data)]

    async def get_card_enrollment(self, card_enrollment_id: str) -> dict[str, Any]:
        return normalize_card_enrollment(await self.client.get(f"{CARD_ENROLLMENTS}/{card_enrollment_id}"))

    async def get_card(self, card_id: str) -> dict[str, Any]:
        return await self.client.get(f"{CARDS}/{card_id}")

    async def answer_card_enrollment(self, card_enrollment_id: str, payload: dict[str, Any]) -> Any:
        return await self.client.patch(
            f"{CARD_ENROLLMENTS}/{card_enrollment_id}", payload, headers=MERGE_PATCH_HEADERS
        )

    async def complete_card_enrollment(self, card_enrollment_id: str) -> Any:
        return await self.client.post(f"{CARD_ENROLLMENTS}/{card_enrollment_id}/complete", {})

    # =========================================================================
    # Invitations
    # =========================================================================

    async def enroll_invitation(self, invitation_id: str, enroll_user_id: str) -> Any:
        """Create course, item and card enrollments for a user from an invitation."""
        return await self.client.post(
            f"{INVITATIONS}/{invitation_id}/enroll",
            {"enrollUserId": enroll_user_id, "autoEnrollId": None},
        )
