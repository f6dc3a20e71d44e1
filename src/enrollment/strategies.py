"""
Enrollment Discovery Strategies.

Ethos creates learning item enrollments asynchronously and tenants differ in
which listing filters actually work. Each strategy here is one independent
way of finding the enrollments for a set of learning items and users:

- bulk_filters: one query with repeated item/user id params
- per_learning_item: one query per item id, bounded prefix of the list
- paged_unfiltered_local_filter: walk everything, filter client-side
- via_course_enrollments: walk course enrollments and hydrate their children
- recent_unfiltered: connectivity probe, diagnostics only

A strategy never raises for remote failures: resolve() turns them into an
empty DiscoveryResult carrying the error message.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from loguru import logger

from src.ethos.client import EthosApiError
from src.ethos.lms import EthosLmsApi
from src.ethos.listing import collection_members
from src.ethos.references import extract_id

from .models import DiscoveryResult, EnrollmentQuery, EnrollmentRef
from .pool import DEFAULT_CONCURRENCY, map_with_concurrency

# Keys under which course enrollments embed their item enrollments
EMBEDDED_ITEM_ENROLLMENT_KEYS = (
    "learningItemEnrollments",
    "learning_item_enrollments",
    "learningItemEnrollment",
    "learning_item_enrollment",
    "learningItemEnrollmentIds",
    "learning_item_enrollment_ids",
)

SAMPLE_ITEM_IDS_LIMIT = 20


def ref_from_item_enrollment(record: Any) -> EnrollmentRef | None:
    """EnrollmentRef from a normalized item enrollment record, or None if incomplete."""
    if not isinstance(record, dict):
        return None
    enrollment_id = extract_id(record.get("id"))
    item_id = extract_id(record.get("learningItemId"))
    if not enrollment_id or not item_id:
        return None

    course_enrollment = record.get("courseEnrollment")
    user_id = record.get("userId")
    if not user_id and isinstance(course_enrollment, dict):
        user_id = course_enrollment.get("userId")

    return EnrollmentRef(
        learning_item_id=item_id,
        enrollment_id=enrollment_id,
        user_id=extract_id(user_id),
        course_enrollment_id=extract_id(course_enrollment),
    )


def embedded_item_enrollments(course_enrollment: dict[str, Any]) -> list[Any]:
    """Item enrollment refs embedded in a course enrollment, in whatever shape the tenant uses."""
    for key in EMBEDDED_ITEM_ENROLLMENT_KEYS:
        value = course_enrollment.get(key)
        if value:
            return collection_members(value)
    return []


# =============================================================================
# Base Strategy
# =============================================================================


class DiscoveryStrategy(ABC):
    """
    One way of locating learning item enrollments.

    Subclasses implement _discover(); resolve() adds applicability checks
    and converts remote failures into empty results.
    """

    name: ClassVar[str] = "base"
    diagnostic_only: ClassVar[bool] = False

    def __init__(self, api: EthosLmsApi):
        self.api = api

    def applicable(self, query: EnrollmentQuery) -> bool:
        """Whether the query carries what this strategy needs."""
        return bool(query.learning_item_ids)

    async def resolve(self, query: EnrollmentQuery) -> DiscoveryResult:
        if not self.applicable(query):
            return DiscoveryResult(self.name, meta={"skipped": True})
        try:
            result = await self._discover(query)
        except EthosApiError as e:
            logger.warning(f"Discovery strategy {self.name} failed: {e}")
            return DiscoveryResult(self.name, error=str(e), meta={"status": e.status})
        logger.debug(f"Discovery strategy {self.name} found {len(result.enrollments)} enrollments")
        return result

    @abstractmethod
    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        """Run the strategy. May raise EthosApiError."""

    @staticmethod
    def _matching(records: list[Any], item_ids: set[str]) -> list[EnrollmentRef]:
        refs = []
        for record in records:
            ref = ref_from_item_enrollment(record)
            if ref and (not item_ids or ref.learning_item_id in item_ids):
                refs.append(ref)
        return refs


# =============================================================================
# Strategies
# =============================================================================


class BulkFilterStrategy(DiscoveryStrategy):
    """Single query with learningItemId[] and courseEnrollment.userId[] filters."""

    name = "bulk_filters"

    def __init__(self, api: EthosLmsApi, page_size: int = 500):
        super().__init__(api)
        self.page_size = page_size

    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        records = await self.api.list_item_enrollments(query.learning_item_ids, query.user_ids, self.page_size)
        refs = self._matching(records, set(query.learning_item_ids))
        return DiscoveryResult(self.name, refs, meta={"fetched": len(records)})


class PerItemStrategy(DiscoveryStrategy):
    """One query per learning item, no user filter."""

    name = "per_learning_item"

    def __init__(self, api: EthosLmsApi, item_cap: int = 20, page_size: int = 500):
        super().__init__(api)
        self.item_cap = item_cap
        self.page_size = page_size

    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        checked = query.learning_item_ids[: self.item_cap]
        refs: list[EnrollmentRef] = []
        fetched = 0
        errors: list[str] = []

        for item_id in checked:
            try:
                records = await self.api.list_item_enrollments_for_item(item_id, self.page_size)
            except EthosApiError as e:
                logger.warning(f"Per-item enrollment lookup failed for {item_id}: {e}")
                errors.append(str(e))
                continue
            fetched += len(records)
            refs.extend(self._matching(records, {item_id}))

        meta: dict[str, Any] = {"fetched": fetched, "itemsChecked": len(checked)}
        if errors:
            meta["itemErrors"] = len(errors)
        # Every item failing means the endpoint itself is unusable
        error = errors[0] if errors and len(errors) == len(checked) else None
        return DiscoveryResult(self.name, refs, meta=meta, error=error)


class PagedLocalFilterStrategy(DiscoveryStrategy):
    """
    Walk the unfiltered item enrollment collection and filter client-side.

    With a course id, records are also restricted to the course enrollments
    of the target users, which yields the user id for each match.
    """

    name = "paged_unfiltered_local_filter"

    def __init__(
        self,
        api: EthosLmsApi,
        page_size: int = 200,
        max_pages: int = 10,
        request_timeout: float | None = None,
        course_page_size: int = 500,
        course_max_pages: int = 10,
    ):
        super().__init__(api)
        self.page_size = page_size
        self.max_pages = max_pages
        self.request_timeout = request_timeout
        self.course_page_size = course_page_size
        self.course_max_pages = course_max_pages

    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        user_by_course_enrollment: dict[str, str] | None = None
        if query.course_id:
            listing = await self.api.course_enrollments_best_effort(
                query.course_id, query.user_ids, self.course_page_size, self.course_max_pages
            )
            user_by_course_enrollment = {}
            for ce in listing.enrollments:
                ce_id = extract_id(ce.get("id") or ce.get("@id"))
                if ce_id and ce.get("userId"):
                    user_by_course_enrollment[ce_id] = ce["userId"]

        records = await self.api.walk_item_enrollments(self.page_size, self.max_pages, self.request_timeout)
        matched = self._matching(records, set(query.learning_item_ids))

        if user_by_course_enrollment is None:
            refs = matched
        else:
            refs = []
            for ref in matched:
                user_id = user_by_course_enrollment.get(ref.course_enrollment_id or "")
                if user_id:
                    ref.user_id = user_id
                    refs.append(ref)

        return DiscoveryResult(
            self.name,
            refs,
            meta={"fetched": len(records), "matchedByLearningItemId": len(matched)},
        )


class CourseTraversalStrategy(DiscoveryStrategy):
    """
    Walk course enrollments of the target users and hydrate their children.

    Embedded item enrollment refs identify the enrollment, not the learning
    item, so each one is fetched to learn its learning item id.
    """

    name = "via_course_enrollments"

    def __init__(
        self,
        api: EthosLmsApi,
        concurrency: int = DEFAULT_CONCURRENCY,
        course_page_size: int = 500,
        course_max_pages: int = 25,
    ):
        super().__init__(api)
        self.concurrency = concurrency
        self.course_page_size = course_page_size
        self.course_max_pages = course_max_pages

    def applicable(self, query: EnrollmentQuery) -> bool:
        return bool(query.course_id)

    async def _child_refs(self, course_enrollment: dict[str, Any], counters: dict[str, int]) -> list[str]:
        embedded = embedded_item_enrollments(course_enrollment)
        if embedded:
            counters["embedded"] += 1
            children = embedded
        else:
            # Embedded shape missing or empty; the subresource may still list them
            counters["subresource"] += 1
            ce_id = extract_id(course_enrollment.get("id") or course_enrollment.get("@id"))
            try:
                children = await self.api.item_enrollments_of_course_enrollment(ce_id)
            except EthosApiError as e:
                logger.warning(f"Item enrollments of course enrollment {ce_id} unavailable: {e}")
                counters["subresourceErrors"] += 1
                return []
            if not children:
                counters["empty"] += 1
        return [i for i in (extract_id(child) for child in children) if i]

    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        listing = await self.api.course_enrollments_best_effort(
            query.course_id, query.user_ids, self.course_page_size, self.course_max_pages
        )

        counters = {"embedded": 0, "subresource": 0, "subresourceErrors": 0, "empty": 0}
        pending: list[EnrollmentRef] = []
        for ce in listing.enrollments:
            ce_id = extract_id(ce.get("id") or ce.get("@id"))
            user_id = ce.get("userId")
            if not ce_id or not user_id:
                continue
            for enrollment_id in await self._child_refs(ce, counters):
                pending.append(
                    EnrollmentRef(
                        learning_item_id="",
                        enrollment_id=enrollment_id,
                        user_id=user_id,
                        course_enrollment_id=ce_id,
                    )
                )

        async def hydrate(ref: EnrollmentRef) -> EnrollmentRef | None:
            try:
                detail = await self.api.get_item_enrollment(ref.enrollment_id)
            except EthosApiError as e:
                logger.warning(f"Hydrating item enrollment {ref.enrollment_id} failed: {e}")
                return None
            if not isinstance(detail, dict):
                logger.warning(f"Hydrating item enrollment {ref.enrollment_id} returned no record")
                return None
            item_id = extract_id(detail.get("learningItemId"))
            if not item_id:
                return None
            ref.learning_item_id = item_id
            return ref

        hydrated = await map_with_concurrency(pending, hydrate, self.concurrency)

        targets = set(query.learning_item_ids)
        refs: list[EnrollmentRef] = []
        sample_item_ids: list[str] = []
        for ref in hydrated:
            if ref is None:
                continue
            if len(sample_item_ids) < SAMPLE_ITEM_IDS_LIMIT and ref.learning_item_id not in sample_item_ids:
                sample_item_ids.append(ref.learning_item_id)
            if targets and ref.learning_item_id not in targets:
                continue
            refs.append(ref)

        return DiscoveryResult(
            self.name,
            refs,
            meta={
                "courseEnrollments": len(listing.enrollments),
                "usedCourseIdFilter": listing.used_course_filter,
                "itemEnrollmentRefs": len(pending),
                "hydrationFailures": sum(1 for r in hydrated if r is None),
                "shapes": counters,
                "sampleLearningItemIds": sample_item_ids,
            },
        )


class RecentUnfilteredStrategy(DiscoveryStrategy):
    """Fetch a small page of recent enrollments to prove access. Diagnostics only."""

    name = "recent_unfiltered"
    diagnostic_only = True

    def __init__(self, api: EthosLmsApi, page_size: int = 50):
        super().__init__(api)
        self.page_size = page_size

    def applicable(self, query: EnrollmentQuery) -> bool:
        return True

    async def _discover(self, query: EnrollmentQuery) -> DiscoveryResult:
        records = await self.api.list_recent_item_enrollments(self.page_size)
        return DiscoveryResult(self.name, meta={"fetched": len(records)})
