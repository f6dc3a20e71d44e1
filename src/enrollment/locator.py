"""
Enrollment Locator.

Composes the discovery strategies into:
- resolve(): best-effort selector, fixed priority, stops at the first
  non-empty result
- diagnose(): runs every strategy without stopping, for operators
- build_lookup(): (user id, learning item id) -> enrollment id table

Usage:
    locator = EnrollmentLocator(EthosLmsApi(client))
    result = await locator.resolve(EnrollmentQuery(item_ids, user_ids, course_id))
    lookup = await locator.build_lookup(result.enrollments)
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from src.ethos.client import EthosApiError
from src.ethos.lms import EthosLmsApi
from src.ethos.references import extract_id, last_path_segment

from .cache import CourseEnrollmentUserCache
from .models import DiscoveryResult, EnrollmentQuery, EnrollmentRef
from .pool import DEFAULT_CONCURRENCY, map_with_concurrency
from .strategies import (
    BulkFilterStrategy,
    CourseTraversalStrategy,
    DiscoveryStrategy,
    PagedLocalFilterStrategy,
    PerItemStrategy,
    RecentUnfilteredStrategy,
)

EnrollmentLookup = dict[tuple[str, str], str]

SAMPLE_HYDRATE_LIMIT = 25


class EnrollmentLocator:
    """Finds learning item enrollments that Ethos created for users."""

    def __init__(
        self,
        api: EthosLmsApi,
        cache: CourseEnrollmentUserCache | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        per_item_cap: int = 20,
    ):
        self.api = api
        self.cache = cache if cache is not None else CourseEnrollmentUserCache()
        self.concurrency = concurrency

        self.course_traversal = CourseTraversalStrategy(api, concurrency=concurrency)
        self.paged_local = PagedLocalFilterStrategy(api, page_size=200, max_pages=10)
        self.bulk = BulkFilterStrategy(api)
        self.per_item = PerItemStrategy(api, item_cap=per_item_cap)
        self.recent = RecentUnfilteredStrategy(api)
        # Diagnostics may wait longer but reads fewer pages
        self.paged_local_probe = PagedLocalFilterStrategy(api, page_size=200, max_pages=3, request_timeout=90.0)

    def selection_order(self, query: EnrollmentQuery) -> list[DiscoveryStrategy]:
        """Strategies tried by resolve(), in priority order."""
        order: list[DiscoveryStrategy] = []
        if query.course_id:
            order += [self.course_traversal, self.paged_local]
        order += [self.bulk, self.per_item]
        return order

    async def resolve(self, query: EnrollmentQuery) -> DiscoveryResult:
        """
        Best-effort enrollment lookup.

        Each strategy runs at most once; the first non-empty result wins.
        A failing strategy counts as empty.
        """
        attempted: list[dict[str, Any]] = []
        for strategy in self.selection_order(query):
            result = await strategy.resolve(query)
            if result.found:
                logger.info(f"Resolved {len(result.enrollments)} enrollments via {strategy.name}")
                result.meta["attempted"] = attempted
                return result
            attempted.append(result.summary())

        logger.debug(f"No enrollments resolved for {len(query.learning_item_ids)} items")
        return DiscoveryResult("none", meta={"attempted": attempted})

    async def diagnose(self, query: EnrollmentQuery, mode: str = "full") -> list[DiscoveryResult]:
        """
        Run every strategy and report each outcome.

        mode="light" only probes connectivity with recent_unfiltered.
        """
        if mode != "full":
            result = await self.recent.resolve(query)
            result.meta["note"] = "light diagnostics only"
            return [result]

        results = [
            await self.bulk.resolve(query),
            await self.per_item.resolve(query),
            await self.recent.resolve(query),
            await self.paged_local_probe.resolve(query),
            await self.course_traversal.resolve(query),
        ]
        for result in results:
            logger.debug(f"Diagnostics {result.strategy}: {result.summary()}")
        return results

    async def sample_course_enrollment(self, query: EnrollmentQuery) -> dict[str, Any]:
        """
        Inspect the first course enrollment of the target users.

        Reports how many item enrollments it has, which learning items they
        point at, and how many of those are targets.
        """
        listing = await self.api.course_enrollments_best_effort(query.course_id, query.user_ids, 200, 5)
        first = next(
            (ce for ce in listing.enrollments if extract_id(ce.get("id") or ce.get("@id"))),
            None,
        )
        report: dict[str, Any] = {
            "courseEnrollments": len(listing.enrollments),
            "usedCourseIdFilter": listing.used_course_filter,
            "sample": None,
        }
        if first is None:
            return report

        ce_id = extract_id(first.get("id") or first.get("@id"))
        try:
            children = await self.api.item_enrollments_of_course_enrollment(ce_id)
        except EthosApiError as e:
            report["sample"] = {"courseEnrollmentId": ce_id, "userId": first.get("userId"), "error": str(e)}
            return report

        child_ids = [i for i in (extract_id(c) for c in children) if i]

        async def item_of(enrollment_id: str) -> str | None:
            try:
                detail = await self.api.get_item_enrollment(enrollment_id)
            except EthosApiError as e:
                logger.debug(f"Sample item enrollment {enrollment_id} unavailable: {e}")
                return None
            if not isinstance(detail, dict):
                return None
            return extract_id(detail.get("learningItemId"))

        item_ids = [
            i for i in await map_with_concurrency(child_ids[:SAMPLE_HYDRATE_LIMIT], item_of, self.concurrency) if i
        ]
        targets = set(query.learning_item_ids)
        report["sample"] = {
            "courseEnrollmentId": ce_id,
            "userId": first.get("userId"),
            "learningItemEnrollmentsCount": len(children),
            "firstLearningItemIds": item_ids[:SAMPLE_HYDRATE_LIMIT],
            "intersectionCount": len([i for i in item_ids if i in targets]),
        }
        return report

    async def course_enrollment_user_id(self, course_enrollment: Any) -> str | None:
        """User id owning a course enrollment, memoized (misses included)."""
        if isinstance(course_enrollment, dict) and course_enrollment.get("userId"):
            return course_enrollment["userId"]

        if isinstance(course_enrollment, dict):
            ce_id = extract_id(course_enrollment)
        else:
            ce_id = last_path_segment(course_enrollment)
        if not ce_id:
            return None

        if ce_id in self.cache:
            return self.cache.get(ce_id)

        try:
            record = await self.api.get_course_enrollment(ce_id)
            user_id = record.get("userId") if isinstance(record, dict) else None
        except EthosApiError as e:
            logger.warning(f"Course enrollment {ce_id} lookup failed: {e}")
            user_id = None

        self.cache.put(ce_id, user_id)
        return user_id

    async def build_lookup(self, enrollments: list[EnrollmentRef]) -> EnrollmentLookup:
        """
        (user id, learning item id) -> enrollment id.

        Refs without a user id are attributed through their course enrollment.
        Duplicate keys: last one wins.
        """
        lookup: EnrollmentLookup = {}
        for ref in enrollments:
            user_id = ref.user_id
            if not user_id and ref.course_enrollment_id:
                user_id = await self.course_enrollment_user_id(ref.course_enrollment_id)
            if not user_id or not ref.learning_item_id or not ref.enrollment_id:
                continue
            lookup[(user_id, ref.learning_item_id)] = ref.enrollment_id
        return lookup
