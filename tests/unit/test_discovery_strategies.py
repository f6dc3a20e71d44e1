"""
Unit tests for enrollment discovery strategies.
"""

import pytest

from src.enrollment.models import EnrollmentQuery
from src.enrollment.strategies import (
    BulkFilterStrategy,
    CourseTraversalStrategy,
    PagedLocalFilterStrategy,
    PerItemStrategy,
    RecentUnfilteredStrategy,
    embedded_item_enrollments,
    ref_from_item_enrollment,
)
from src.ethos.lms import COURSE_ENROLLMENTS, ITEM_ENROLLMENTS
from tests.fakes import api_error, paged


def item_enrollment(enrollment_id, item_id, course_enrollment_id=None, user_id=None):
    record = {"id": enrollment_id, "learningItem": f"/v1/learning_items/{item_id}"}
    if course_enrollment_id:
        record["courseEnrollment"] = f"/v1/course_enrollments/{course_enrollment_id}"
    if user_id:
        record["userId"] = user_id
    return record


class TestHelpers:
    """Tests for record helpers."""

    def test_ref_from_embedded_course_enrollment(self):
        """Test user id is taken from an embedded course enrollment."""
        ref = ref_from_item_enrollment(
            {"id": "e1", "learningItemId": "i1", "courseEnrollment": {"id": "ce1", "userId": "u1"}}
        )

        assert (ref.enrollment_id, ref.learning_item_id, ref.user_id, ref.course_enrollment_id) == (
            "e1",
            "i1",
            "u1",
            "ce1",
        )

    def test_incomplete_record_skipped(self):
        assert ref_from_item_enrollment({"id": "e1"}) is None

    def test_embedded_shapes(self):
        """Test each embedded key shape is recognized."""
        assert embedded_item_enrollments({"learningItemEnrollments": ["a"]}) == ["a"]
        assert embedded_item_enrollments({"learning_item_enrollment_ids": {"hydra:member": ["b"]}}) == ["b"]
        assert embedded_item_enrollments({"learningItemEnrollments": []}) == []


class TestBulkFilterStrategy:
    """Tests for the bulk filter strategy."""

    @pytest.mark.asyncio
    async def test_only_target_items_returned(self, fake_client, api):
        """Test records for other learning items are dropped."""
        fake_client.route(
            "GET",
            ITEM_ENROLLMENTS,
            [item_enrollment("e1", "i1", user_id="u1"), item_enrollment("e9", "other", user_id="u1")],
        )

        result = await BulkFilterStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"]))

        assert [r.enrollment_id for r in result.enrollments] == ["e1"]
        assert result.meta["fetched"] == 2

    @pytest.mark.asyncio
    async def test_remote_failure_becomes_empty_result(self, fake_client, api):
        """Test remote errors never escape a strategy."""
        fake_client.route("GET", ITEM_ENROLLMENTS, api_error(400, "filter not supported"))

        result = await BulkFilterStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"]))

        assert not result.found
        assert result.error == "filter not supported"
        assert result.meta["status"] == 400

    @pytest.mark.asyncio
    async def test_skipped_without_items(self, api):
        result = await BulkFilterStrategy(api).resolve(EnrollmentQuery([], ["u1"]))

        assert result.meta == {"skipped": True}


class TestPerItemStrategy:
    """Tests for per-item lookups."""

    @pytest.mark.asyncio
    async def test_item_cap(self, fake_client, api):
        """Test only the first item_cap items are queried."""
        fake_client.route("GET", ITEM_ENROLLMENTS, [])

        result = await PerItemStrategy(api, item_cap=2).resolve(EnrollmentQuery(["i1", "i2", "i3"]))

        assert len(fake_client.calls) == 2
        assert result.meta["itemsChecked"] == 2

    @pytest.mark.asyncio
    async def test_one_item_failing_is_isolated(self, fake_client, api):
        """Test a failing item does not hide the others."""
        def respond(params, body):
            if ("learningItemId", "i1") in params:
                return api_error(500, "item lookup failed")
            return [item_enrollment("e2", "i2", user_id="u1")]

        fake_client.route("GET", ITEM_ENROLLMENTS, respond)

        result = await PerItemStrategy(api).resolve(EnrollmentQuery(["i1", "i2"]))

        assert [r.enrollment_id for r in result.enrollments] == ["e2"]
        assert result.meta["itemErrors"] == 1
        assert result.error is None

    @pytest.mark.asyncio
    async def test_all_items_failing_sets_error(self, fake_client, api):
        fake_client.route("GET", ITEM_ENROLLMENTS, api_error(500, "down"))

        result = await PerItemStrategy(api).resolve(EnrollmentQuery(["i1", "i2"]))

        assert result.error == "down"


class TestPagedLocalFilterStrategy:
    """Tests for the unfiltered walk with local filtering."""

    @pytest.mark.asyncio
    async def test_without_course(self, fake_client, api):
        """Test matching by learning item id only."""
        fake_client.route(
            "GET",
            ITEM_ENROLLMENTS,
            paged([[item_enrollment("e1", "i1", "ce1"), item_enrollment("e2", "other", "ce1")]]),
        )

        result = await PagedLocalFilterStrategy(api).resolve(EnrollmentQuery(["i1"]))

        assert [r.enrollment_id for r in result.enrollments] == ["e1"]
        assert result.meta == {"fetched": 2, "matchedByLearningItemId": 1}

    @pytest.mark.asyncio
    async def test_with_course_attributes_users(self, fake_client, api):
        """Test matches are restricted to the target users' course enrollments."""
        fake_client.route("GET", COURSE_ENROLLMENTS, paged([[{"id": "ce1", "userId": "u1"}]]))
        fake_client.route(
            "GET",
            ITEM_ENROLLMENTS,
            paged([[item_enrollment("e1", "i1", "ce1"), item_enrollment("e2", "i1", "ce-stranger")]]),
        )

        result = await PagedLocalFilterStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"], "course-1"))

        assert [(r.enrollment_id, r.user_id) for r in result.enrollments] == [("e1", "u1")]
        assert result.meta["matchedByLearningItemId"] == 2


class TestCourseTraversalStrategy:
    """Tests for course enrollment traversal."""

    @pytest.mark.asyncio
    async def test_embedded_and_subresource_children(self, fake_client, api):
        """Test both child shapes are hydrated and intersected with targets."""
        fake_client.route(
            "GET",
            COURSE_ENROLLMENTS,
            paged(
                [
                    [
                        {
                            "id": "ce1",
                            "userId": "u1",
                            "learningItemEnrollments": [
                                "/v1/learning_item_enrollments/e1",
                                {"@id": "/v1/learning_item_enrollments/e2"},
                            ],
                        },
                        {"id": "ce2", "userId": "u2", "learningItemEnrollments": []},
                    ]
                ]
            ),
        )
        fake_client.route(
            "GET", f"{COURSE_ENROLLMENTS}/ce2/learning_item_enrollments", {"hydra:member": [{"id": "e3"}]}
        )
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e1", item_enrollment("e1", "i1"))
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e2", item_enrollment("e2", "not-a-target"))
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e3", item_enrollment("e3", "i1"))

        result = await CourseTraversalStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1", "u2"], "course-1"))

        assert sorted((r.user_id, r.enrollment_id) for r in result.enrollments) == [("u1", "e1"), ("u2", "e3")]
        assert all(r.learning_item_id == "i1" for r in result.enrollments)
        assert result.meta["shapes"] == {"embedded": 1, "subresource": 1, "subresourceErrors": 0, "empty": 0}
        assert result.meta["itemEnrollmentRefs"] == 3
        assert result.meta["usedCourseIdFilter"] is True
        assert set(result.meta["sampleLearningItemIds"]) == {"i1", "not-a-target"}

    @pytest.mark.asyncio
    async def test_hydration_failures_counted(self, fake_client, api):
        """Test unhydratable refs are dropped and counted."""
        fake_client.route(
            "GET",
            COURSE_ENROLLMENTS,
            paged([[{"id": "ce1", "userId": "u1", "learningItemEnrollmentIds": ["e1", "e404"]}]]),
        )
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e1", item_enrollment("e1", "i1"))

        result = await CourseTraversalStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"], "course-1"))

        assert [r.enrollment_id for r in result.enrollments] == ["e1"]
        assert result.meta["hydrationFailures"] == 1

    @pytest.mark.asyncio
    async def test_empty_detail_counted_as_hydration_failure(self, fake_client, api):
        """Test an item enrollment fetch with an empty body does not abort traversal."""
        fake_client.route(
            "GET",
            COURSE_ENROLLMENTS,
            paged([[{"id": "ce1", "userId": "u1", "learningItemEnrollmentIds": ["e1", "e2"]}]]),
        )
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e1", item_enrollment("e1", "i1"))
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e2", None)

        result = await CourseTraversalStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"], "course-1"))

        assert result.strategy == "via_course_enrollments"
        assert result.error is None
        assert [r.enrollment_id for r in result.enrollments] == ["e1"]
        assert result.meta["hydrationFailures"] == 1

    @pytest.mark.asyncio
    async def test_bare_course_enrollment_refs_skipped(self, fake_client, api):
        """Test bare course enrollment refs are skipped when no users are given."""
        fake_client.route(
            "GET",
            COURSE_ENROLLMENTS,
            paged(
                [
                    [
                        "/v1/course_enrollments/ce9",
                        {"id": "ce1", "userId": "u1", "learningItemEnrollmentIds": ["e1"]},
                    ]
                ]
            ),
        )
        fake_client.route("GET", f"{ITEM_ENROLLMENTS}/e1", item_enrollment("e1", "i1"))

        result = await CourseTraversalStrategy(api).resolve(EnrollmentQuery(["i1"], [], "c1"))

        assert result.error is None
        assert [(r.user_id, r.enrollment_id) for r in result.enrollments] == [("u1", "e1")]
        assert result.meta["courseEnrollments"] == 1

    @pytest.mark.asyncio
    async def test_requires_course(self, api):
        result = await CourseTraversalStrategy(api).resolve(EnrollmentQuery(["i1"], ["u1"]))

        assert result.meta == {"skipped": True}


class TestRecentUnfilteredStrategy:
    """Tests for the connectivity probe."""

    @pytest.mark.asyncio
    async def test_reports_fetched_only(self, fake_client, api):
        fake_client.route("GET", ITEM_ENROLLMENTS, [item_enrollment("e1", "i1")])

        result = await RecentUnfilteredStrategy(api).resolve(EnrollmentQuery())

        assert not result.found
        assert result.meta == {"fetched": 1}
        assert RecentUnfilteredStrategy.diagnostic_only
