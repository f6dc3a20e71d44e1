"""
Unit tests for reference extraction and record normalizers.
"""

import pytest

from src.ethos.records import normalize_card_enrollment, normalize_item_enrollment
from src.ethos.references import extract_id, extract_uuid, last_path_segment

UUID = "3f0c2b1a-9d4e-4c5b-8a7f-0123456789ab"


class TestExtractId:
    """Tests for extract_id across reference shapes."""

    @pytest.mark.parametrize(
        "value",
        [
            UUID,
            f"/v1/users/{UUID}",
            f"https://ethos.example.com/v1/users/{UUID}",
            {"id": UUID},
            {"@id": f"/v1/users/{UUID}"},
            {"id": {"@id": f"/v1/users/{UUID}"}},
        ],
    )
    def test_same_id_from_every_shape(self, value):
        """Test every reference form yields the same canonical id."""
        assert extract_id(value) == UUID

    def test_uuid_wins_over_last_segment(self):
        """Test a UUID inside a path is preferred to the trailing segment."""
        assert extract_id(f"/v1/course_enrollments/{UUID}/learning_item_enrollments") == UUID

    def test_non_uuid_iri_uses_last_segment(self):
        """Test IRIs without UUIDs resolve to their last path segment."""
        assert extract_id("/v1/users/abc-123/") == "abc-123"
        assert extract_id("https://host/v1/cards/card-9?x=1") == "card-9"

    def test_plain_string_returned(self):
        """Test bare ids pass through."""
        assert extract_id("  abc  ") == "abc"

    def test_numbers(self):
        """Test numeric ids become strings."""
        assert extract_id(42) == "42"

    @pytest.mark.parametrize("value", [None, "", "   ", {}, {"name": "x"}, [], True])
    def test_unresolvable_returns_none(self, value):
        """Test absent or unresolvable references yield None without raising."""
        assert extract_id(value) is None


class TestHelpers:
    """Tests for uuid and path helpers."""

    def test_extract_uuid(self):
        """Test the first UUID is found."""
        assert extract_uuid(f"course:{UUID}") == UUID
        assert extract_uuid("no uuid here") is None
        assert extract_uuid({"id": UUID}) is None

    def test_last_path_segment(self):
        """Test trailing slashes and empty values."""
        assert last_path_segment("/a/b/c/") == "c"
        assert last_path_segment("/") is None
        assert last_path_segment(None) is None


class TestRecordNormalizers:
    """Tests for tenant field name normalization."""

    def test_item_enrollment_snake_case(self):
        """Test snake_case item references are canonicalized."""
        record = normalize_item_enrollment(
            {"@id": "/v1/learning_item_enrollments/e1", "learning_item": {"id": "i1"}, "course_enrollment": "/v1/ce/c1"}
        )

        assert record["id"] == "e1"
        assert record["learningItemId"] == "i1"
        assert record["courseEnrollment"] == "/v1/ce/c1"

    def test_item_enrollment_iri_item(self):
        """Test IRI learning items resolve to their id."""
        record = normalize_item_enrollment({"id": "e2", "learningItem": "/v1/learning_items/i2"})

        assert record["learningItemId"] == "i2"
        assert record["courseEnrollment"] is None

    def test_card_enrollment_card_ref(self):
        """Test card references in any field become cardId."""
        assert normalize_card_enrollment({"id": "ce1", "card": {"@id": "/v1/cards/k1"}})["cardId"] == "k1"
        assert normalize_card_enrollment({"id": "ce2", "card_id": "k2"})["cardId"] == "k2"
        assert normalize_card_enrollment({"id": "ce3"})["cardId"] is None

    def test_non_dict_passthrough(self):
        """Test bare refs are returned untouched."""
        assert normalize_item_enrollment("/v1/learning_item_enrollments/e1") == "/v1/learning_item_enrollments/e1"
