"""
Record normalizers.

Tenants name the same fields differently (camelCase, snake_case, embedded
objects, IRIs). These adapters copy a record and add canonical keys so the
rest of the engine reads one shape.
"""

from __future__ import annotations

from typing import Any

from .references import extract_id

ITEM_ENROLLMENT_ITEM_KEYS = ("learningItemId", "learning_item_id", "learningItem", "learning_item")
ITEM_ENROLLMENT_COURSE_KEYS = ("courseEnrollment", "course_enrollment")
CARD_ENROLLMENT_CARD_KEYS = ("cardId", "card_id", "card", "cardRef", "card_ref")


def _first_present(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def normalize_item_enrollment(record: Any) -> Any:
    """Canonical id / learningItemId / courseEnrollment for a learning item enrollment."""
    if not isinstance(record, dict):
        return record
    enrollment_id = extract_id(record.get("id") or record.get("@id"))
    item_id = extract_id(_first_present(record, ITEM_ENROLLMENT_ITEM_KEYS))
    return {
        **record,
        "id": enrollment_id or record.get("id"),
        "learningItemId": item_id or record.get("learningItemId"),
        "courseEnrollment": _first_present(record, ITEM_ENROLLMENT_COURSE_KEYS),
    }


def normalize_card_enrollment(record: Any) -> Any:
    """Canonical id / cardId for a card enrollment."""
    if not isinstance(record, dict):
        return record
    enrollment_id = extract_id(record.get("id") or record.get("@id"))
    card_id = extract_id(_first_present(record, CARD_ENROLLMENT_CARD_KEYS))
    return {
        **record,
        "id": enrollment_id or record.get("id"),
        "cardId": card_id or record.get("cardId"),
    }
