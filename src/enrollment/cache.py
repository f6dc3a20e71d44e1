"""Memoizing cache for course enrollment -> user id lookups."""

from __future__ import annotations

from typing import Any

_MISSING = object()


class CourseEnrollmentUserCache:
    """
    Course enrollment id -> user id.

    Entries never change once resolved. None is a valid cached value and
    records a failed lookup so it is not repeated.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str | None] = {}

    def __contains__(self, course_enrollment_id: str) -> bool:
        return course_enrollment_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, course_enrollment_id: str, default: Any = _MISSING) -> Any:
        """
        Cached user id (possibly None).

        Raises:
            KeyError: When nothing is cached and no default is given
        """
        if course_enrollment_id in self._entries:
            return self._entries[course_enrollment_id]
        if default is _MISSING:
            raise KeyError(course_enrollment_id)
        return default

    def put(self, course_enrollment_id: str, user_id: str | None) -> None:
        self._entries[course_enrollment_id] = user_id

    def clear(self) -> None:
        self._entries.clear()
