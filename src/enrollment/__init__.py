"""
Enrollment discovery and reconciliation.

Locates the learning item enrollments Ethos creates asynchronously, using
several independent strategies, and waits for them within a fixed budget.
"""

from .cache import CourseEnrollmentUserCache
from .locator import EnrollmentLocator
from .models import DiscoveryResult, EnrollmentQuery, EnrollmentRef
from .reconcile import ReconciliationLoop, ReconciliationOutcome, ReconciliationState

__all__ = [
    "CourseEnrollmentUserCache",
    "DiscoveryResult",
    "EnrollmentLocator",
    "EnrollmentQuery",
    "EnrollmentRef",
    "ReconciliationLoop",
    "ReconciliationOutcome",
    "ReconciliationState",
]
