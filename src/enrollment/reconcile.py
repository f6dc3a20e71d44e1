"""
Reconciliation Loop.

Polls the Enrollment Locator until enrollments appear or the wall-clock
budget runs out. On the first empty poll with a known course it fires a
one-time kickoff (invitation enrollment) to nudge Ethos into creating the
records.

State machine:
    POLLING -> FOUND       (a poll returned enrollments)
    POLLING -> TIMED_OUT   (budget exhausted; last result returned, may be empty)

Clock and sleep are injectable so tests can simulate elapsed time.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from src.ethos.client import EthosApiError

from .locator import EnrollmentLocator
from .models import DiscoveryResult, EnrollmentQuery, EnrollmentRef

Kickoff = Callable[[EnrollmentQuery], Awaitable[Any]]


class ReconciliationState(str, Enum):
    POLLING = "polling"
    FOUND = "found"
    TIMED_OUT = "timed_out"


@dataclass
class ReconciliationOutcome:
    """Final state of one reconciliation run."""

    state: ReconciliationState
    result: DiscoveryResult
    polls: int = 0
    elapsed_seconds: float = 0.0
    kickoff_fired: bool = False
    kickoff_result: Any = None
    history: list[str] = field(default_factory=list)

    @property
    def enrollments(self) -> list[EnrollmentRef]:
        return self.result.enrollments

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "strategy": self.result.strategy,
            "foundEnrollments": len(self.result.enrollments),
            "polls": self.polls,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "kickoffFired": self.kickoff_fired,
            "kickoffResult": self.kickoff_result,
        }


class ReconciliationLoop:
    """Bounded wait for asynchronously created enrollments."""

    def __init__(
        self,
        locator: EnrollmentLocator,
        kickoff: Kickoff | None = None,
        timeout_seconds: float = 60.0,
        poll_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if poll_seconds <= 0:
            raise ValueError("poll_seconds must be positive")
        self.locator = locator
        self.kickoff = kickoff
        self.timeout_seconds = timeout_seconds
        self.poll_seconds = poll_seconds
        self.clock = clock
        self.sleep = sleep

    async def _fire_kickoff(self, query: EnrollmentQuery) -> Any:
        try:
            return await self.kickoff(query)
        except EthosApiError as e:
            logger.warning(f"Enrollment kickoff failed, continuing to poll: {e}")
            return {"error": str(e)}

    async def run(self, query: EnrollmentQuery) -> ReconciliationOutcome:
        start = self.clock()
        outcome = ReconciliationOutcome(
            state=ReconciliationState.POLLING,
            result=DiscoveryResult("none"),
        )

        while outcome.state is ReconciliationState.POLLING:
            outcome.polls += 1
            outcome.result = await self.locator.resolve(query)
            outcome.history.append(outcome.result.strategy)

            if outcome.result.found:
                outcome.state = ReconciliationState.FOUND
                break

            if not outcome.kickoff_fired and query.course_id and self.kickoff is not None:
                outcome.kickoff_fired = True
                outcome.kickoff_result = await self._fire_kickoff(query)

            remaining = self.timeout_seconds - (self.clock() - start)
            if remaining <= 0:
                outcome.state = ReconciliationState.TIMED_OUT
                break

            await self.sleep(min(self.poll_seconds, remaining))

            if self.clock() - start >= self.timeout_seconds:
                outcome.state = ReconciliationState.TIMED_OUT

        outcome.elapsed_seconds = self.clock() - start
        logger.info(
            f"Enrollment reconciliation {outcome.state.value} after {outcome.polls} polls: "
            f"{len(outcome.enrollments)} enrollments"
        )
        return outcome
