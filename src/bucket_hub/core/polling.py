"""
Convergence polling for Bucket Hub

A bounded-retry combinator used to wait until an eventually-consistent
system (the ledger, the indexing backend) reflects a fact. Each attempt runs
a probe that answers with one of three outcomes:

- satisfied: stop and return the probe's value
- not yet visible: wait one interval and try again
- failed: stop immediately and raise DefinitivelyFailedError

Running out of attempts raises PollTimeoutError, which callers must keep
distinct from a definitive failure since the true outcome is unknown.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from .errors import DefinitivelyFailedError, PollTimeoutError

logger = logging.getLogger(__name__)


class ProbeStatus(str, Enum):
    SATISFIED = "satisfied"
    NOT_YET_VISIBLE = "notYetVisible"
    FAILED = "definitivelyFailed"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe attempt"""

    status: ProbeStatus
    value: Any = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def satisfied(cls, value: Any = None) -> 'ProbeResult':
        return cls(ProbeStatus.SATISFIED, value=value)

    @classmethod
    def not_yet_visible(cls) -> 'ProbeResult':
        return cls(ProbeStatus.NOT_YET_VISIBLE)

    @classmethod
    def failed(cls, reason: str, message: Optional[str] = None) -> 'ProbeResult':
        return cls(ProbeStatus.FAILED, reason=reason, message=message)


class PollPolicy(BaseModel):
    """Interval and attempt ceiling for one kind of poll"""

    interval: float = Field(..., gt=0, description="Seconds between attempts")
    max_attempts: int = Field(..., ge=1, description="Probe invocations before giving up")
    initial_delay: float = Field(0.0, ge=0, description="Seconds to wait before the first attempt")

    @property
    def budget_seconds(self) -> float:
        """Worst-case wall-clock wait excluding probe latency"""
        return self.initial_delay + self.interval * (self.max_attempts - 1)


Probe = Callable[[], Awaitable[ProbeResult]]
Sleep = Callable[[float], Awaitable[Any]]


async def poll_until(
    probe: Probe,
    policy: PollPolicy,
    description: str = "condition",
    sleep: Sleep = asyncio.sleep
) -> Any:
    """
    Run probe until it is satisfied, fails, or attempts run out

    Exceptions raised by the probe propagate unchanged. Cancelling the
    awaiting task stops further attempts without producing a result.
    """
    if policy.initial_delay:
        await sleep(policy.initial_delay)

    for attempt in range(1, policy.max_attempts + 1):
        result = await probe()

        if result.status == ProbeStatus.SATISFIED:
            logger.debug("%s satisfied after %d attempt(s)", description, attempt)
            return result.value
        elif result.status == ProbeStatus.FAILED:
            logger.debug("%s failed on attempt %d: %s", description, attempt, result.reason)
            raise DefinitivelyFailedError(result.reason, result.message)
        elif result.status == ProbeStatus.NOT_YET_VISIBLE:
            logger.debug("%s not yet visible (attempt %d/%d)", description, attempt, policy.max_attempts)
        else:
            raise ValueError(f"Unknown probe status: {result.status}")

        # No wait after the final attempt
        if attempt < policy.max_attempts:
            await sleep(policy.interval)

    raise PollTimeoutError(description, policy.max_attempts)
