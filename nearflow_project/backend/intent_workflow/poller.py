"""
Status poller for asynchronous cross-chain settlement
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"SUCCESS", "FAILED", "REFUNDED", "INCOMPLETE_DEPOSIT"})
NON_TERMINAL_STATUSES = frozenset({"PENDING_DEPOSIT", "KNOWN_DEPOSIT_TX", "PROCESSING"})
TRANSIENT_ERROR_PATTERN = re.compile(r"not found|not indexed|not yet indexed|404", re.IGNORECASE)


@dataclass
class PollAttempt:
    attempt: int
    status: Optional[str] = None
    error: Optional[str] = None
    elapsed_seconds: float = 0.0


@dataclass
class PollOutcome:
    timed_out: bool
    attempts: int
    latest_status: Optional[str]
    last_error: Optional[str]
    latest_response: Optional[Dict[str, Any]] = None
    history: List[PollAttempt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timedOut": self.timed_out,
            "attempts": self.attempts,
            "latestStatus": self.latest_status,
            "lastError": self.last_error,
            "latestResponse": self.latest_response,
            "history": [
                {
                    "attempt": attempt.attempt,
                    "status": attempt.status,
                    "error": attempt.error,
                    "elapsedSeconds": attempt.elapsed_seconds,
                }
                for attempt in self.history
            ],
        }


def is_transient_error(error: BaseException) -> bool:
    return bool(TRANSIENT_ERROR_PATTERN.search(str(error)))


class StatusPoller:
    """
    Polls a status query until a terminal status or the deadline.
    Clock and sleep are injectable for deterministic tests.
    """

    def __init__(
        self,
        interval_seconds: float = 5.0,
        timeout_seconds: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.sleep = sleep

    async def poll(
        self,
        query: Callable[[], Awaitable[Dict[str, Any]]],
        interval_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> PollOutcome:
        """
        Poll until terminal or timed out

        Args:
            query: Coroutine function returning a dict with a "status" key
            interval_seconds: Override for the poll interval
            timeout_seconds: Override for the overall timeout

        Returns:
            PollOutcome with one history entry per attempt
        """
        interval = self.interval_seconds if interval_seconds is None else interval_seconds
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        started = self.clock()
        deadline = started + timeout

        history: List[PollAttempt] = []
        latest_status: Optional[str] = None
        latest_response: Optional[Dict[str, Any]] = None
        last_error: Optional[str] = None

        while self.clock() <= deadline:
            attempt = PollAttempt(attempt=len(history) + 1)
            try:
                latest_response = await query()
                latest_status = str(latest_response.get("status") or "").upper() or None
                attempt.status = latest_status
                if latest_status not in TERMINAL_STATUSES and latest_status not in NON_TERMINAL_STATUSES:
                    logger.warning(f"Unrecognised settlement status {latest_status}, polling on")
            except Exception as e:
                if not is_transient_error(e):
                    logger.error(f"Status query failed: {e}")
                    raise
                last_error = str(e)
                attempt.error = last_error
                logger.warning(f"Status not indexed yet (attempt {attempt.attempt}): {e}")
            attempt.elapsed_seconds = round(self.clock() - started, 3)
            history.append(attempt)

            if latest_status in TERMINAL_STATUSES and attempt.error is None:
                logger.info(f"Status reached {latest_status} after {len(history)} attempts")
                return PollOutcome(
                    timed_out=False,
                    attempts=len(history),
                    latest_status=latest_status,
                    last_error=last_error,
                    latest_response=latest_response,
                    history=history,
                )

            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            await self.sleep(min(interval, remaining))

        logger.warning(f"Status polling timed out after {len(history)} attempts, last status {latest_status}")
        return PollOutcome(
            timed_out=True,
            attempts=len(history),
            latest_status=latest_status,
            last_error=last_error,
            latest_response=latest_response,
            history=history,
        )
