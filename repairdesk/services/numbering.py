"""
Ticket number allocation.

Numbers look like ``TKT-20261018-320-7QX2``: the UTC calendar day, a coarse
counter (300 + 10 per ticket already issued that day) and a random
4-character suffix. The counter is for humans and repeats under concurrent
creation; the suffix plus a claim-and-retry loop is what keeps numbers unique.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Callable, Optional, TypeVar

from ..errors import GenerationExhausted

logger = logging.getLogger(__name__)

PREFIX = "TKT"
COUNTER_BASE = 300
COUNTER_STEP = 10
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4
DEFAULT_ATTEMPTS = 5

T = TypeVar("T")


class NumberTaken(Exception):
    """Raised by a claim callback when the candidate number already exists."""


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class TicketNumberGenerator:
    def __init__(
        self,
        max_attempts: int = DEFAULT_ATTEMPTS,
        rng=None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.rng = rng or secrets.SystemRandom()
        self.clock = clock or datetime.utcnow

    def suffix(self) -> str:
        return "".join(self.rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))

    def candidate(self, issued_today: int, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        counter = COUNTER_BASE + COUNTER_STEP * max(issued_today, 0)
        return f"{PREFIX}-{now:%Y%m%d}-{counter}-{self.suffix()}"

    def assign(
        self, issued_today: Callable[[datetime], int], claim: Callable[[str, datetime], T]
    ) -> T:
        """
        Draw candidates until ``claim`` accepts one.

        ``issued_today`` receives the current time and returns how many tickets
        exist for that day. ``claim`` gets the number and the instant it was
        drawn for, persists it and raises NumberTaken on a collision.
        """
        for attempt in range(1, self.max_attempts + 1):
            now = self.clock()
            number = self.candidate(issued_today(now), now)
            try:
                return claim(number, now)
            except NumberTaken:
                logger.warning(
                    "ticket number collision",
                    extra={"ticket_number": number, "attempt": attempt},
                )
        raise GenerationExhausted(
            f"Could not allocate a unique ticket number after {self.max_attempts} attempts"
        )

    def next(self, issued_today: Callable[[datetime], int], is_taken: Callable[[str], bool]) -> str:
        def _claim(number: str, _now: datetime) -> str:
            if is_taken(number):
                raise NumberTaken(number)
            return number

        return self.assign(issued_today, _claim)
