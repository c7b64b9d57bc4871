# surety_oracle/status.py
"""
Flight status codes and the synthetic status generator.

Codes mirror the FlightSuretyApp contract constants. Each oracle draws
one code at registration and reports it for the rest of its life.
"""

import random
from enum import IntEnum
from typing import Optional


class StatusCode(IntEnum):
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


STATUS_CODES = tuple(StatusCode)


def parse_status(value) -> StatusCode:
    """Accept a member name ("late_airline") or a contract value (20)."""
    if isinstance(value, StatusCode):
        return value
    text = str(value).strip()
    if text.isdigit():
        return StatusCode(int(text))
    try:
        return StatusCode[text.upper()]
    except KeyError:
        raise ValueError(f"Unknown status code: {value!r}") from None


class StatusGenerator:
    """Uniform draw over STATUS_CODES from a seedable random source.

    Passing `fixed` pins every draw to one code, which is handy when
    simulating a flight outcome end to end.
    """

    def __init__(self, seed: Optional[int] = None, fixed: Optional[StatusCode] = None):
        self._rng = random.Random(seed)
        self._fixed = fixed

    def next_status(self) -> StatusCode:
        if self._fixed is not None:
            return self._fixed
        return self._rng.choice(STATUS_CODES)
