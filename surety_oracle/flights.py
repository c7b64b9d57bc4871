# surety_oracle/flights.py
"""Demo flight schedule served on /flights: AA001..AA006, one per day ahead."""

from datetime import datetime, timedelta, timezone


def seed_flights(now=None, count=6):
    now = now or datetime.now(timezone.utc)
    return [
        {
            "flight": f"AA{i:03d}",
            "timestamp": int((now + timedelta(days=i)).timestamp()),
        }
        for i in range(1, count + 1)
    ]
