# surety_oracle/models.py
"""
Records that flow through the coordination layer.

OracleActor is owned by the Registry. RequestEvent arrives from the
ledger and ResponseSubmission goes back to it; neither is kept.
"""

from dataclasses import dataclass
from typing import Optional

from surety_oracle.status import StatusCode


@dataclass(frozen=True)
class OracleActor:
    identity: str
    shard_indices: frozenset
    status_code: StatusCode

    def matches(self, request_index: int) -> bool:
        return request_index in self.shard_indices

    def to_dict(self) -> dict:
        return {
            "address": self.identity,
            "indexes": sorted(self.shard_indices),
            "status_code": int(self.status_code),
            "status": self.status_code.name.lower(),
        }


@dataclass(frozen=True)
class RequestEvent:
    request_index: int
    airline: str
    flight: str
    timestamp: int
    # Delivery metadata, informational only
    block_number: Optional[int] = None
    transaction_hash: Optional[str] = None

    def __str__(self) -> str:
        return f"OracleRequest(index={self.request_index}, {self.airline}/{self.flight}@{self.timestamp})"


@dataclass(frozen=True)
class ResponseSubmission:
    request_index: int
    airline: str
    flight: str
    timestamp: int
    status_code: StatusCode
    actor_identity: str

    @classmethod
    def for_actor(cls, event: RequestEvent, actor: OracleActor) -> "ResponseSubmission":
        """Build the response `actor` owes for `event`.

        Raises ValueError when the actor does not hold the request's index.
        """
        if not actor.matches(event.request_index):
            raise ValueError(
                f"Oracle {actor.identity} does not hold index {event.request_index} "
                f"(has {sorted(actor.shard_indices)})"
            )
        return cls(
            request_index=event.request_index,
            airline=event.airline,
            flight=event.flight,
            timestamp=event.timestamp,
            status_code=actor.status_code,
            actor_identity=actor.identity,
        )
