# surety_oracle/registry.py
"""
Oracle registry: identity -> OracleActor, in registration order.

Written once during bootstrap, then frozen. The dispatcher only reads
it, so no locking is needed once freeze() has been called.
"""

from typing import Iterator, List, Optional

from surety_oracle.errors import DuplicateActorError, RegistryFrozenError
from surety_oracle.models import OracleActor


class Registry:
    def __init__(self):
        self._actors = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add(self, actor: OracleActor) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Registry is frozen, cannot add {actor.identity}")
        if actor.identity in self._actors:
            raise DuplicateActorError(f"Oracle already registered: {actor.identity}")
        self._actors[actor.identity] = actor

    def freeze(self) -> "Registry":
        self._frozen = True
        return self

    def resolve(self, request_index: int) -> List[OracleActor]:
        """Actors whose shard indices contain `request_index`."""
        return [a for a in self._actors.values() if a.matches(request_index)]

    def get(self, identity: str) -> Optional[OracleActor]:
        return self._actors.get(identity)

    def index_coverage(self) -> dict:
        """Number of oracles holding each index."""
        coverage = {}
        for actor in self._actors.values():
            for idx in actor.shard_indices:
                coverage[idx] = coverage.get(idx, 0) + 1
        return dict(sorted(coverage.items()))

    def to_dict(self) -> dict:
        return {
            "count": len(self._actors),
            "frozen": self._frozen,
            "oracles": [a.to_dict() for a in self._actors.values()],
        }

    def __len__(self) -> int:
        return len(self._actors)

    def __iter__(self) -> Iterator[OracleActor]:
        return iter(list(self._actors.values()))

    def __contains__(self, identity) -> bool:
        return identity in self._actors
