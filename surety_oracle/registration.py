# surety_oracle/registration.py
"""
Registration coordinator — one-time oracle bootstrap.

For every candidate account:
  1. registerOracle() with the registration fee
  2. getMyIndexes() to learn the assigned shard indices
  3. draw a synthetic status code
  4. add the OracleActor to the registry

Candidates run concurrently under a semaphore. A failed candidate is
logged and left out of the registry; it is never retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from surety_oracle.errors import BootstrapError
from surety_oracle.ledger import LedgerClient
from surety_oracle.models import OracleActor
from surety_oracle.registry import Registry
from surety_oracle.status import StatusGenerator

log = logging.getLogger("surety.registration")


@dataclass
class RegistrationReport:
    attempted: int = 0
    registered: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "registered": len(self.registered),
            "failed": dict(self.failed),
        }


class RegistrationCoordinator:
    def __init__(
        self,
        ledger: LedgerClient,
        generator: StatusGenerator,
        fee_wei: int,
        gas_limit: int,
        concurrency: int = 5,
        timeout: Optional[float] = None,
    ):
        self.ledger = ledger
        self.generator = generator
        self.fee_wei = fee_wei
        self.gas_limit = gas_limit
        self.concurrency = concurrency
        self.timeout = timeout
        self.report = RegistrationReport()

    async def _register_one(self, identity: str) -> frozenset:
        await self.ledger.register_actor(identity, self.fee_wei, self.gas_limit)
        indices = await self.ledger.get_assigned_indices(identity)
        if not indices:
            raise ValueError(f"ledger assigned no indices to {identity}")
        return frozenset(indices)

    async def _attempt(self, identity: str, semaphore: asyncio.Semaphore):
        async with semaphore:
            try:
                if self.timeout is None:
                    return await self._register_one(identity)
                return await asyncio.wait_for(self._register_one(identity), self.timeout)
            except asyncio.TimeoutError:
                log.error(f"Oracle registration timed out after {self.timeout}s: {identity}")
                self.report.failed[identity] = "timeout"
            except Exception as e:
                log.error(f"Oracle registration failed for {identity}: {e}")
                self.report.failed[identity] = str(e)
        return None

    async def run(self, identities: Iterable[str]) -> Registry:
        """Attempt every candidate once and return the frozen registry."""
        # Collapse repeats, keep first-seen order
        candidates = list(dict.fromkeys(identities))
        if not candidates:
            raise BootstrapError("No candidate accounts provided for oracle registration")

        log.info(f"Registering {len(candidates)} oracles (concurrency={self.concurrency})")
        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(*(self._attempt(i, semaphore) for i in candidates))

        # Status codes are drawn in candidate order so a seeded generator
        # gives the same assignment whatever order the ledger answered in
        registry = Registry()
        for identity, indices in zip(candidates, results):
            if indices is None:
                continue
            actor = OracleActor(
                identity=identity,
                shard_indices=indices,
                status_code=self.generator.next_status(),
            )
            registry.add(actor)
            self.report.registered.append(identity)
            log.debug(f"Oracle registered: {identity} indexes={sorted(indices)} status={actor.status_code.name}")
        registry.freeze()

        self.report.attempted = len(candidates)
        log.info(f"Number of oracles registered: {len(registry)}/{len(candidates)}")
        if self.report.failed:
            log.warning(f"{len(self.report.failed)} oracle registrations failed: {', '.join(self.report.failed)}")
        return registry
