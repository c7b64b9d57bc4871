"""
Shared fixtures: an in-memory ledger that stands in for the contract.
"""

import asyncio

import pytest

from surety_oracle.errors import LedgerError, TransactionRejected
from surety_oracle.ledger import LedgerClient
from surety_oracle.registry import Registry
from surety_oracle.models import OracleActor
from surety_oracle.status import StatusCode

AIRLINE = "0x00000000000000000000000000000000000000A1"

STREAM_END = object()


def account(n):
    return f"0x{n:040x}"


class FakeLedger(LedgerClient):
    """Scripted ledger.

    - `indices` maps identity -> assigned indexes (default: n % 10 .. +2)
    - `reject_registration` identities fail registerOracle()
    - `fail_submission` identities fail submitOracleResponse()
    - `hang_submission` identities never answer
    - push RequestEvents (or an Exception, or STREAM_END) onto `events`
    """

    def __init__(self, accounts=None, indices=None, reject_registration=(),
                 fail_submission=(), hang_submission=(), unreachable=False):
        self.accounts = list(accounts or [])
        self.indices = dict(indices or {})
        self.reject_registration = set(reject_registration)
        self.fail_submission = set(fail_submission)
        self.hang_submission = set(hang_submission)
        self.unreachable = unreachable
        self.registrations = []
        self.submissions = []
        self.subscriptions = 0
        self.streams_closed = 0
        self.closed = False
        self.events = asyncio.Queue()

    async def list_accounts(self):
        if self.unreachable:
            raise LedgerError("connection refused")
        return list(self.accounts)

    async def register_actor(self, identity, fee_wei, gas_limit):
        await asyncio.sleep(0)
        self.registrations.append((identity, fee_wei, gas_limit))
        if identity in self.reject_registration:
            raise TransactionRejected(f"registerOracle from {identity} reverted")
        return f"0xreg{len(self.registrations)}"

    async def get_assigned_indices(self, identity):
        if identity in self.indices:
            return frozenset(self.indices[identity])
        n = int(identity, 16)
        return frozenset({n % 10, (n + 1) % 10, (n + 2) % 10})

    async def subscribe_request_events(self, from_latest=True):
        self.subscriptions += 1
        try:
            while True:
                item = await self.events.get()
                if item is STREAM_END:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.streams_closed += 1

    async def submit_response(self, submission, gas_limit):
        if submission.actor_identity in self.hang_submission:
            await asyncio.sleep(3600)
        await asyncio.sleep(0)
        if submission.actor_identity in self.fail_submission:
            raise TransactionRejected(f"submitOracleResponse from {submission.actor_identity} reverted")
        self.submissions.append(submission)
        return f"0xsub{len(self.submissions)}"

    async def close(self):
        self.closed = True


def make_registry(*actors):
    registry = Registry()
    for identity, indexes, status in actors:
        registry.add(OracleActor(identity, frozenset(indexes), status))
    return registry.freeze()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def two_shard_registry():
    return make_registry(
        (account(1), {0, 1, 2}, StatusCode.ON_TIME),
        (account(2), {3, 4, 5}, StatusCode.LATE_AIRLINE),
    )
