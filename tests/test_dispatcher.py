"""
Request dispatcher: shard gating, isolation and re-delivery.
"""

import asyncio

import pytest

from conftest import AIRLINE, STREAM_END, FakeLedger, account, make_registry
from surety_oracle.dispatcher import RequestDispatcher
from surety_oracle.errors import RegistryNotReadyError, SubscriptionError
from surety_oracle.models import RequestEvent
from surety_oracle.registry import Registry
from surety_oracle.status import StatusCode

GAS = 10_000_000


def request(index, flight="AA001", timestamp=1_700_000_000):
    return RequestEvent(request_index=index, airline=AIRLINE, flight=flight, timestamp=timestamp)


def dispatcher_for(ledger, registry, **kwargs):
    return RequestDispatcher(ledger, registry, gas_limit=GAS, **kwargs)


class TestDispatch:

    @pytest.mark.asyncio
    async def test_only_matching_shard_responds(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry)

        result = await dispatcher.dispatch(request(3))

        assert [s.actor_identity for s in ledger.submissions] == [account(2)]
        sub = ledger.submissions[0]
        assert sub.request_index == 3
        assert sub.airline == AIRLINE
        assert sub.flight == "AA001"
        assert sub.timestamp == 1_700_000_000
        assert sub.status_code == StatusCode.LATE_AIRLINE
        assert len(result.succeeded) == 1
        assert result.failed == {}

    @pytest.mark.asyncio
    async def test_gating_holds_for_every_index(self, two_shard_registry):
        for index in range(8):
            ledger = FakeLedger()
            dispatcher = dispatcher_for(ledger, two_shard_registry)
            await dispatcher.dispatch(request(index))
            responders = {s.actor_identity for s in ledger.submissions}
            expected = {a.identity for a in two_shard_registry if index in a.shard_indices}
            assert responders == expected

    @pytest.mark.asyncio
    async def test_no_match_is_a_silent_noop(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry)

        result = await dispatcher.dispatch(request(9))

        assert ledger.submissions == []
        assert result.submitted == 0
        assert dispatcher.stats.events_unmatched == 1
        assert dispatcher.stats.submissions_failed == 0

    @pytest.mark.asyncio
    async def test_failed_submission_does_not_affect_siblings(self):
        registry = make_registry(
            (account(1), {7, 1, 2}, StatusCode.ON_TIME),
            (account(2), {7, 4, 5}, StatusCode.LATE_WEATHER),
            (account(3), {7, 8, 9}, StatusCode.LATE_OTHER),
        )
        ledger = FakeLedger(fail_submission={account(2)})
        dispatcher = dispatcher_for(ledger, registry)

        result = await dispatcher.dispatch(request(7))

        responders = [s.actor_identity for s in ledger.submissions]
        assert sorted(responders) == [account(1), account(3)]
        assert len(responders) == len(set(responders))
        assert list(result.failed) == [account(2)]
        assert dispatcher.stats.submissions_succeeded == 2
        assert dispatcher.stats.submissions_failed == 1

    @pytest.mark.asyncio
    async def test_timed_out_submission_is_a_failure(self):
        registry = make_registry(
            (account(1), {2}, StatusCode.ON_TIME),
            (account(2), {2}, StatusCode.ON_TIME),
        )
        ledger = FakeLedger(hang_submission={account(1)})
        dispatcher = dispatcher_for(ledger, registry, submit_timeout=0.05)

        result = await dispatcher.dispatch(request(2))

        assert [s.actor_identity for s in ledger.submissions] == [account(2)]
        assert "timed out" in result.failed[account(1)]

    @pytest.mark.asyncio
    async def test_status_code_is_stable_across_events(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry)

        for i, index in enumerate([0, 1, 2, 0]):
            await dispatcher.dispatch(request(index, flight=f"AA00{i + 1}"))

        codes = {s.status_code for s in ledger.submissions if s.actor_identity == account(1)}
        assert len(ledger.submissions) == 4
        assert codes == {StatusCode.ON_TIME}

    @pytest.mark.asyncio
    async def test_redelivery_is_not_deduplicated(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry)
        event = request(4)

        await dispatcher.dispatch(event)
        await dispatcher.dispatch(event)

        assert len(ledger.submissions) == 2
        assert ledger.submissions[0] == ledger.submissions[1]
        assert dispatcher.stats.events_received == 2

    def test_refuses_unfrozen_registry(self, ledger):
        with pytest.raises(RegistryNotReadyError):
            RequestDispatcher(ledger, Registry(), gas_limit=GAS)


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_consumes_stream_and_fans_out(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry)
        for index in (0, 3, 9):
            ledger.events.put_nowait(request(index))

        await asyncio.wait_for(dispatcher.run(max_events=3), timeout=2)

        assert sorted(s.actor_identity for s in ledger.submissions) == [account(1), account(2)]
        assert dispatcher.stats.events_received == 3
        assert not dispatcher.running

    @pytest.mark.asyncio
    async def test_slow_submission_does_not_block_next_event(self):
        registry = make_registry(
            (account(1), {1}, StatusCode.ON_TIME),
            (account(2), {2}, StatusCode.LATE_TECHNICAL),
        )
        ledger = FakeLedger(hang_submission={account(1)})
        dispatcher = dispatcher_for(ledger, registry, submit_timeout=5)
        ledger.events.put_nowait(request(1))
        ledger.events.put_nowait(request(2))

        task = asyncio.ensure_future(dispatcher.run())
        for _ in range(50):
            if ledger.submissions:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        await dispatcher.stop()

        assert [s.actor_identity for s in ledger.submissions] == [account(2)]

    @pytest.mark.asyncio
    async def test_hung_event_at_concurrency_cap_does_not_starve_next_event(self):
        hung = [account(n) for n in range(10, 30)]
        registry = make_registry(
            *[(identity, {1}, StatusCode.ON_TIME) for identity in hung],
            (account(2), {2}, StatusCode.LATE_WEATHER),
        )
        ledger = FakeLedger(hang_submission=set(hung))
        dispatcher = dispatcher_for(ledger, registry, submit_timeout=1.0, max_concurrency=20)
        ledger.events.put_nowait(request(1))
        ledger.events.put_nowait(request(2))

        loop = asyncio.get_running_loop()
        started = loop.time()
        task = asyncio.ensure_future(dispatcher.run())
        while not ledger.submissions and loop.time() - started < 2:
            await asyncio.sleep(0.01)
        elapsed = loop.time() - started
        task.cancel()
        await dispatcher.stop()

        assert [s.actor_identity for s in ledger.submissions] == [account(2)]
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_resubscribes_after_stream_failure(self, ledger, two_shard_registry):
        dispatcher = dispatcher_for(ledger, two_shard_registry, reconnect_delay=0.01, max_reconnect_delay=0.02)
        ledger.events.put_nowait(request(0))
        ledger.events.put_nowait(SubscriptionError("connection lost"))
        ledger.events.put_nowait(STREAM_END)
        ledger.events.put_nowait(request(3))

        await asyncio.wait_for(dispatcher.run(max_events=2), timeout=2)

        assert ledger.subscriptions == 3
        assert ledger.streams_closed == 3
        assert dispatcher.stats.subscription_failures == 1
        assert [s.actor_identity for s in ledger.submissions] == [account(1), account(2)]
