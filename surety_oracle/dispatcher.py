# surety_oracle/dispatcher.py
"""
Request dispatcher — answers OracleRequest events.

Runs for the life of the process:
  1. Subscribes to OracleRequest from the latest block
  2. For each event, resolves the oracles holding the request index
  3. Submits one response per matching oracle, concurrently

A failed or timed-out submission is logged and dropped; it never holds
up its siblings or the next event. Duplicate deliveries are answered
again, the contract sorts them out. If the stream breaks it is reopened
from latest after a backoff.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Optional

from surety_oracle.errors import RegistryNotReadyError
from surety_oracle.ledger import LedgerClient
from surety_oracle.models import RequestEvent, ResponseSubmission
from surety_oracle.registry import Registry

log = logging.getLogger("surety.dispatcher")


@dataclass
class DispatchResult:
    event: RequestEvent
    succeeded: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)

    @property
    def submitted(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass
class DispatcherStats:
    events_received: int = 0
    events_unmatched: int = 0
    submissions_succeeded: int = 0
    submissions_failed: int = 0
    subscription_failures: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class RequestDispatcher:
    def __init__(
        self,
        ledger: LedgerClient,
        registry: Registry,
        gas_limit: int,
        submit_timeout: float = 30.0,
        max_concurrency: int = 20,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ):
        if not registry.frozen:
            raise RegistryNotReadyError("Dispatcher needs a frozen registry; run registration first")
        self.ledger = ledger
        self.registry = registry
        self.gas_limit = gas_limit
        self.submit_timeout = submit_timeout
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.stats = DispatcherStats()
        self.max_concurrency = max_concurrency
        self._inflight = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def _submit(self, submission: ResponseSubmission, event: RequestEvent, result: DispatchResult, slots):
        async with slots:
            try:
                tx_hash = await asyncio.wait_for(
                    self.ledger.submit_response(submission, self.gas_limit),
                    self.submit_timeout,
                )
            except asyncio.TimeoutError:
                reason = f"timed out after {self.submit_timeout}s"
            except Exception as e:
                reason = str(e) or type(e).__name__
            else:
                result.succeeded.append(submission)
                self.stats.submissions_succeeded += 1
                log.info(
                    f"Oracle {submission.actor_identity} submitted status {int(submission.status_code)} "
                    f"for {event} tx={tx_hash}"
                )
                return
        result.failed[submission.actor_identity] = reason
        self.stats.submissions_failed += 1
        log.error(f"Submitting oracle response failed: oracle={submission.actor_identity} {event}: {reason}")

    async def dispatch(self, event: RequestEvent) -> DispatchResult:
        """Answer one delivery of `event` from every matching oracle."""
        self.stats.events_received += 1
        result = DispatchResult(event=event)

        actors = self.registry.resolve(event.request_index)
        if not actors:
            self.stats.events_unmatched += 1
            log.debug(f"No oracles hold index {event.request_index}, ignoring {event}")
            return result

        log.info(f"{event}: {len(actors)} matching oracles")
        submissions = [ResponseSubmission.for_actor(event, a) for a in actors]
        # Bounded per event: hung submissions on one request never hold
        # slots another request needs
        slots = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(*(self._submit(s, event, result, slots) for s in submissions))
        return result

    def _spawn(self, event: RequestEvent) -> asyncio.Task:
        task = asyncio.ensure_future(self.dispatch(event))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        task.add_done_callback(self._report_crash)
        return task

    @staticmethod
    def _report_crash(task: asyncio.Task):
        if not task.cancelled() and task.exception() is not None:
            log.error(f"Dispatch task crashed: {task.exception()!r}")

    async def run(self, max_events: Optional[int] = None):
        """Consume the event stream until stopped.

        `max_events` ends the loop after that many deliveries, once
        their submissions have settled.
        """
        self._running = True
        delay = self.reconnect_delay
        seen = 0
        log.info(f"Dispatcher started with {len(self.registry)} oracles")
        try:
            while True:
                try:
                    async with aclosing(self.ledger.subscribe_request_events(from_latest=True)) as stream:
                        async for event in stream:
                            delay = self.reconnect_delay
                            self._spawn(event)
                            seen += 1
                            if max_events is not None and seen >= max_events:
                                await self.drain()
                                return
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.stats.subscription_failures += 1
                    log.error(f"OracleRequest subscription failed: {e}; resubscribing in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, self.max_reconnect_delay)
                    continue
                # A finite stream just ended; reopen it like a dropped one
                log.warning(f"OracleRequest stream ended; resubscribing in {delay:.1f}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_reconnect_delay)
        finally:
            self._running = False

    async def drain(self):
        """Wait for in-flight dispatches to settle."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def stop(self):
        for task in list(self._inflight):
            task.cancel()
        await self.drain()
