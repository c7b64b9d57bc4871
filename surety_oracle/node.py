# surety_oracle/node.py
"""
OracleNode — process lifecycle for the oracle layer.

bootstrap():  accounts -> registration -> frozen registry -> dispatcher
start():      bootstrap, then run the dispatcher as a background task
stop():       cancel the dispatcher and close the ledger client

Any failure before the dispatcher exists is a BootstrapError: the node
refuses to serve.
"""

import asyncio
import logging
from typing import Optional

from surety_oracle.config import OracleConfig
from surety_oracle.dispatcher import RequestDispatcher
from surety_oracle.errors import BootstrapError, LedgerError
from surety_oracle.ledger import LedgerClient, Web3LedgerClient, load_abi
from surety_oracle.registration import RegistrationCoordinator
from surety_oracle.registry import Registry
from surety_oracle.status import StatusGenerator

log = logging.getLogger("surety.node")

PHASE_IDLE = "idle"
PHASE_BOOTSTRAPPING = "bootstrapping"
PHASE_SERVING = "serving"
PHASE_FAILED = "failed"
PHASE_STOPPED = "stopped"


def build_ledger(config: OracleConfig) -> Web3LedgerClient:
    return Web3LedgerClient(
        config.rpc_url,
        config.app_address,
        abi=load_abi(config.contract_abi_path),
        receipt_timeout=config.submit_timeout,
        poll_interval=config.poll_interval,
    )


class OracleNode:
    def __init__(
        self,
        config: OracleConfig,
        ledger: Optional[LedgerClient] = None,
        generator: Optional[StatusGenerator] = None,
    ):
        self.config = config
        self.ledger = ledger or build_ledger(config)
        self.generator = generator or StatusGenerator(config.status_seed, config.fixed_status)
        self.phase = PHASE_IDLE
        self.error: Optional[str] = None
        self.registry: Optional[Registry] = None
        self.coordinator: Optional[RegistrationCoordinator] = None
        self.dispatcher: Optional[RequestDispatcher] = None
        self._task: Optional[asyncio.Task] = None

    async def bootstrap(self) -> Registry:
        self.phase = PHASE_BOOTSTRAPPING
        try:
            try:
                accounts = await self.ledger.list_accounts()
            except LedgerError as e:
                raise BootstrapError(f"Ledger unreachable at startup: {e}") from e

            candidates = self.config.select_candidates(accounts)
            log.info(
                f"{len(accounts)} accounts on {self.config.network}, "
                f"{len(candidates)} oracle candidates from offset {self.config.oracle_offset}"
            )
            self.coordinator = RegistrationCoordinator(
                self.ledger,
                self.generator,
                fee_wei=self.config.fee_wei,
                gas_limit=self.config.gas,
                concurrency=self.config.registration_concurrency,
                timeout=self.config.submit_timeout * 2,
            )
            registry = await self.coordinator.run(candidates)
            if self.config.require_oracles and len(registry) == 0:
                raise BootstrapError("No oracle registered successfully")
        except BootstrapError as e:
            self.phase = PHASE_FAILED
            self.error = str(e)
            log.error(f"Bootstrap failed: {e}")
            raise

        self.registry = registry
        self.dispatcher = RequestDispatcher(
            self.ledger,
            registry,
            gas_limit=self.config.gas,
            submit_timeout=self.config.submit_timeout,
            max_concurrency=self.config.dispatch_concurrency,
            reconnect_delay=self.config.reconnect_delay,
            max_reconnect_delay=self.config.max_reconnect_delay,
        )
        log.info(f"Oracle index coverage: {registry.index_coverage()}")
        return registry

    async def start(self):
        await self.bootstrap()
        self._task = asyncio.ensure_future(self.dispatcher.run())
        self.phase = PHASE_SERVING

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        await self.ledger.close()
        if self.phase != PHASE_FAILED:
            self.phase = PHASE_STOPPED
        log.info("Oracle node stopped")

    def info(self) -> dict:
        return {
            "phase": self.phase,
            "network": self.config.network,
            "contract": self.config.app_address,
            "oracles": len(self.registry) if self.registry is not None else 0,
            "listening": bool(self.dispatcher and self.dispatcher.running),
            "error": self.error,
        }
