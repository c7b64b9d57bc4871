# surety_oracle/ledger.py
"""
Ledger client — the oracle layer's only view of the FlightSuretyApp contract.

LedgerClient is the boundary the coordinator and dispatcher are written
against. Web3LedgerClient implements it with web3.py over JSON-RPC:

  registerOracle()                      payable, fee + gas from config
  getMyIndexes()                        call, returns uint8[3]
  submitOracleResponse(index, airline, flight, timestamp, statusCode)
  event OracleRequest(index, airline, flight, timestamp)

The event stream is a polled log filter opened at "latest": history is
never replayed and a stream cannot be restarted, only reopened.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, List, Optional

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from surety_oracle.errors import LedgerError, SubscriptionError, TransactionRejected
from surety_oracle.models import RequestEvent, ResponseSubmission

log = logging.getLogger("surety.ledger")

# Oracle-facing slice of the FlightSuretyApp ABI
ORACLE_ABI = [
    {
        "type": "function",
        "name": "registerOracle",
        "inputs": [],
        "outputs": [],
        "stateMutability": "payable",
    },
    {
        "type": "function",
        "name": "getMyIndexes",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8[3]"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "submitOracleResponse",
        "inputs": [
            {"name": "index", "type": "uint8"},
            {"name": "airline", "type": "address"},
            {"name": "flight", "type": "string"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "statusCode", "type": "uint8"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "OracleRequest",
        "anonymous": False,
        "inputs": [
            {"name": "index", "type": "uint8", "indexed": False},
            {"name": "airline", "type": "address", "indexed": False},
            {"name": "flight", "type": "string", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]


def load_abi(artifact_path: Optional[str] = None) -> list:
    """ABI from a truffle build artifact, or the built-in oracle fragment."""
    if not artifact_path:
        return ORACLE_ABI
    data = json.loads(Path(artifact_path).read_text())
    return data["abi"] if isinstance(data, dict) else data


class LedgerClient:
    """Request/response boundary to the ledger.

    Implementations raise LedgerError (or a subclass) for every failure
    so callers can isolate it per actor.
    """

    async def list_accounts(self) -> List[str]:
        raise NotImplementedError

    async def register_actor(self, identity: str, fee_wei: int, gas_limit: int) -> str:
        raise NotImplementedError

    async def get_assigned_indices(self, identity: str) -> frozenset:
        raise NotImplementedError

    def subscribe_request_events(self, from_latest: bool = True) -> AsyncIterator[RequestEvent]:
        raise NotImplementedError

    async def submit_response(self, submission: ResponseSubmission, gas_limit: int) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        pass


def event_from_log(entry) -> RequestEvent:
    args = entry["args"]
    tx_hash = entry.get("transactionHash")
    return RequestEvent(
        request_index=int(args["index"]),
        airline=str(args["airline"]),
        flight=str(args["flight"]),
        timestamp=int(args["timestamp"]),
        block_number=entry.get("blockNumber"),
        transaction_hash=AsyncWeb3.to_hex(tx_hash) if isinstance(tx_hash, bytes) else tx_hash,
    )


class Web3LedgerClient(LedgerClient):
    def __init__(
        self,
        rpc_url: str,
        app_address: str,
        abi: Optional[list] = None,
        receipt_timeout: float = 120.0,
        poll_interval: float = 1.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.rpc_url = rpc_url
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        # One provider for every caller; aiohttp pools the connections underneath
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(app_address),
            abi=abi or ORACLE_ABI,
        )

    async def is_connected(self) -> bool:
        try:
            return await self.w3.is_connected()
        except Exception as e:
            log.warning(f"Ledger connectivity check failed for {self.rpc_url}: {e}")
            return False

    async def list_accounts(self) -> List[str]:
        try:
            return list(await self.w3.eth.accounts)
        except Exception as e:
            raise LedgerError(f"Cannot list accounts on {self.rpc_url}: {e}") from e

    async def _transact(self, fn, tx_params, what):
        try:
            tx_hash = await fn.transact(tx_params)
        except Exception as e:
            raise TransactionRejected(f"{what} rejected: {e}") from e
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            raise LedgerError(f"{what} receipt unavailable: {e}") from e
        if receipt["status"] != 1:
            raise TransactionRejected(f"{what} reverted", tx_hash=AsyncWeb3.to_hex(tx_hash))
        return AsyncWeb3.to_hex(tx_hash)

    async def register_actor(self, identity: str, fee_wei: int, gas_limit: int) -> str:
        return await self._transact(
            self.contract.functions.registerOracle(),
            {"from": identity, "value": fee_wei, "gas": gas_limit},
            f"registerOracle from {identity}",
        )

    async def get_assigned_indices(self, identity: str) -> frozenset:
        try:
            indexes = await self.contract.functions.getMyIndexes().call({"from": identity})
        except Exception as e:
            raise LedgerError(f"getMyIndexes for {identity} failed: {e}") from e
        return frozenset(int(i) for i in indexes)

    async def submit_response(self, submission: ResponseSubmission, gas_limit: int) -> str:
        return await self._transact(
            self.contract.functions.submitOracleResponse(
                submission.request_index,
                AsyncWeb3.to_checksum_address(submission.airline),
                submission.flight,
                submission.timestamp,
                int(submission.status_code),
            ),
            {"from": submission.actor_identity, "gas": gas_limit},
            f"submitOracleResponse from {submission.actor_identity}",
        )

    async def subscribe_request_events(self, from_latest: bool = True) -> AsyncIterator[RequestEvent]:
        from_block = "latest" if from_latest else "earliest"
        try:
            event_filter = await self.contract.events.OracleRequest.create_filter(
                from_block=from_block
            )
        except Exception as e:
            raise SubscriptionError(f"Cannot open OracleRequest filter: {e}") from e
        log.info(f"Listening for OracleRequest events from {from_block} on {self.rpc_url}")

        try:
            while True:
                try:
                    entries = await event_filter.get_new_entries()
                except Exception as e:
                    raise SubscriptionError(f"OracleRequest filter poll failed: {e}") from e
                for entry in entries:
                    yield event_from_log(entry)
                await asyncio.sleep(self.poll_interval)
        finally:
            # Runs on poll failure and when the consumer closes the stream
            try:
                await self.w3.eth.uninstall_filter(event_filter.filter_id)
            except Exception as e:
                log.warning(f"Could not uninstall OracleRequest filter {event_filter.filter_id}: {e}")

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
