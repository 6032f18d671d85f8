"""Ledger call contract and its solana-py implementation.

Engine code talks to the ledger only through :class:`LedgerClient`, so the
same paths run against a live RPC node or an in-memory ledger in tests.
Every failure from the underlying client surfaces as :class:`LedgerError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

import base58  # type: ignore[import-untyped]
import httpx
from solana.exceptions import SolanaRpcException  # type: ignore[import-untyped]
from solana.rpc.async_api import AsyncClient  # type: ignore[import-untyped]
from solana.rpc.commitment import Commitment, Confirmed  # type: ignore[import-untyped]
from solana.rpc.core import (  # type: ignore[import-untyped]
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import MemcmpOpts, TxOpts  # type: ignore[import-untyped]
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.instruction import Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.message import MessageV0  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import VersionedTransaction  # type: ignore[import-untyped]

from xenblocks_airdrop.errors import LedgerError

logger = logging.getLogger(__name__)

# Maximum serialized transaction size accepted by the network.
PACKET_DATA_SIZE = 1232

_CLIENT_ERRORS = (
    RPCException,
    SolanaRpcException,
    UnconfirmedTxError,
    TransactionExpiredBlockheightExceededError,
    httpx.HTTPError,
)


@dataclass
class Simulation:
    units_consumed: int
    err: str | None = None
    logs: list[str] = field(default_factory=list)


@dataclass
class Blockhash:
    blockhash: Hash
    last_valid_block_height: int


class LedgerClient(Protocol):
    async def get_multiple_accounts(
        self, addresses: Sequence[Pubkey]
    ) -> list[bytes | None]: ...

    async def get_program_accounts(
        self, program_id: Pubkey, data_size: int, discriminator: bytes | None = None
    ) -> list[tuple[Pubkey, bytes]]: ...

    async def get_balance(self, address: Pubkey) -> int: ...

    async def get_latest_blockhash(self) -> Blockhash: ...

    async def simulate(self, tx: VersionedTransaction) -> Simulation: ...

    async def send_and_confirm(
        self, tx: VersionedTransaction, last_valid_block_height: int | None = None
    ) -> str: ...


def compile_transaction(
    payer: Keypair, instructions: Sequence[Instruction], blockhash: Hash
) -> VersionedTransaction:
    msg = MessageV0.try_compile(
        payer=payer.pubkey(),
        instructions=list(instructions),
        address_lookup_table_accounts=[],
        recent_blockhash=blockhash,
    )
    return VersionedTransaction(msg, [payer])


def _exception_logs(e: Exception) -> list[str]:
    # Preflight failures carry the simulation result under args[0].data.
    err = e.args[0] if e.args else None
    data = getattr(err, "data", None)
    logs = getattr(data, "logs", None)
    return list(logs or [])


def _exception_message(e: Exception) -> str:
    err = e.args[0] if e.args else None
    message = getattr(err, "message", None)
    return str(message) if message else str(e)


class SolanaLedger:
    """LedgerClient backed by ``solana.rpc.async_api.AsyncClient``."""

    def __init__(self, rpc: AsyncClient, commitment: Commitment = Confirmed) -> None:
        self._rpc = rpc
        self._commitment = commitment

    async def close(self) -> None:
        await self._rpc.close()

    async def get_multiple_accounts(
        self, addresses: Sequence[Pubkey]
    ) -> list[bytes | None]:
        try:
            resp = await self._rpc.get_multiple_accounts(
                list(addresses), commitment=self._commitment, encoding="base64"
            )
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"getMultipleAccounts: {_exception_message(e)}") from e
        return [None if acct is None else bytes(acct.data) for acct in resp.value]

    async def get_program_accounts(
        self, program_id: Pubkey, data_size: int, discriminator: bytes | None = None
    ) -> list[tuple[Pubkey, bytes]]:
        filters: list = [data_size]
        if discriminator is not None:
            filters.append(
                MemcmpOpts(offset=0, bytes=base58.b58encode(discriminator).decode())
            )
        try:
            resp = await self._rpc.get_program_accounts(
                program_id,
                commitment=self._commitment,
                encoding="base64",
                filters=filters,
            )
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"getProgramAccounts: {_exception_message(e)}") from e
        return [(acct.pubkey, bytes(acct.account.data)) for acct in resp.value]

    async def get_balance(self, address: Pubkey) -> int:
        try:
            resp = await self._rpc.get_balance(address, commitment=self._commitment)
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"getBalance: {_exception_message(e)}") from e
        return resp.value

    async def get_latest_blockhash(self) -> Blockhash:
        try:
            resp = await self._rpc.get_latest_blockhash(commitment=self._commitment)
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"getLatestBlockhash: {_exception_message(e)}") from e
        return Blockhash(resp.value.blockhash, resp.value.last_valid_block_height)

    async def simulate(self, tx: VersionedTransaction) -> Simulation:
        try:
            resp = await self._rpc.simulate_transaction(
                tx, sig_verify=False, commitment=self._commitment
            )
        except _CLIENT_ERRORS as e:
            raise LedgerError(
                f"simulateTransaction: {_exception_message(e)}", _exception_logs(e)
            ) from e
        value = resp.value
        return Simulation(
            units_consumed=value.units_consumed or 0,
            err=None if value.err is None else str(value.err),
            logs=list(value.logs or []),
        )

    async def send_and_confirm(
        self, tx: VersionedTransaction, last_valid_block_height: int | None = None
    ) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=self._commitment)
        try:
            resp = await self._rpc.send_transaction(tx, opts=opts)
            signature = resp.value
            logger.debug("submitted %s", signature)
            status = await self._rpc.confirm_transaction(
                signature,
                commitment=self._commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except _CLIENT_ERRORS as e:
            raise LedgerError(_exception_message(e), _exception_logs(e)) from e
        result = status.value[0] if status.value else None
        if result is not None and result.err is not None:
            raise LedgerError(f"transaction {signature} failed: {result.err}")
        return str(signature)
