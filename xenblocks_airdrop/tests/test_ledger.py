"""SolanaLedger adapter tests with a stub RPC client."""

import asyncio
from types import SimpleNamespace

import base58  # type: ignore[import-untyped]
import httpx
import pytest
from solana.rpc.types import MemcmpOpts  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]

from xenblocks_airdrop.discriminator import DISCRIMINATOR_AIRDROP_RUN
from xenblocks_airdrop.errors import LedgerError
from xenblocks_airdrop.ledger import SolanaLedger


class StubRPC:
    def __init__(self):
        self.filters = None

    async def get_program_accounts(self, program_id, commitment=None, encoding=None, filters=None):
        self.filters = filters
        acct = SimpleNamespace(pubkey=program_id, account=SimpleNamespace(data=b"\x01\x02"))
        return SimpleNamespace(value=[acct])

    async def get_multiple_accounts(self, addresses, commitment=None, encoding=None):
        return SimpleNamespace(
            value=[SimpleNamespace(data=b"abc"), None][: len(addresses)]
        )

    async def get_balance(self, address, commitment=None):
        raise httpx.ConnectError("connection refused")


def test_program_scan_filters():
    rpc = StubRPC()
    ledger = SolanaLedger(rpc)
    program_id = Keypair().pubkey()
    accounts = asyncio.run(
        ledger.get_program_accounts(program_id, 38, DISCRIMINATOR_AIRDROP_RUN)
    )
    assert accounts == [(program_id, b"\x01\x02")]
    size, memcmp = rpc.filters
    assert size == 38
    assert isinstance(memcmp, MemcmpOpts)
    assert memcmp.offset == 0
    assert base58.b58decode(memcmp.bytes) == DISCRIMINATOR_AIRDROP_RUN


def test_program_scan_without_discriminator():
    rpc = StubRPC()
    asyncio.run(SolanaLedger(rpc).get_program_accounts(Keypair().pubkey(), 99))
    assert rpc.filters == [99]


def test_missing_accounts_are_none():
    ledger = SolanaLedger(StubRPC())
    datas = asyncio.run(ledger.get_multiple_accounts([Keypair().pubkey(), Keypair().pubkey()]))
    assert datas == [b"abc", None]


def test_transport_errors_become_ledger_errors():
    ledger = SolanaLedger(StubRPC())
    with pytest.raises(LedgerError) as exc:
        asyncio.run(ledger.get_balance(Keypair().pubkey()))
    assert "connection refused" in str(exc.value)
