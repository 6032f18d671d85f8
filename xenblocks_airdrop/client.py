"""Read-side client for airdrop tracker program accounts."""

from __future__ import annotations

import logging
from typing import Sequence

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.config import PROGRAM_ID, RPC_URLS
from xenblocks_airdrop.discriminator import DISCRIMINATOR_AIRDROP_RECORD, DISCRIMINATOR_AIRDROP_RUN
from xenblocks_airdrop.ledger import LedgerClient, SolanaLedger
from xenblocks_airdrop.pda import derive_global_state_pda, derive_record_pda, derive_run_pda
from xenblocks_airdrop.rpc import new_rpc_client
from xenblocks_airdrop.state import (
    AirdropRecord,
    AirdropRun,
    GlobalState,
    RecordLayout,
    decode_recipient_record,
)
from xenblocks_airdrop.tokens import TOKEN_PROGRAM_ID, TokenAccount, get_associated_token_address

logger = logging.getLogger(__name__)

# Upper bound of getMultipleAccounts.
MAX_ACCOUNTS_PER_CALL = 100

RecipientKey = tuple[Pubkey, str]


class Client:
    """Client for airdrop tracker accounts and payer balances."""

    def __init__(self, ledger: LedgerClient, program_id: Pubkey) -> None:
        self._ledger = ledger
        self._program_id = program_id

    @classmethod
    def from_url(cls, url: str, program_id: Pubkey | None = None) -> Client:
        return cls(
            SolanaLedger(new_rpc_client(url)),
            program_id or Pubkey.from_string(PROGRAM_ID),
        )

    @classmethod
    def testnet(cls) -> Client:
        """Create a client configured for the X1 testnet."""
        return cls.from_url(RPC_URLS["testnet"])

    @property
    def ledger(self) -> LedgerClient:
        return self._ledger

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    # -- Tracker program accounts --

    async def fetch_global_state(self) -> GlobalState | None:
        addr, _ = derive_global_state_pda(self._program_id)
        (data,) = await self._ledger.get_multiple_accounts([addr])
        if data is None:
            return None
        return GlobalState.from_bytes(data)

    async def fetch_run(self, run_id: int) -> AirdropRun | None:
        addr, _ = derive_run_pda(self._program_id, run_id)
        (data,) = await self._ledger.get_multiple_accounts([addr])
        if data is None:
            return None
        return AirdropRun.from_bytes(data)

    async def fetch_records(
        self, recipients: Sequence[RecipientKey]
    ) -> dict[RecipientKey, AirdropRecord]:
        """Fetch the current record for each (wallet, external address) pair.

        Pairs without a record are omitted. Records that fail to decode are
        logged and omitted.
        """
        addresses: dict[RecipientKey, Pubkey] = {}
        for key in recipients:
            if key not in addresses:
                sol_wallet, eth_address = key
                addresses[key], _ = derive_record_pda(self._program_id, sol_wallet, eth_address)

        keys = list(addresses)
        datas = await self.fetch_accounts([addresses[k] for k in keys])

        records: dict[RecipientKey, AirdropRecord] = {}
        for key, data in zip(keys, datas):
            if data is None:
                continue
            try:
                records[key] = decode_recipient_record(data)
            except ValueError as e:
                logger.warning("skipping record %s for %s: %s", addresses[key], key[0], e)
        logger.debug("fetched %d of %d records", len(records), len(keys))
        return records

    async def fetch_all_records(self) -> list[AirdropRecord]:
        """Scan the program for every record of either layout."""
        records = []
        for layout in (RecordLayout.LEGACY, RecordLayout.CURRENT):
            accounts = await self._ledger.get_program_accounts(
                self._program_id, layout.size, DISCRIMINATOR_AIRDROP_RECORD
            )
            for addr, data in accounts:
                try:
                    records.append(decode_recipient_record(data))
                except ValueError as e:
                    logger.warning("skipping record %s: %s", addr, e)
        return records

    async def fetch_all_runs(self) -> list[AirdropRun]:
        accounts = await self._ledger.get_program_accounts(
            self._program_id, AirdropRun.STRUCT_SIZE, DISCRIMINATOR_AIRDROP_RUN
        )
        runs = []
        for addr, data in accounts:
            try:
                runs.append(AirdropRun.from_bytes(data))
            except ValueError as e:
                logger.warning("skipping run %s: %s", addr, e)
        return sorted(runs, key=lambda r: r.run_id)

    # -- Generic accounts --

    async def fetch_accounts(self, addresses: Sequence[Pubkey]) -> list[bytes | None]:
        """Bulk-read accounts, at most MAX_ACCOUNTS_PER_CALL per round-trip."""
        out: list[bytes | None] = []
        for i in range(0, len(addresses), MAX_ACCOUNTS_PER_CALL):
            chunk = addresses[i : i + MAX_ACCOUNTS_PER_CALL]
            out.extend(await self._ledger.get_multiple_accounts(chunk))
        return out

    async def fetch_existing_accounts(self, addresses: Sequence[Pubkey]) -> set[Pubkey]:
        datas = await self.fetch_accounts(addresses)
        return {addr for addr, data in zip(addresses, datas) if data is not None}

    async def fetch_balance(self, owner: Pubkey) -> int:
        return await self._ledger.get_balance(owner)

    async def fetch_token_balance(
        self, owner: Pubkey, mint: Pubkey, token_program_id: Pubkey = TOKEN_PROGRAM_ID
    ) -> int:
        ata = get_associated_token_address(owner, mint, token_program_id)
        (data,) = await self._ledger.get_multiple_accounts([ata])
        if data is None:
            return 0
        return TokenAccount.from_bytes(data).amount
