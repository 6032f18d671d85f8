"""Shared fixtures: an in-memory ledger that executes tracker and token instructions."""

from __future__ import annotations

from collections import Counter
from decimal import Decimal
from typing import Callable

import httpx
import pytest
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import VersionedTransaction  # type: ignore[import-untyped]

from xenblocks_airdrop.client import Client
from xenblocks_airdrop.config import PROGRAM_ID, AirdropConfig, TokenConfig
from xenblocks_airdrop.errors import LedgerError
from xenblocks_airdrop.instructions import InstructionKind, decode_instruction
from xenblocks_airdrop.leaderboard import LeaderboardClient
from xenblocks_airdrop.ledger import PACKET_DATA_SIZE, Blockhash, Simulation
from xenblocks_airdrop.pda import derive_global_state_pda, derive_record_pda, derive_run_pda
from xenblocks_airdrop.state import AirdropRecord, AirdropRun, GlobalState
from xenblocks_airdrop.tokens import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    TokenAccount,
    decode_transfer_checked,
    get_associated_token_address,
)

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
NOW = 1_700_000_000


class FakeLedger:
    """LedgerClient that applies transactions to an in-memory account map.

    Transactions are all-or-nothing: instructions run against a staged copy
    that replaces the live state only when every instruction succeeded.
    """

    def __init__(self, program_id: Pubkey, units: int = 60_000) -> None:
        self.program_id = program_id
        self.units = units
        self.accounts: dict[Pubkey, bytes] = {}
        self.owners: dict[Pubkey, Pubkey] = {}
        self.balances: dict[Pubkey, int] = {}
        self.calls: Counter[str] = Counter()
        self.sent: list[VersionedTransaction] = []
        self.send_error: LedgerError | None = None
        self.simulation_error: str | None = None
        self._signatures = 0

    # -- LedgerClient --

    async def get_multiple_accounts(self, addresses):
        self.calls["get_multiple_accounts"] += 1
        assert len(addresses) <= 100
        return [self.accounts.get(a) for a in addresses]

    async def get_program_accounts(self, program_id, data_size, discriminator=None):
        self.calls["get_program_accounts"] += 1
        return [
            (addr, data)
            for addr, data in self.accounts.items()
            if self.owners.get(addr) == program_id
            and len(data) == data_size
            and (discriminator is None or data[:8] == discriminator)
        ]

    async def get_balance(self, address):
        return self.balances.get(address, 0)

    async def get_latest_blockhash(self):
        return Blockhash(Hash.default(), 1_000)

    async def simulate(self, tx):
        self.calls["simulate"] += 1
        self._check_size(tx)
        if self.simulation_error is not None:
            return Simulation(0, self.simulation_error, ["Program log: simulated failure"])
        try:
            self._apply(tx, dict(self.accounts), dict(self.owners))
        except LedgerError as e:
            return Simulation(0, str(e), e.logs)
        return Simulation(self.units)

    async def send_and_confirm(self, tx, last_valid_block_height=None):
        self.calls["send_and_confirm"] += 1
        if self.send_error is not None:
            raise self.send_error
        self._check_size(tx)
        accounts, owners = dict(self.accounts), dict(self.owners)
        self._apply(tx, accounts, owners)
        self.accounts, self.owners = accounts, owners
        self.sent.append(tx)
        self._signatures += 1
        return f"sig{self._signatures}"

    @staticmethod
    def _check_size(tx) -> None:
        size = len(bytes(tx))
        if size > PACKET_DATA_SIZE:
            raise LedgerError(f"transaction too large: {size} > {PACKET_DATA_SIZE}")

    # -- Seeding and inspection --

    def fund_tokens(
        self, owner: Pubkey, mint: Pubkey, amount: int, program_id: Pubkey = TOKEN_PROGRAM_ID
    ) -> Pubkey:
        ata = get_associated_token_address(owner, mint, program_id)
        self.accounts[ata] = TokenAccount(mint, owner, amount).to_bytes()
        self.owners[ata] = program_id
        return ata

    def token_balance(
        self, owner: Pubkey, mint: Pubkey, program_id: Pubkey = TOKEN_PROGRAM_ID
    ) -> int:
        data = self.accounts.get(get_associated_token_address(owner, mint, program_id))
        return 0 if data is None else TokenAccount.from_bytes(data).amount

    def put_record(self, record: AirdropRecord) -> Pubkey:
        addr, _ = derive_record_pda(self.program_id, record.sol_wallet, record.eth_address)
        self.accounts[addr] = record.to_bytes()
        self.owners[addr] = self.program_id
        return addr

    def record(self, sol_wallet: Pubkey, eth_address: str) -> AirdropRecord | None:
        addr, _ = derive_record_pda(self.program_id, sol_wallet, eth_address)
        data = self.accounts.get(addr)
        return None if data is None else AirdropRecord.from_bytes(data)

    def global_state(self) -> GlobalState | None:
        addr, _ = derive_global_state_pda(self.program_id)
        data = self.accounts.get(addr)
        return None if data is None else GlobalState.from_bytes(data)

    def run(self, run_id: int) -> AirdropRun | None:
        addr, _ = derive_run_pda(self.program_id, run_id)
        data = self.accounts.get(addr)
        return None if data is None else AirdropRun.from_bytes(data)

    # -- Instruction execution --

    def _apply(self, tx, accounts, owners) -> None:
        msg = tx.message
        keys = list(msg.account_keys)
        for cix in msg.instructions:
            program = keys[cix.program_id_index]
            metas = [keys[i] for i in bytes(cix.accounts)]
            data = bytes(cix.data)
            if program == COMPUTE_BUDGET_PROGRAM_ID:
                continue
            if program == ASSOCIATED_TOKEN_PROGRAM_ID:
                self._create_ata(metas, accounts, owners)
            elif program in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID):
                self._transfer(data, metas, accounts)
            elif program == self.program_id:
                self._tracker(data, metas, accounts, owners)
            else:
                raise LedgerError(f"unknown program {program}")

    def _create_ata(self, metas, accounts, owners) -> None:
        ata, owner, mint, token_program = metas[1], metas[2], metas[3], metas[5]
        if ata not in accounts:
            accounts[ata] = TokenAccount(mint, owner, 0).to_bytes()
            owners[ata] = token_program

    def _transfer(self, data, metas, accounts) -> None:
        amount, _ = decode_transfer_checked(data)
        source, dest = metas[0], metas[2]
        if source not in accounts or dest not in accounts:
            raise LedgerError(
                "Transaction simulation failed: invalid account data for instruction"
            )
        src = TokenAccount.from_bytes(accounts[source])
        if src.amount < amount:
            raise LedgerError(
                "Transaction simulation failed: Error processing Instruction 2",
                ["Program log: Error: insufficient funds",
                 "Program Tokenkeg failed: custom program error: 0x1"],
            )
        dst = TokenAccount.from_bytes(accounts[dest])
        src.amount -= amount
        dst.amount += amount
        accounts[source] = src.to_bytes()
        accounts[dest] = dst.to_bytes()

    def _tracker(self, data, metas, accounts, owners) -> None:
        kind, args = decode_instruction(data)
        pid = self.program_id
        if kind is InstructionKind.INITIALIZE_STATE:
            state, bump = derive_global_state_pda(pid)
            if state in accounts:
                raise LedgerError("Allocate: account already in use")
            accounts[state] = GlobalState(metas[0], 0, bump).to_bytes()
            owners[state] = pid
        elif kind is InstructionKind.CREATE_RUN:
            gs = GlobalState.from_bytes(accounts[metas[1]])
            gs.run_counter += 1
            run, bump = derive_run_pda(pid, gs.run_counter)
            if metas[2] != run:
                raise LedgerError("AnchorError: ConstraintSeeds. Error Number: 2006")
            accounts[metas[1]] = gs.to_bytes()
            accounts[run] = AirdropRun(gs.run_counter, NOW, 0, 0, args["dry_run"], bump).to_bytes()
            owners[run] = pid
        elif kind is InstructionKind.UPDATE_RUN_TOTALS:
            run = AirdropRun.from_bytes(accounts[metas[2]])
            run.total_recipients = args["total_recipients"]
            run.total_amount = args["total_amount"]
            accounts[metas[2]] = run.to_bytes()
        elif kind in (InstructionKind.INITIALIZE_RECORD, InstructionKind.INITIALIZE_AND_UPDATE):
            sol_wallet, addr = metas[1], metas[2]
            expected, bump = derive_record_pda(pid, sol_wallet, args["eth_address"])
            if addr != expected:
                raise LedgerError("AnchorError: ConstraintSeeds. Error Number: 2006")
            if addr in accounts:
                raise LedgerError("Allocate: account already in use")
            record = AirdropRecord(
                sol_wallet=sol_wallet,
                eth_address=args["eth_address"],
                xnm_airdropped=args.get("xnm_amount", 0),
                xblk_airdropped=args.get("xblk_amount", 0),
                last_updated=NOW,
                bump=bump,
            )
            record.reserved[0] = args.get("bonus_amount", 0)
            record.reserved[1] = args.get("native_amount", 0)
            accounts[addr] = record.to_bytes()
            owners[addr] = pid
        elif kind is InstructionKind.UPDATE_RECORD:
            addr = metas[1]
            if addr not in accounts:
                raise LedgerError(
                    "AnchorError: AccountNotInitialized. Error Number: 3012",
                    ["Program log: custom program error: 0xbc4"],
                )
            if len(accounts[addr]) != 155:
                raise LedgerError(
                    "AnchorError: AccountDidNotDeserialize. Error Number: 3003",
                    ["Program log: custom program error: 0xbbb"],
                )
            record = AirdropRecord.from_bytes(accounts[addr])
            record.xnm_airdropped += args["xnm_amount"]
            record.xblk_airdropped += args["xblk_amount"]
            record.reserved[0] += args["bonus_amount"]
            record.reserved[1] += args["native_amount"]
            record.last_updated = NOW
            accounts[addr] = record.to_bytes()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

TOKEN_BANK = 10**15


@pytest.fixture
def program_id() -> Pubkey:
    return Pubkey.from_string(PROGRAM_ID)


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def xnm_mint() -> Pubkey:
    return Keypair().pubkey()


@pytest.fixture
def xblk_mint() -> Pubkey:
    return Keypair().pubkey()


@pytest.fixture
def tokens(xnm_mint, xblk_mint) -> tuple[TokenConfig, ...]:
    return (
        TokenConfig("xnm", xnm_mint, 9),
        TokenConfig("xblk", xblk_mint, 9),
    )


@pytest.fixture
def ledger(program_id, payer, xnm_mint, xblk_mint) -> FakeLedger:
    fake = FakeLedger(program_id)
    fake.balances[payer.pubkey()] = 5 * 10**9
    fake.fund_tokens(payer.pubkey(), xnm_mint, TOKEN_BANK)
    fake.fund_tokens(payer.pubkey(), xblk_mint, TOKEN_BANK)
    return fake


@pytest.fixture
def client(ledger, program_id) -> Client:
    return Client(ledger, program_id)


@pytest.fixture
def config(program_id, tokens) -> AirdropConfig:
    return AirdropConfig(
        rpc_endpoint="http://localhost:8899",
        program_id=program_id,
        keypair_path="/dev/null",
        tokens=tokens,
        batch_size=2,
        concurrency=2,
        min_fee_balance=10_000_000,
        fee_buffer_multiplier=Decimal("1.2"),
        compute_unit_price=1_000,
    )


@pytest.fixture
def make_leaderboard() -> Callable[..., LeaderboardClient]:
    """Build a LeaderboardClient serving ``rows`` through a mock transport."""

    def factory(rows: list[dict], page_size: int = 1000, requests: list | None = None):
        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            return httpx.Response(200, json={"miners": rows[offset : offset + limit]})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return LeaderboardClient("https://leaderboard.test/v1/leaderboard", page_size, http=http)

    return factory


def miner_row(sol: Pubkey, account: str, xnm: str = "0", xblk: str = "0") -> dict:
    return {"account": account, "solAddress": str(sol), "xnm": xnm, "xblk": xblk, "xuni": "0"}


@pytest.fixture
def row() -> Callable[..., dict]:
    return miner_row
