"""Snapshot fetcher tests."""

import asyncio

from solders.keypair import Keypair  # type: ignore[import-untyped]

from xenblocks_airdrop.pda import derive_record_pda, derive_run_pda
from xenblocks_airdrop.state import AirdropRecord, AirdropRun, RecordLayout


def _record(xnm=1, xblk=0, layout=RecordLayout.CURRENT, eth=None) -> AirdropRecord:
    wallet = Keypair().pubkey()
    return AirdropRecord(
        sol_wallet=wallet,
        eth_address=eth or f"0x{bytes(wallet)[:20].hex()}",
        xnm_airdropped=xnm,
        xblk_airdropped=xblk,
        last_updated=1,
        bump=255,
        layout=layout,
    )


def test_fetch_records_chunks_and_omits_absent(ledger, client):
    present = [_record(xnm=i) for i in range(150)]
    for r in present:
        ledger.put_record(r)
    absent = [(Keypair().pubkey(), "0x" + "00" * 20) for _ in range(60)]
    keys = [(r.sol_wallet, r.eth_address) for r in present] + absent

    records = asyncio.run(client.fetch_records(keys))
    assert len(records) == 150
    assert records[keys[7]].xnm_airdropped == 7
    # 210 addresses at 100 per call
    assert ledger.calls["get_multiple_accounts"] == 3


def test_fetch_records_mixed_layouts(ledger, client):
    legacy = _record(xnm=900, layout=RecordLayout.LEGACY)
    current = _record(xnm=5, xblk=6)
    ledger.put_record(legacy)
    ledger.put_record(current)
    records = asyncio.run(
        client.fetch_records(
            [(legacy.sol_wallet, legacy.eth_address), (current.sol_wallet, current.eth_address)]
        )
    )
    assert records[(legacy.sol_wallet, legacy.eth_address)].layout is RecordLayout.LEGACY
    assert records[(legacy.sol_wallet, legacy.eth_address)].xnm_airdropped == 900
    assert records[(current.sol_wallet, current.eth_address)].xblk_airdropped == 6


def test_fetch_records_skips_malformed(ledger, client, program_id):
    good = _record()
    ledger.put_record(good)
    wallet = Keypair().pubkey()
    eth = "0x" + "ee" * 20
    addr, _ = derive_record_pda(program_id, wallet, eth)
    ledger.accounts[addr] = bytes(120)
    records = asyncio.run(
        client.fetch_records([(good.sol_wallet, good.eth_address), (wallet, eth)])
    )
    assert list(records) == [(good.sol_wallet, good.eth_address)]


def test_fetch_records_empty(ledger, client):
    assert asyncio.run(client.fetch_records([])) == {}
    assert ledger.calls["get_multiple_accounts"] == 0


def test_fetch_all_records_scans_both_layouts(ledger, client):
    ledger.put_record(_record(layout=RecordLayout.LEGACY))
    ledger.put_record(_record())
    ledger.put_record(_record())
    records = asyncio.run(client.fetch_all_records())
    assert sorted(r.layout.name for r in records) == ["CURRENT", "CURRENT", "LEGACY"]
    assert ledger.calls["get_program_accounts"] == 2


def test_fetch_all_runs_sorted(ledger, client, program_id):
    for run_id in (3, 1, 2):
        addr, bump = derive_run_pda(program_id, run_id)
        ledger.accounts[addr] = AirdropRun(run_id, 0, 0, 0, False, bump).to_bytes()
        ledger.owners[addr] = program_id
    runs = asyncio.run(client.fetch_all_runs())
    assert [r.run_id for r in runs] == [1, 2, 3]
    assert asyncio.run(client.fetch_run(2)).run_id == 2
    assert asyncio.run(client.fetch_run(4)) is None


def test_fetch_global_state_absent(client):
    assert asyncio.run(client.fetch_global_state()) is None


def test_token_balances(ledger, client, payer, xnm_mint):
    assert asyncio.run(client.fetch_token_balance(payer.pubkey(), xnm_mint)) == 10**15
    assert asyncio.run(client.fetch_token_balance(Keypair().pubkey(), xnm_mint)) == 0
    assert asyncio.run(client.fetch_balance(payer.pubkey())) == 5 * 10**9


def test_fetch_existing_accounts(ledger, client, payer, xnm_mint):
    funded = ledger.fund_tokens(payer.pubkey(), xnm_mint, 1)
    missing = Keypair().pubkey()
    assert asyncio.run(client.fetch_existing_accounts([funded, missing])) == {funded}
