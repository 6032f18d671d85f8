"""Leaderboard client tests."""

import asyncio

import httpx
import pytest
from solders.keypair import Keypair  # type: ignore[import-untyped]

from xenblocks_airdrop.config import AddressFilter
from xenblocks_airdrop.leaderboard import LeaderboardClient, parse_miner


def _rows(row, n):
    return [row(Keypair().pubkey(), f"0x{i:040x}", xnm=f"{i}E+18") for i in range(n)]


def test_paginates_until_partial_page(make_leaderboard, row):
    rows = _rows(row, 7)
    requests: list = []
    lb = make_leaderboard(rows, page_size=3, requests=requests)
    miners = asyncio.run(lb.fetch_miners())
    assert [m.account for m in miners] == [r["account"] for r in rows]
    assert [int(r.url.params["offset"]) for r in requests] == [0, 3, 6]
    assert all(r.url.params["require_sol_address"] == "true" for r in requests)
    assert all(r.url.params["limit"] == "3" for r in requests)


def test_stops_on_empty_page(make_leaderboard, row):
    requests: list = []
    lb = make_leaderboard(_rows(row, 4), page_size=2, requests=requests)
    assert len(asyncio.run(lb.fetch_miners())) == 4
    assert len(requests) == 3


def test_skips_unusable_rows(make_leaderboard, row):
    good = row(Keypair().pubkey(), "0x" + "11" * 20, xnm="1E+18")
    rows = [
        good,
        {"account": "0x" + "22" * 20, "xnm": "1E+18"},
        {"account": "0x" + "33" * 20, "solAddress": "not-a-key"},
        {"account": "0x" + "44" * 30, "solAddress": str(Keypair().pubkey())},
        "garbage",
    ]
    miners = asyncio.run(make_leaderboard(rows).fetch_miners())
    assert [m.account for m in miners] == [good["account"]]
    assert miners[0].xnm == "1E+18"


def test_address_filter(make_leaderboard, row):
    wallet = Keypair().pubkey()
    rows = [
        row(wallet, "0x" + "11" * 20),
        row(Keypair().pubkey(), "0xABCDEF" + "0" * 34),
        row(Keypair().pubkey(), "0x" + "99" * 20),
    ]
    only = AddressFilter(
        identities=frozenset({str(wallet)}),
        external_addresses=frozenset({"0xabcdef" + "0" * 34}),
    )
    miners = asyncio.run(make_leaderboard(rows).fetch_miners(only))
    assert [m.account for m in miners] == [rows[0]["account"], rows[1]["account"]]


def test_empty_filter_admits_all(make_leaderboard, row):
    miners = asyncio.run(make_leaderboard(_rows(row, 3)).fetch_miners(AddressFilter()))
    assert len(miners) == 3


def test_endpoint_query_is_merged():
    seen: list = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    lb = LeaderboardClient("https://lb.test/v1/leaderboard?network=x1", 10, http=http)
    assert asyncio.run(lb.fetch_miners()) == []
    assert seen[0].url.params["network"] == "x1"
    assert seen[0].url.path == "/v1/leaderboard"


def test_http_error_propagates():
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )
    lb = LeaderboardClient("https://lb.test/v1/leaderboard", 10, http=http)
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(lb.fetch_miners())


def test_parse_miner_numbers_become_strings():
    wallet = Keypair().pubkey()
    miner = parse_miner({"account": "0xab", "solAddress": f" {wallet} ", "xnm": 12, "xblk": None})
    assert miner.sol_address == wallet
    assert miner.xnm == "12"
    assert miner.xblk is None
    assert miner.key == (wallet, "0xab")
