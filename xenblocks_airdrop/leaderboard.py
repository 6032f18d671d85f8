"""Paginated client for the XenBlocks leaderboard API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from xenblocks_airdrop.config import DEFAULT_PAGE_SIZE, LEADERBOARD_URL, AddressFilter
from xenblocks_airdrop.pda import EXTERNAL_ADDRESS_LEN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Miner:
    """One leaderboard row. Amounts are raw 18-decimal strings."""

    account: str  # external (ETH) address
    sol_address: Pubkey
    xnm: str | None = None
    xblk: str | None = None
    xuni: str | None = None

    @property
    def key(self) -> tuple[Pubkey, str]:
        return (self.sol_address, self.account)

    def amount_for(self, symbol: str) -> str | None:
        return getattr(self, symbol)


def _as_amount(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def parse_miner(entry: Any) -> Miner | None:
    """Build a Miner from one API entry, or None if it cannot receive an airdrop."""
    if not isinstance(entry, dict):
        return None
    account = entry.get("account")
    sol_address = entry.get("solAddress")
    if not account or not sol_address:
        return None
    if len(str(account).encode()) > EXTERNAL_ADDRESS_LEN:
        logger.warning("skipping miner with oversized account %r", account)
        return None
    try:
        identity = Pubkey.from_string(str(sol_address).strip())
    except ValueError:
        logger.warning("skipping miner %s with invalid solAddress %r", account, sol_address)
        return None
    return Miner(
        account=str(account),
        sol_address=identity,
        xnm=_as_amount(entry.get("xnm")),
        xblk=_as_amount(entry.get("xblk")),
        xuni=_as_amount(entry.get("xuni")),
    )


class LeaderboardClient:
    def __init__(
        self,
        endpoint: str = LEADERBOARD_URL,
        page_size: int = DEFAULT_PAGE_SIZE,
        http: httpx.AsyncClient | None = None,
        timeout: float = 30,
    ) -> None:
        base, _, query = endpoint.partition("?")
        self._base_url = base
        self._base_params = dict(httpx.QueryParams(query))
        self._page_size = page_size
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_page(self, offset: int) -> list[Any]:
        params = {
            **self._base_params,
            "limit": str(self._page_size),
            "offset": str(offset),
            "require_sol_address": "true",
        }
        r = await self._http.get(self._base_url, params=params)
        r.raise_for_status()
        body = r.json()
        if isinstance(body, dict):
            rows = body.get("miners", [])
        else:
            rows = body
        if not isinstance(rows, list):
            raise ValueError(f"unexpected leaderboard response shape: {type(rows).__name__}")
        return rows

    async def fetch_miners(self, address_filter: AddressFilter | None = None) -> list[Miner]:
        """Fetch every page, in feed order, until an empty or partial page."""
        miners: list[Miner] = []
        offset = 0
        skipped = 0
        while True:
            rows = await self.fetch_page(offset)
            for row in rows:
                miner = parse_miner(row)
                if miner is None:
                    skipped += 1
                    continue
                miners.append(miner)
            logger.debug("leaderboard page offset=%d rows=%d", offset, len(rows))
            if len(rows) < self._page_size:
                break
            offset += len(rows)

        if skipped:
            logger.info("skipped %d leaderboard rows without a usable address", skipped)
        if address_filter is not None and address_filter.active:
            before = len(miners)
            miners = [m for m in miners if address_filter.admits(str(m.sol_address), m.account)]
            logger.info("address filter kept %d of %d miners", len(miners), before)
        logger.info("loaded %d miners from leaderboard", len(miners))
        return miners
