"""On-chain run records: opened before a distribution, finalized after it."""

from __future__ import annotations

import logging
from typing import Sequence

from solders.instruction import Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]

from xenblocks_airdrop.client import Client
from xenblocks_airdrop.errors import LedgerError
from xenblocks_airdrop.instructions import (
    create_run_ix,
    initialize_state_ix,
    update_run_totals_ix,
)
from xenblocks_airdrop.ledger import compile_transaction

logger = logging.getLogger(__name__)


class RunLifecycle:
    def __init__(self, client: Client, authority: Keypair) -> None:
        self._client = client
        self._authority = authority

    async def _submit(self, instructions: Sequence[Instruction]) -> str:
        ledger = self._client.ledger
        blockhash = await ledger.get_latest_blockhash()
        tx = compile_transaction(self._authority, instructions, blockhash.blockhash)
        return await ledger.send_and_confirm(tx, blockhash.last_valid_block_height)

    async def open_run(self, is_dry_run: bool) -> int:
        """Create the next run record and return its id.

        The global state is initialized first if this program has never
        recorded a run.
        """
        program_id = self._client.program_id
        authority = self._authority.pubkey()

        state = await self._client.fetch_global_state()
        if state is None:
            logger.info("initializing global state")
            sig = await self._submit([initialize_state_ix(program_id, authority)])
            logger.debug("global state initialized in %s", sig)
            state = await self._client.fetch_global_state()
            if state is None:
                raise LedgerError("global state not found after initialization")

        run_id = state.run_counter + 1
        sig = await self._submit([create_run_ix(program_id, authority, run_id, is_dry_run)])
        logger.info("created run #%d (dry_run=%s) in %s", run_id, is_dry_run, sig)
        return run_id

    async def close_run(
        self, run_id: int, success_count: int, total_amount: int, is_dry_run: bool = False
    ) -> str | None:
        """Record final totals. Returns None when there is nothing to record."""
        if is_dry_run or success_count == 0:
            logger.info(
                "leaving run #%d totals unset (dry_run=%s, successes=%d)",
                run_id,
                is_dry_run,
                success_count,
            )
            return None
        sig = await self._submit(
            [
                update_run_totals_ix(
                    self._client.program_id,
                    self._authority.pubkey(),
                    run_id,
                    success_count,
                    total_amount,
                )
            ]
        )
        logger.info(
            "run #%d finalized: %d recipients, %d base units in %s",
            run_id,
            success_count,
            total_amount,
            sig,
        )
        return sig
