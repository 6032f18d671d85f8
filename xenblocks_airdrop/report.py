from __future__ import annotations

import json
import os
import time
from typing import Sequence

from xenblocks_airdrop.executor import RecipientOutcome


def outcome_to_dict(run_id: int | None, outcome: RecipientOutcome) -> dict:
    return {
        "run_id": run_id,
        "sol_wallet": str(outcome.sol_wallet),
        "eth_address": outcome.eth_address,
        "amounts": outcome.amounts,
        "bonus": outcome.bonus,
        "status": outcome.status.value,
        "batch": outcome.batch_index,
        "signature": outcome.signature,
        "error_kind": outcome.error_kind.value if outcome.error_kind else None,
        "reason": outcome.reason,
        "ts": int(time.time()),
    }


class JSONLReport:
    """Append-only JSON-lines log of per-recipient outcomes.

    Written once per run, after every batch has settled.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def append(self, run_id: int | None, outcomes: Sequence[RecipientOutcome]) -> None:
        lines = "".join(
            json.dumps(outcome_to_dict(run_id, o), separators=(",", ":")) + "\n"
            for o in outcomes
        )
        with open(self.path, "a") as f:
            f.write(lines)
            f.flush()
            os.fsync(f.fileno())
