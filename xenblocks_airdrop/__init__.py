from xenblocks_airdrop.airdrop import RunSummary, run_airdrop
from xenblocks_airdrop.amounts import format_amount, parse_external_amount
from xenblocks_airdrop.client import Client
from xenblocks_airdrop.config import (
    LEADERBOARD_URL,
    PROGRAM_ID,
    RPC_URLS,
    AddressFilter,
    AirdropConfig,
    BonusAirdropConfig,
    TokenConfig,
)
from xenblocks_airdrop.delta import RecipientDelta, calculate_deltas
from xenblocks_airdrop.errors import (
    AirdropError,
    ConfigError,
    FailureKind,
    InsufficientBalance,
    InsufficientFee,
    LedgerError,
    MalformedAccount,
    MalformedInput,
    SimulationFailed,
    classify_error,
)
from xenblocks_airdrop.executor import BatchResult, DistributionExecutor, RecipientOutcome
from xenblocks_airdrop.instructions import (
    InstructionKind,
    decode_instruction,
    encode_instruction,
)
from xenblocks_airdrop.leaderboard import LeaderboardClient, Miner
from xenblocks_airdrop.ledger import LedgerClient, SolanaLedger
from xenblocks_airdrop.pda import (
    derive_global_state_pda,
    derive_record_pda,
    derive_run_pda,
)
from xenblocks_airdrop.planner import Batch, BatchPlanner, FeeEstimate, estimate_fee, partition
from xenblocks_airdrop.rpc import new_rpc_client
from xenblocks_airdrop.runs import RunLifecycle
from xenblocks_airdrop.state import (
    AirdropRecord,
    AirdropRun,
    GlobalState,
    RecordLayout,
    decode_recipient_record,
)
from xenblocks_airdrop.tokens import get_associated_token_address

__all__ = [
    "AddressFilter",
    "AirdropConfig",
    "AirdropError",
    "AirdropRecord",
    "AirdropRun",
    "Batch",
    "BatchPlanner",
    "BatchResult",
    "BonusAirdropConfig",
    "Client",
    "ConfigError",
    "DistributionExecutor",
    "FailureKind",
    "FeeEstimate",
    "GlobalState",
    "InstructionKind",
    "InsufficientBalance",
    "InsufficientFee",
    "LEADERBOARD_URL",
    "LeaderboardClient",
    "LedgerClient",
    "LedgerError",
    "MalformedAccount",
    "MalformedInput",
    "Miner",
    "PROGRAM_ID",
    "RPC_URLS",
    "RecipientDelta",
    "RecipientOutcome",
    "RecordLayout",
    "RunLifecycle",
    "RunSummary",
    "SimulationFailed",
    "SolanaLedger",
    "TokenConfig",
    "calculate_deltas",
    "classify_error",
    "decode_instruction",
    "decode_recipient_record",
    "derive_global_state_pda",
    "derive_record_pda",
    "derive_run_pda",
    "encode_instruction",
    "estimate_fee",
    "format_amount",
    "get_associated_token_address",
    "new_rpc_client",
    "parse_external_amount",
    "partition",
]
