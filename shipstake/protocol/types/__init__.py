from .common import (
    LedgerInvariantError,
    OpType,
    ProtocolError,
    ReentrancyError,
    StakeNotFound,
    StakeStatus,
    StateError,
    TransferFailure,
    UnauthorizedError,
    ValidationError,
)
from .epoch import ClaimKey, EpochAccrual, EpochSnapshot, PendingRewards
from .stake import PoolTotals, Stake, WeightCheckpoint

__all__ = [
    "LedgerInvariantError",
    "OpType",
    "ProtocolError",
    "ReentrancyError",
    "StakeNotFound",
    "StakeStatus",
    "StateError",
    "TransferFailure",
    "UnauthorizedError",
    "ValidationError",
    "ClaimKey",
    "EpochAccrual",
    "EpochSnapshot",
    "PendingRewards",
    "PoolTotals",
    "Stake",
    "WeightCheckpoint",
]
