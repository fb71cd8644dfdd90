# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, ConfigDict, Field
from typing import List, NamedTuple

class EpochSnapshot(BaseModel):
    """
    Reward amount and weighted-stake denominator of one epoch for one asset stream.

    Frozen once recorded: later stake changes never alter it.
    """
    model_config = ConfigDict(frozen=True)

    asset: str
    epoch: int                     # 1-indexed epoch number
    amount: int                    # Total reward for the epoch
    start_time: int                # Epoch start (unlock begins here)
    total_weighted_stake: int      # Pool weighted stake at record time
    revision: int                  # Ledger revision at record time
    recorded_at: int               # Unix timestamp of finalization

class ClaimKey(NamedTuple):
    stake_id: int
    epoch: int
    asset: str

    def storage_key(self) -> str:
        return f"{self.stake_id}:{self.epoch}:{self.asset}"

    @classmethod
    def from_storage_key(cls, raw: str) -> "ClaimKey":
        stake_id, epoch, asset = raw.split(":", 2)
        return cls(int(stake_id), int(epoch), asset)

class EpochAccrual(BaseModel):
    """Per-epoch breakdown of a pending computation."""
    epoch: int
    entitlement: int     # Full share of the epoch reward
    unlocked: int        # Portion released so far
    claimed: int         # Already paid (ClaimTracker)
    payable: int         # unlocked - claimed, never negative

    @property
    def fully_settled(self) -> bool:
        return self.unlocked == self.entitlement and self.claimed + self.payable == self.entitlement

class PendingRewards(BaseModel):
    asset: str
    stake_id: int
    amount: int = 0
    accruals: List[EpochAccrual] = Field(default_factory=list)
    # Highest epoch that is fully settled once `amount` is paid
    settled_through: int = 0
