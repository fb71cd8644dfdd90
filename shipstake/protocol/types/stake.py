# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from .common import StakeStatus
from ..config.params import MULTIPLIER_BASE

class WeightCheckpoint(BaseModel):
    """Weighted value of a stake from a given ledger revision onwards."""
    revision: int     # Ledger revision at which the value took effect
    weighted: int     # principal * multiplier // MULTIPLIER_BASE

class Stake(BaseModel):
    stake_id: int
    owner: str                 # Account that opened the stake
    principal: int             # Locked amount (only ever decreases)
    lock_weeks: int
    start_time: int            # Unix timestamp of deposit
    multiplier: int            # Fixed-point, 1000 = 1.0x
    status: StakeStatus = StakeStatus.OPEN

    # Reward tracking, keyed by asset id
    rewards_paid: Dict[str, int] = Field(default_factory=dict)
    # Last epoch fully unlocked and fully paid, per asset (claim checkpoint)
    settled_through: Dict[str, int] = Field(default_factory=dict)

    weight_history: List[WeightCheckpoint] = Field(default_factory=list)

    # Exit bookkeeping
    penalties_paid: int = 0
    closed_at: Optional[int] = None

    @property
    def weighted(self) -> int:
        if self.status == StakeStatus.CLOSED:
            return 0
        return self.principal * self.multiplier // MULTIPLIER_BASE

    @property
    def is_open(self) -> bool:
        return self.status == StakeStatus.OPEN

    def weight_at(self, revision: int) -> int:
        """
        Returns the weighted value the stake had at the given ledger revision.

        Checkpoints are appended in revision order, so the last checkpoint at or
        before `revision` wins. A stake with no checkpoint that early had no weight.
        """
        weight = 0
        for cp in self.weight_history:
            if cp.revision > revision:
                break
            weight = cp.weighted
        return weight

class PoolTotals(BaseModel):
    total_principal: int = 0
    total_weighted: int = 0
    stake_count: int = 0            # Open stakes
    penalties_retained: int = 0     # Early-exit penalties kept by the pool
    revision: int = 0               # Bumped on every ledger mutation
