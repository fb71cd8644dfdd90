# MIT License
# Copyright (c) 2025 Hashborn

"""
Stake Ledger

Owns every lock position and the pool-wide totals.

    multiplier = base + (lock_weeks - min_lock) * step     (clamped to [base, max])
    multiplier = max                                        at lock_weeks == max_lock
    weighted   = principal * multiplier // 1000

Totals are maintained incrementally and always equal the live sum over open
stakes; check_invariants() recomputes them from scratch.
"""

from typing import Dict, List, Optional, Set, Tuple
import logging

from ...protocol.config.economic_model import AdminConfig
from ...protocol.config.params import WEEK
from ...protocol.types.common import (
    LedgerInvariantError,
    StakeNotFound,
    StakeStatus,
    StateError,
    UnauthorizedError,
    ValidationError,
)
from ...protocol.types.stake import PoolTotals, Stake, WeightCheckpoint
from .penalty import PenaltyCalculator, flat_penalty

logger = logging.getLogger(__name__)


def compute_multiplier(lock_weeks: int, config: AdminConfig) -> int:
    if lock_weeks < config.min_lock_weeks or lock_weeks > config.max_lock_weeks:
        raise ValidationError(
            f"Lock period {lock_weeks} outside [{config.min_lock_weeks}, {config.max_lock_weeks}] weeks"
        )
    # Exact at the top of the curve, whatever the step rounding did
    if lock_weeks == config.max_lock_weeks:
        return config.max_multiplier

    multiplier = config.base_multiplier + (lock_weeks - config.min_lock_weeks) * config.step
    return max(config.base_multiplier, min(multiplier, config.max_multiplier))


class StakeLedger:
    def __init__(self, stakes: Dict[int, Stake] = None, totals: PoolTotals = None, next_id: int = 1):
        self._stakes: Dict[int, Stake] = stakes if stakes is not None else {}
        self.totals = totals if totals is not None else PoolTotals()
        self.next_id = next_id
        # Stakes modified since this ledger was created (or cloned)
        self.dirty: Set[int] = set()

    def clone(self) -> 'StakeLedger':
        """Deep copy for simulation; the original stays untouched."""
        new_stakes = {k: v.model_copy(deep=True) for k, v in self._stakes.items()}
        return StakeLedger(new_stakes, self.totals.model_copy(), self.next_id)

    # --- Queries ---

    def get(self, stake_id: int) -> Stake:
        stake = self._stakes.get(stake_id)
        if stake is None:
            raise StakeNotFound(f"Stake {stake_id} not found")
        return stake

    def find(self, stake_id: int) -> Optional[Stake]:
        return self._stakes.get(stake_id)

    def all_stakes(self) -> List[Stake]:
        return [self._stakes[k] for k in sorted(self._stakes)]

    def stakes_of(self, owner: str) -> List[Stake]:
        return [s for s in self.all_stakes() if s.owner == owner]

    @property
    def revision(self) -> int:
        return self.totals.revision

    def weight_at(self, stake_id: int, revision: int) -> int:
        return self.get(stake_id).weight_at(revision)

    def is_locked(self, stake_id: int, now: int) -> Tuple[bool, int]:
        stake = self.get(stake_id)
        unlock_time = stake.start_time + stake.lock_weeks * WEEK
        return stake.is_open and now < unlock_time, unlock_time

    # --- Mutations ---

    def open(self, owner: str, amount: int, lock_weeks: int, now: int, config: AdminConfig) -> Stake:
        if not owner:
            raise ValidationError("Stake owner is required")
        if amount < config.min_stake or amount > config.max_stake:
            raise ValidationError(
                f"Stake amount {amount} outside [{config.min_stake}, {config.max_stake}]"
            )
        multiplier = compute_multiplier(lock_weeks, config)

        stake = Stake(
            stake_id=self.next_id,
            owner=owner,
            principal=amount,
            lock_weeks=lock_weeks,
            start_time=now,
            multiplier=multiplier,
        )
        self.next_id += 1

        self.totals.total_principal += amount
        self.totals.total_weighted += stake.weighted
        self.totals.stake_count += 1
        self._checkpoint(stake)
        self._stakes[stake.stake_id] = stake

        logger.info(
            f"Stake {stake.stake_id} opened by {owner}: {amount} for {lock_weeks}w "
            f"(multiplier {multiplier}, weighted {stake.weighted})"
        )
        return stake

    def reduce(self, stake_id: int, caller: str, amount: int, now: int, config: AdminConfig) -> Tuple[int, int]:
        """
        Withdraws `amount` of principal (0 = everything).

        Returns (net_amount, penalty). Reward settlement happens before this call.
        """
        stake = self.require_exitable(stake_id, caller)
        if amount < 0:
            raise ValidationError("Withdraw amount cannot be negative")
        if amount == 0:
            amount = stake.principal
        if amount > stake.principal:
            raise ValidationError(f"Insufficient principal: stake has {stake.principal}, trying to withdraw {amount}")

        locked, unlock_time = self.is_locked(stake_id, now)
        remaining_weeks = PenaltyCalculator.remaining_weeks(unlock_time, now) if locked else 0
        penalty = PenaltyCalculator.from_config(config).amount_for(amount, remaining_weeks)

        self._withdraw(stake, amount, penalty, now)
        logger.info(
            f"Stake {stake_id} reduced by {amount} ({remaining_weeks}w remaining, penalty {penalty}), "
            f"principal left {stake.principal}"
        )
        return amount - penalty, penalty

    def emergency_exit(self, stake_id: int, caller: str, now: int, config: AdminConfig) -> Tuple[int, int]:
        if not config.emergency_exit_enabled:
            raise StateError("Emergency exit is disabled")
        stake = self.require_exitable(stake_id, caller)

        amount = stake.principal
        penalty = flat_penalty(amount, config.emergency_penalty_bps)
        self._withdraw(stake, amount, penalty, now)
        logger.warning(f"Emergency exit of stake {stake_id}: {amount} withdrawn, penalty {penalty}")
        return amount - penalty, penalty

    def release_retained(self, amount: int) -> int:
        """Takes `amount` (0 = all) out of the retained penalties."""
        retained = self.totals.penalties_retained
        if amount < 0:
            raise ValidationError("Release amount cannot be negative")
        if amount == 0:
            amount = retained
        if amount == 0:
            raise StateError("No retained penalties to release")
        if amount > retained:
            raise ValidationError(f"Only {retained} retained, cannot release {amount}")

        self.totals.penalties_retained -= amount
        logger.warning(f"Released {amount} of retained penalties, {self.totals.penalties_retained} left")
        return amount

    def check_invariants(self):
        open_stakes = [s for s in self._stakes.values() if s.is_open]
        principal = sum(s.principal for s in open_stakes)
        weighted = sum(s.weighted for s in open_stakes)
        if (principal, weighted, len(open_stakes)) != (
            self.totals.total_principal, self.totals.total_weighted, self.totals.stake_count
        ):
            raise LedgerInvariantError(
                f"Pool totals drifted: tracked ({self.totals.total_principal}, {self.totals.total_weighted}, "
                f"{self.totals.stake_count}) vs live ({principal}, {weighted}, {len(open_stakes)})"
            )

    # --- Internals ---

    def require_exitable(self, stake_id: int, caller: str) -> Stake:
        stake = self.get(stake_id)
        if stake.owner != caller:
            raise UnauthorizedError(f"Only the owner can withdraw stake {stake_id}")
        if not stake.is_open or stake.principal == 0:
            raise StateError(f"Stake {stake_id} is already closed")
        return stake

    def _withdraw(self, stake: Stake, amount: int, penalty: int, now: int):
        old_weighted = stake.weighted

        stake.principal -= amount
        stake.penalties_paid += penalty
        if stake.principal == 0:
            stake.status = StakeStatus.CLOSED
            stake.closed_at = now
            self.totals.stake_count -= 1

        self.totals.total_principal -= amount
        self.totals.total_weighted += stake.weighted - old_weighted
        self.totals.penalties_retained += penalty
        self._checkpoint(stake)

    def _checkpoint(self, stake: Stake):
        self.totals.revision += 1
        stake.weight_history.append(WeightCheckpoint(revision=self.totals.revision, weighted=stake.weighted))
        self.dirty.add(stake.stake_id)

    def mark_dirty(self, stake_id: int):
        self.get(stake_id)
        self.dirty.add(stake_id)
