# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Stream Accounting

One RewardStream per income source: the protocol-asset emission stream and one
stream per registered revenue asset. Every stream works the same way:

1. Once per epoch an authorized caller finalizes an EpochSnapshot
   (reward amount + pool weighted stake at that moment).
2. A stake that existed at or before the epoch start is entitled to
   amount * stake_weight_at_snapshot // total_weighted_stake.
3. The entitlement unlocks linearly over the epoch.
4. ClaimTracker holds what was already paid; only the difference is payable.

Rounding dust (integer division) stays in the pool, as does the share of
stakes that joined mid-epoch before the snapshot was taken.
"""

from bisect import bisect_right, insort
from typing import Dict, List, Optional, Set
import logging

from ...protocol.types.common import StateError, ValidationError
from ...protocol.types.epoch import ClaimKey, EpochAccrual, EpochSnapshot, PendingRewards
from ...protocol.types.stake import Stake
from .claims import ClaimTracker
from .unlock import LinearUnlockCalculator, linear_unlock

logger = logging.getLogger(__name__)


class RewardStream:
    def __init__(self, asset: str, snapshots: Dict[int, EpochSnapshot] = None,
                 unlock: LinearUnlockCalculator = None):
        self.asset = asset
        self._snapshots: Dict[int, EpochSnapshot] = snapshots if snapshots is not None else {}
        self._epochs: List[int] = sorted(self._snapshots)
        # Epochs finalized since this stream was created (or cloned)
        self.dirty: Set[int] = set()
        self.unlock = unlock or linear_unlock

    def clone(self) -> 'RewardStream':
        # Snapshots are frozen models, sharing them is safe
        return RewardStream(self.asset, dict(self._snapshots), self.unlock)

    # --- Snapshots ---

    def record_epoch(self, epoch: int, amount: int, total_weighted: int, revision: int,
                     start_time: int, now: int) -> EpochSnapshot:
        """
        Finalizes the snapshot of `epoch`.

        Exactly one snapshot per epoch: a second finalization is rejected rather
        than merged, so a denominator can never change after the fact.
        """
        if epoch < 1:
            raise StateError("Cannot record rewards before genesis")
        if amount <= 0:
            raise ValidationError(f"Reward amount must be positive, got {amount}")
        if epoch in self._snapshots:
            raise StateError(f"Epoch {epoch} already finalized for {self.asset}")
        if total_weighted <= 0:
            raise StateError(f"No weighted stake to distribute {self.asset} rewards to in epoch {epoch}")

        snapshot = EpochSnapshot(
            asset=self.asset,
            epoch=epoch,
            amount=amount,
            start_time=start_time,
            total_weighted_stake=total_weighted,
            revision=revision,
            recorded_at=now,
        )
        self._snapshots[epoch] = snapshot
        insort(self._epochs, epoch)
        self.dirty.add(epoch)
        logger.info(
            f"Epoch {epoch} finalized for {self.asset}: amount {amount}, "
            f"total weighted {total_weighted} (revision {revision})"
        )
        return snapshot

    def snapshot(self, epoch: int) -> Optional[EpochSnapshot]:
        return self._snapshots.get(epoch)

    def snapshots(self) -> List[EpochSnapshot]:
        return [self._snapshots[e] for e in self._epochs]

    def total_recorded(self) -> int:
        return sum(s.amount for s in self._snapshots.values())

    # --- Entitlements ---

    def entitlement(self, stake: Stake, snapshot: EpochSnapshot) -> int:
        if stake.start_time > snapshot.start_time:
            return 0
        weight = stake.weight_at(snapshot.revision)
        return snapshot.amount * weight // snapshot.total_weighted_stake

    def pending_for(self, stake: Stake, through_epoch: int, now: int, claims: ClaimTracker) -> PendingRewards:
        start_after = stake.settled_through.get(self.asset, 0)
        pending = PendingRewards(asset=self.asset, stake_id=stake.stake_id, settled_through=start_after)
        contiguous = True

        # Everything up to the checkpoint is settled, start right after it
        for epoch in self._epochs[bisect_right(self._epochs, start_after):]:
            if epoch > through_epoch:
                break
            snapshot = self._snapshots[epoch]

            # Stakes created after the epoch began never share in it
            if stake.start_time > snapshot.start_time:
                if contiguous:
                    pending.settled_through = epoch
                continue

            entitlement = self.entitlement(stake, snapshot)
            unlocked = min(self.unlock.unlock(snapshot.start_time, now, entitlement), entitlement)
            claimed = claims.get(ClaimKey(stake.stake_id, epoch, self.asset))
            payable = max(0, unlocked - claimed)

            accrual = EpochAccrual(
                epoch=epoch,
                entitlement=entitlement,
                unlocked=unlocked,
                claimed=claimed,
                payable=payable,
            )
            pending.accruals.append(accrual)
            pending.amount += payable

            if contiguous and accrual.fully_settled:
                pending.settled_through = epoch
            else:
                contiguous = False

        return pending

    def apply_claim(self, stake: Stake, pending: PendingRewards, claims: ClaimTracker):
        """Writes the bookkeeping for a computed payout. Transfers happen later."""
        if pending.asset != self.asset or pending.stake_id != stake.stake_id:
            raise ValidationError("Pending rewards do not belong to this stream/stake")

        for accrual in pending.accruals:
            if accrual.payable == 0:
                continue
            key = ClaimKey(stake.stake_id, accrual.epoch, self.asset)
            claims.set(key, accrual.claimed + accrual.payable)

        stake.rewards_paid[self.asset] = stake.rewards_paid.get(self.asset, 0) + pending.amount
        if pending.settled_through > stake.settled_through.get(self.asset, 0):
            stake.settled_through[self.asset] = pending.settled_through


class RevenueAssetRegistry:
    """Append-only whitelist of external revenue assets."""

    def __init__(self, assets: List[str] = None, staking_asset: str = None):
        self._assets: List[str] = list(assets) if assets else []
        self.staking_asset = staking_asset

    def register(self, asset: str):
        if not asset or not asset.strip():
            raise ValidationError("Asset identifier is required")
        if asset == self.staking_asset:
            raise ValidationError(f"{asset} is the staking asset, not a revenue asset")
        if asset in self._assets:
            raise ValidationError(f"Revenue asset {asset} already registered")
        self._assets.append(asset)
        logger.info(f"Revenue asset registered: {asset}")

    def is_supported(self, asset: str) -> bool:
        return asset in self._assets

    def require(self, asset: str):
        if not self.is_supported(asset):
            raise ValidationError(f"Unsupported revenue asset: {asset}")

    def assets(self) -> List[str]:
        return list(self._assets)

    def clone(self) -> 'RevenueAssetRegistry':
        return RevenueAssetRegistry(self._assets, self.staking_asset)
