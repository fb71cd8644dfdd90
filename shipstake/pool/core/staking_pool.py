# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking Pool

Operation surface of the engine. Every mutating operation:

1. samples the clock once and reads the admin config once,
2. applies its bookkeeping to a clone of the pool state,
3. swaps the clone in and writes its touched keys to storage (commit)
   BEFORE any asset moves,
4. hands the transfers to the AssetBank as one batch,
5. restores the pre-operation state, in memory and in storage, if the
   batch fails.

If the storage write itself fails nothing has moved yet and the operation
is simply rolled back. A re-entrant call made from inside step 4 (e.g. a
token callback) is rejected.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import threading
import time

from ...protocol.config.economic_model import AdminConfig, ECONOMIC_CONFIG
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ...protocol.types.common import (
    OpType,
    ProtocolError,
    ReentrancyError,
    StateError,
    UnauthorizedError,
    ValidationError,
)
from ...protocol.types.epoch import EpochSnapshot, PendingRewards
from ...protocol.types.stake import PoolTotals, Stake
from ..observability import metrics
from ..storage.db import StorageDB
from . import events as ev
from .epoch_clock import EpochClock
from .events import EventBus, PoolEvent, event_bus
from .state import PoolState
from .transfers import AssetBank, Transfer

logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    result: Any = None
    transfers: List[Transfer] = field(default_factory=list)
    events: List[PoolEvent] = field(default_factory=list)
    new_config: Optional[AdminConfig] = None


class StakingPool:
    def __init__(self, bank: AssetBank, config: AdminConfig = None, network: NetworkConfig = None,
                 clock: Callable[[], float] = time.time, db_path: str = None, bus: EventBus = None):
        self.network = network or CURRENT_NETWORK
        self.config = config or ECONOMIC_CONFIG
        self.bank = bank
        self.clock = clock
        self.epochs = EpochClock(self.network.genesis_time)
        self.bus = bus or event_bus

        self.db = StorageDB(db_path) if db_path else None
        if self.db:
            self.state = PoolState.load(self.db, self.network.staking_asset)
        else:
            self.state = PoolState(staking_asset=self.network.staking_asset)

        self._lock = threading.RLock()
        self._in_flight = False
        logger.info(
            f"Staking pool ready on {self.network.network_id} "
            f"(genesis {self.network.genesis_time}, epoch {self.epochs.current_epoch(self._now())})"
        )

    @property
    def staking_asset(self) -> str:
        return self.network.staking_asset

    @property
    def pool_account(self) -> str:
        return self.network.pool_account

    def _now(self) -> int:
        return int(self.clock())

    # ═══════════════════════════════════════════════════════════════════
    # ATOMIC EXECUTION
    # ═══════════════════════════════════════════════════════════════════

    def _execute(self, op: OpType, apply: Callable[[PoolState, AdminConfig, int], _Outcome]) -> Any:
        with self._lock:
            if self._in_flight:
                metrics.record_failure(op.value, ReentrancyError())
                raise ReentrancyError(f"{op.value} re-entered while another operation is in flight")
            self._in_flight = True
            try:
                config = self.config
                now = self._now()
                previous = self.state
                draft = previous.clone()

                outcome = apply(draft, config, now)
                draft.check_invariants()

                # Effects before interactions: memory and storage both hold the draft
                self.state = draft
                if outcome.new_config is not None:
                    self.config = outcome.new_config
                try:
                    written = draft.persist()
                except Exception as e:
                    logger.error(f"{op.value} rolled back, could not store state: {e}")
                    self._restore(previous, config)
                    raise

                if outcome.transfers:
                    try:
                        self.bank.execute(outcome.transfers)
                    except Exception as e:
                        logger.error(f"{op.value} rolled back, transfer failed: {e}")
                        self._restore(previous, config, written)
                        raise
            except ProtocolError as e:
                metrics.record_failure(op.value, e)
                logger.warning(f"{op.value} rejected: {e}")
                raise
            finally:
                self._in_flight = False

        metrics.record_operation(op.value)
        for event in outcome.events:
            if event.name == ev.REWARDS_CLAIMED:
                metrics.record_claim(event.data["asset"], event.data["amount"])
            elif event.name == ev.EPOCH_RECORDED:
                metrics.record_epoch(event.data["asset"], event.data["amount"])
        self.bus.publish(outcome.events)
        return outcome.result

    def _restore(self, previous: PoolState, config: AdminConfig, written: List[str] = None):
        """Puts the pre-operation state back in memory and, for `written` keys, in storage."""
        self.state = previous
        self.config = config
        if written:
            try:
                previous.persist(written)
            except Exception as e:
                logger.critical(f"Stored pool state diverged from memory, reload required: {e}")
                raise

    @staticmethod
    def _require_active(state: PoolState):
        if state.paused:
            raise StateError("Pool is paused")

    @staticmethod
    def _require_admin(config: AdminConfig, caller: str):
        if not config.is_admin(caller):
            logger.warning(f"Unauthorized admin call from {caller}")
            raise UnauthorizedError(f"{caller} is not an admin")

    # ═══════════════════════════════════════════════════════════════════
    # STAKING
    # ═══════════════════════════════════════════════════════════════════

    def open_stake(self, caller: str, amount: int, lock_weeks: int) -> Stake:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_active(state)
            stake = state.ledger.open(caller, amount, lock_weeks, now, config)
            return _Outcome(
                result=stake.model_copy(deep=True),
                transfers=[Transfer(asset=self.staking_asset, source=caller, dest=self.pool_account, amount=amount)],
                events=[PoolEvent.stake_opened(stake)],
            )
        return self._execute(OpType.OPEN_STAKE, apply)

    def reduce_stake(self, caller: str, stake_id: int, amount: int = 0) -> Dict[str, Any]:
        """
        Withdraws principal (amount 0 = close the stake).

        Unlocked rewards of every stream are paid out first, so nothing accrued
        is forfeited by leaving early.
        """
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_active(state)
            stake = state.ledger.require_exitable(stake_id, caller)
            rewards, transfers = self._settle(state, stake, now)

            net, penalty = state.ledger.reduce(stake_id, caller, amount, now, config)
            if net > 0:
                transfers.append(Transfer(asset=self.staking_asset, source=self.pool_account, dest=caller, amount=net))

            closed = not stake.is_open
            outcome = _Outcome(
                result={"stake_id": stake_id, "net_amount": net, "penalty": penalty,
                        "rewards": rewards, "closed": closed},
                transfers=transfers,
            )
            outcome.events.append(PoolEvent.stake_exited(stake_id, caller, net, penalty, closed))
            outcome.events.extend(PoolEvent.rewards_claimed(caller, [stake_id], rewards))
            return outcome
        return self._execute(OpType.REDUCE_STAKE, apply)

    def emergency_exit(self, caller: str, stake_id: int) -> Dict[str, Any]:
        """
        Closes a stake immediately with the flat emergency penalty.

        Allowed while paused; rewards accrued so far stay claimable.
        """
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            net, penalty = state.ledger.emergency_exit(stake_id, caller, now, config)
            transfers = []
            if net > 0:
                transfers.append(Transfer(asset=self.staking_asset, source=self.pool_account, dest=caller, amount=net))
            return _Outcome(
                result={"stake_id": stake_id, "net_amount": net, "penalty": penalty, "closed": True},
                transfers=transfers,
                events=[PoolEvent.stake_exited(stake_id, caller, net, penalty, closed=True, emergency=True)],
            )
        return self._execute(OpType.EMERGENCY_EXIT, apply)

    # ═══════════════════════════════════════════════════════════════════
    # CLAIMS
    # ═══════════════════════════════════════════════════════════════════

    def claim_emission(self, caller: str, stake_id: int) -> int:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_active(state)
            stake = state.ledger.get(stake_id)
            if stake.owner != caller:
                raise UnauthorizedError(f"Only the owner can claim rewards of stake {stake_id}")
            return self._claim(state, caller, [stake], self.staking_asset, now)
        return self._execute(OpType.CLAIM_EMISSION, apply)

    def claim_all_emissions(self, caller: str) -> int:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_active(state)
            stakes = state.ledger.stakes_of(caller)
            if not stakes:
                raise StateError(f"{caller} has no stakes")
            return self._claim(state, caller, stakes, self.staking_asset, now)
        return self._execute(OpType.CLAIM_EMISSION, apply)

    def claim_revenue(self, caller: str, asset: str) -> int:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_active(state)
            state.registry.require(asset)
            stakes = state.ledger.stakes_of(caller)
            if not stakes:
                raise StateError(f"{caller} has no stakes")
            return self._claim(state, caller, stakes, asset, now)
        return self._execute(OpType.CLAIM_REVENUE, apply)

    def _claim(self, state: PoolState, caller: str, stakes: List[Stake], asset: str, now: int) -> _Outcome:
        stream = state.stream_for(asset)
        through = self.epochs.current_epoch(now)

        total = 0
        for stake in stakes:
            pending = stream.pending_for(stake, through, now, state.claims)
            state.apply_claim(stream, stake, pending)
            total += pending.amount

        if total == 0:
            raise StateError(f"Nothing to claim in {asset}")

        logger.info(f"{caller} claimed {total} {asset} across {len(stakes)} stake(s)")
        return _Outcome(
            result=total,
            transfers=[Transfer(asset=asset, source=self.pool_account, dest=caller, amount=total)],
            events=PoolEvent.rewards_claimed(caller, [s.stake_id for s in stakes], {asset: total}),
        )

    def _settle(self, state: PoolState, stake: Stake, now: int) -> Tuple[Dict[str, int], List[Transfer]]:
        """Pays every unlocked reward of a stake, all streams."""
        through = self.epochs.current_epoch(now)
        rewards: Dict[str, int] = {}
        transfers: List[Transfer] = []

        for stream in state.all_streams():
            pending = stream.pending_for(stake, through, now, state.claims)
            state.apply_claim(stream, stake, pending)
            if pending.amount > 0:
                rewards[stream.asset] = pending.amount
                transfers.append(Transfer(asset=stream.asset, source=self.pool_account,
                                          dest=stake.owner, amount=pending.amount))
        return rewards, transfers

    # ═══════════════════════════════════════════════════════════════════
    # REWARD INCOME
    # ═══════════════════════════════════════════════════════════════════

    def record_epoch_emission(self, caller: str, amount: int) -> EpochSnapshot:
        """Finalizes the current epoch's emission; the caller funds it."""
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            if not config.can_record_emission(caller):
                raise UnauthorizedError(f"{caller} may not record emissions")
            return self._record(state, caller, self.staking_asset, amount, now)
        return self._execute(OpType.RECORD_EMISSION, apply)

    def deposit_revenue(self, caller: str, asset: str, amount: int) -> EpochSnapshot:
        """Finalizes the current epoch's revenue for a whitelisted asset."""
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            if not config.can_deposit_revenue(caller):
                raise UnauthorizedError(f"{caller} may not deposit revenue")
            state.registry.require(asset)
            return self._record(state, caller, asset, amount, now)
        return self._execute(OpType.DEPOSIT_REVENUE, apply)

    def _record(self, state: PoolState, caller: str, asset: str, amount: int, now: int) -> _Outcome:
        epoch = self.epochs.current_epoch(now)
        if epoch < 1:
            raise StateError("Cannot record rewards before genesis")
        snapshot = state.stream_for(asset).record_epoch(
            epoch=epoch,
            amount=amount,
            total_weighted=state.ledger.totals.total_weighted,
            revision=state.ledger.revision,
            start_time=self.epochs.epoch_start(epoch),
            now=now,
        )
        return _Outcome(
            result=snapshot,
            transfers=[Transfer(asset=asset, source=caller, dest=self.pool_account, amount=amount)],
            events=[PoolEvent.epoch_recorded(snapshot)],
        )

    # ═══════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════

    def register_revenue_asset(self, caller: str, asset: str) -> List[str]:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            state.register_revenue_asset(asset)
            return _Outcome(
                result=state.registry.assets(),
                events=[PoolEvent.revenue_asset_registered(asset)],
            )
        return self._execute(OpType.REGISTER_ASSET, apply)

    def pause(self, caller: str):
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            if state.paused:
                raise StateError("Pool is already paused")
            state.paused = True
            return _Outcome(events=[PoolEvent.pause_changed(True, caller)])
        self._execute(OpType.PAUSE, apply)

    def unpause(self, caller: str):
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            if not state.paused:
                raise StateError("Pool is not paused")
            state.paused = False
            return _Outcome(events=[PoolEvent.pause_changed(False, caller)])
        self._execute(OpType.UNPAUSE, apply)

    def set_emergency_exit(self, caller: str, enabled: bool) -> AdminConfig:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            new_config = config.with_changes(emergency_exit_enabled=bool(enabled))
            return _Outcome(
                result=new_config,
                new_config=new_config,
                events=[PoolEvent.config_updated(caller, emergency_exit_enabled=bool(enabled))],
            )
        return self._execute(OpType.SET_EMERGENCY_EXIT, apply)

    def update_config(self, caller: str, new_config: AdminConfig) -> AdminConfig:
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            if not isinstance(new_config, AdminConfig):
                raise ValidationError("update_config expects an AdminConfig")
            return _Outcome(
                result=new_config,
                new_config=new_config,
                events=[PoolEvent.config_updated(caller)],
            )
        return self._execute(OpType.UPDATE_CONFIG, apply)

    def sweep_retained(self, caller: str, dest: str, amount: int = 0) -> int:
        """
        Moves retained penalties (amount 0 = all of them) from the pool account
        to `dest`. Principal and recorded rewards are never touched.

        Allowed while paused.
        """
        def apply(state: PoolState, config: AdminConfig, now: int) -> _Outcome:
            self._require_admin(config, caller)
            if not dest or dest == self.pool_account:
                raise ValidationError(f"Invalid sweep destination: {dest!r}")
            released = state.ledger.release_retained(amount)
            return _Outcome(
                result=released,
                transfers=[Transfer(asset=self.staking_asset, source=self.pool_account, dest=dest, amount=released)],
                events=[PoolEvent.retained_swept(caller, dest, released, state.ledger.totals.penalties_retained)],
            )
        return self._execute(OpType.SWEEP_RETAINED, apply)

    # ═══════════════════════════════════════════════════════════════════
    # VIEWS
    # ═══════════════════════════════════════════════════════════════════

    def pool_totals(self) -> PoolTotals:
        with self._lock:
            return self.state.ledger.totals.model_copy()

    def get_stake(self, stake_id: int) -> Stake:
        with self._lock:
            return self.state.ledger.get(stake_id).model_copy(deep=True)

    def is_paused(self) -> bool:
        return self.state.paused

    def is_locked(self, stake_id: int) -> Tuple[bool, int]:
        with self._lock:
            return self.state.ledger.is_locked(stake_id, self._now())

    def supported_revenue_assets(self) -> List[str]:
        with self._lock:
            return self.state.registry.assets()

    def snapshot(self, asset: str, epoch: int) -> Optional[EpochSnapshot]:
        with self._lock:
            return self.state.stream_for(asset).snapshot(epoch)

    def pending_detail(self, stake_id: int, asset: str = None) -> PendingRewards:
        with self._lock:
            now = self._now()
            stake = self.state.ledger.get(stake_id)
            stream = self.state.stream_for(asset or self.staking_asset)
            return stream.pending_for(stake, self.epochs.current_epoch(now), now, self.state.claims)

    def pending(self, stake_id: int, asset: str = None) -> int:
        return self.pending_detail(stake_id, asset).amount

    def pending_all(self, stake_id: int) -> Dict[str, int]:
        with self._lock:
            now = self._now()
            stake = self.state.ledger.get(stake_id)
            through = self.epochs.current_epoch(now)
            return {
                stream.asset: stream.pending_for(stake, through, now, self.state.claims).amount
                for stream in self.state.all_streams()
            }

    def claimable_rewards(self, owner: str) -> List[Dict[str, Any]]:
        with self._lock:
            now = self._now()
            through = self.epochs.current_epoch(now)
            stakes = self.state.ledger.stakes_of(owner)
            return [
                {
                    "asset": stream.asset,
                    "amount": sum(stream.pending_for(s, through, now, self.state.claims).amount for s in stakes),
                }
                for stream in self.state.all_streams()
            ]

    def user_summary(self, owner: str) -> Dict[str, Any]:
        """Aggregate principal and pending rewards over all stakes of `owner`."""
        with self._lock:
            stakes = self.state.ledger.stakes_of(owner)
            open_stakes = [s for s in stakes if s.is_open]
            return {
                "owner": owner,
                "stake_ids": [s.stake_id for s in stakes],
                "open_stakes": len(open_stakes),
                "total_principal": sum(s.principal for s in open_stakes),
                "total_weighted": sum(s.weighted for s in open_stakes),
                "pending": {r["asset"]: r["amount"] for r in self.claimable_rewards(owner)},
                "rewards_paid": {
                    asset: sum(s.rewards_paid.get(asset, 0) for s in stakes)
                    for asset in [self.staking_asset] + self.state.registry.assets()
                },
            }

    def epoch_info(self) -> Dict[str, Any]:
        with self._lock:
            now = self._now()
            info = self.epochs.progress(now)
            info["now"] = now
            info["recorded"] = {
                stream.asset: stream.snapshot(info["epoch"]) is not None
                for stream in self.state.all_streams()
            }
            return info

    def close(self):
        if self.db:
            self.db.close()
