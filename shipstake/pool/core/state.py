# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, List, Optional
import json
import logging

from ...protocol.config.params import CURRENT_NETWORK
from ...protocol.types.common import ValidationError
from ...protocol.types.epoch import ClaimKey, EpochSnapshot, PendingRewards
from ...protocol.types.stake import PoolTotals, Stake
from ..storage.db import StorageDB
from .claims import ClaimTracker
from .ledger import StakeLedger
from .streams import RevenueAssetRegistry, RewardStream

logger = logging.getLogger(__name__)


class PoolState:
    """
    Everything the pool knows: stakes, reward streams, claim records, the
    revenue-asset whitelist and the pause switch.

    Operations run against a clone() and the clone replaces the live state
    once the operation succeeded.
    """

    def __init__(self, db: Optional[StorageDB] = None, staking_asset: str = None,
                 ledger: StakeLedger = None, emissions: RewardStream = None,
                 revenue: Dict[str, RewardStream] = None, claims: ClaimTracker = None,
                 registry: RevenueAssetRegistry = None, paused: bool = False):
        self.db = db
        self.staking_asset = staking_asset or CURRENT_NETWORK.staking_asset
        self.ledger = ledger if ledger is not None else StakeLedger()
        self.emissions = emissions if emissions is not None else RewardStream(self.staking_asset)
        self.revenue: Dict[str, RewardStream] = revenue if revenue is not None else {}
        self.claims = claims if claims is not None else ClaimTracker()
        self.registry = registry if registry is not None else RevenueAssetRegistry(staking_asset=self.staking_asset)
        self.paused = paused

    def clone(self) -> 'PoolState':
        """Creates a copy of the state (for simulation)."""
        return PoolState(
            db=self.db,
            staking_asset=self.staking_asset,
            ledger=self.ledger.clone(),
            emissions=self.emissions.clone(),
            revenue={k: v.clone() for k, v in self.revenue.items()},
            claims=self.claims.clone(),
            registry=self.registry.clone(),
            paused=self.paused,
        )

    # --- Streams ---

    def stream_for(self, asset: str) -> RewardStream:
        if asset == self.staking_asset:
            return self.emissions
        self.registry.require(asset)
        return self.revenue[asset]

    def all_streams(self) -> List[RewardStream]:
        return [self.emissions] + [self.revenue[a] for a in self.registry.assets()]

    def register_revenue_asset(self, asset: str) -> RewardStream:
        self.registry.register(asset)
        stream = RewardStream(asset)
        self.revenue[asset] = stream
        return stream

    def check_invariants(self):
        self.ledger.check_invariants()

    def apply_claim(self, stream: RewardStream, stake: Stake, pending: PendingRewards):
        stream.apply_claim(stake, pending, self.claims)
        self.ledger.mark_dirty(stake.stake_id)

    # --- Persistence ---

    def dirty_keys(self) -> List[str]:
        """Storage keys touched since this state was cloned; totals and meta always count."""
        keys = [f"stake:{stake_id}" for stake_id in sorted(self.ledger.dirty)]
        for stream in self.all_streams():
            keys.extend(f"snap:{stream.asset}:{epoch}" for epoch in sorted(stream.dirty))
        keys.extend(f"claim:{key.storage_key()}" for key in sorted(self.claims.dirty))
        keys.extend(["totals", "meta"])
        return keys

    def serialize(self, key: str) -> Optional[str]:
        """Stored value for `key` in this state, None when the entry does not exist."""
        if key == "totals":
            return self.ledger.totals.model_dump_json()
        if key == "meta":
            return json.dumps({
                "next_id": self.ledger.next_id,
                "paused": self.paused,
                "staking_asset": self.staking_asset,
                "revenue_assets": self.registry.assets(),
            })

        kind, _, rest = key.partition(":")
        if kind == "stake":
            stake = self.ledger.find(int(rest))
            return stake.model_dump_json() if stake else None
        if kind == "snap":
            asset, _, epoch = rest.rpartition(":")
            stream = self.emissions if asset == self.staking_asset else self.revenue.get(asset)
            snapshot = stream.snapshot(int(epoch)) if stream else None
            return snapshot.model_dump_json() if snapshot else None
        if kind == "claim":
            claim_key = ClaimKey.from_storage_key(rest)
            return str(self.claims.get(claim_key)) if claim_key in self.claims else None
        raise ValueError(f"Unknown storage key: {key}")

    def persist(self, keys: List[str] = None) -> List[str]:
        """
        Writes the given keys (default: everything this state touched) in one
        transaction and returns the keys written.
        """
        if self.db is None:
            return []
        keys = self.dirty_keys() if keys is None else keys
        self.db.set_many({key: self.serialize(key) for key in keys})
        logger.debug(f"Persisted {len(keys)} keys")
        return keys

    @staticmethod
    def load(db: StorageDB, staking_asset: str = None) -> 'PoolState':
        """Rebuilds the state from DB; an empty DB yields an empty state."""
        raw_meta = db.get_state("meta")
        if not raw_meta:
            return PoolState(db, staking_asset)

        meta = json.loads(raw_meta)
        if staking_asset and meta["staking_asset"] != staking_asset:
            raise ValidationError(
                f"Stored pool uses staking asset {meta['staking_asset']}, not {staking_asset}"
            )
        staking_asset = meta["staking_asset"]

        stakes: Dict[int, Stake] = {}
        for v in db.get_state_by_prefix("stake:").values():
            stake = Stake.model_validate_json(v)
            stakes[stake.stake_id] = stake

        raw_totals = db.get_state("totals")
        totals = PoolTotals.model_validate_json(raw_totals) if raw_totals else PoolTotals()
        ledger = StakeLedger(stakes, totals, meta["next_id"])

        registry = RevenueAssetRegistry(meta["revenue_assets"], staking_asset)
        snapshots: Dict[str, Dict[int, EpochSnapshot]] = {a: {} for a in [staking_asset] + registry.assets()}
        for v in db.get_state_by_prefix("snap:").values():
            snap = EpochSnapshot.model_validate_json(v)
            snapshots.setdefault(snap.asset, {})[snap.epoch] = snap

        records = {
            ClaimKey.from_storage_key(k[len("claim:"):]): int(v)
            for k, v in db.get_state_by_prefix("claim:").items()
        }

        state = PoolState(
            db=db,
            staking_asset=staking_asset,
            ledger=ledger,
            emissions=RewardStream(staking_asset, snapshots[staking_asset]),
            revenue={a: RewardStream(a, snapshots[a]) for a in registry.assets()},
            claims=ClaimTracker(records),
            registry=registry,
            paused=meta["paused"],
        )
        state.check_invariants()
        logger.info(
            f"Pool state loaded: {len(stakes)} stakes, {len(records)} claim records, "
            f"{len(registry.assets())} revenue assets"
        )
        return state
