# MIT License
# Copyright (c) 2025 Hashborn

"""
ShipStake Economic Model
Single source of truth for staking bounds and curve constants.

Penalty policy: retained by the pool
- Early-withdrawal penalty (linear ramp to zero over the reduction window)
- Emergency-exit penalty (flat, only while emergency exit is enabled)
Retained penalties are never redistributed or burned; only an admin sweep
moves them out of the pool account.
"""

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional

from .params import BPS_DENOMINATOR, DECIMALS, MULTIPLIER_BASE

UNIT = 10**DECIMALS

@dataclass(frozen=True)
class AdminConfig:
    """Mutable-by-admin parameters, passed explicitly into every operation."""

    # ═══════════════════════════════════════════════════════
    # STAKE BOUNDS
    # ═══════════════════════════════════════════════════════
    min_stake: int                      # Minimum principal per stake
    max_stake: int                      # Maximum principal per stake
    min_lock_weeks: int = 1
    max_lock_weeks: int = 52

    # ═══════════════════════════════════════════════════════
    # MULTIPLIER CURVE (fixed point, 1000 = 1.0x)
    # ═══════════════════════════════════════════════════════
    base_multiplier: int = MULTIPLIER_BASE
    max_multiplier: int = 2 * MULTIPLIER_BASE
    multiplier_step: Optional[int] = None   # None = exact linear step between bounds

    # ═══════════════════════════════════════════════════════
    # PENALTIES (basis points, retained by the pool)
    # ═══════════════════════════════════════════════════════
    max_penalty_bps: int = 1_000            # 10% with >= reduction window remaining
    reduction_window_weeks: int = 4         # Penalty ramps to zero over the last N weeks
    emergency_exit_enabled: bool = False
    emergency_penalty_bps: int = 1_000      # Flat 10%

    # ═══════════════════════════════════════════════════════
    # PRINCIPALS
    # ═══════════════════════════════════════════════════════
    admins: FrozenSet[str] = field(default_factory=frozenset)
    emission_recorders: FrozenSet[str] = field(default_factory=frozenset)
    revenue_depositors: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if self.min_stake <= 0 or self.max_stake < self.min_stake:
            raise ValueError(f"Invalid stake bounds: [{self.min_stake}, {self.max_stake}]")
        if self.min_lock_weeks < 1 or self.max_lock_weeks <= self.min_lock_weeks:
            raise ValueError(f"Invalid lock bounds: [{self.min_lock_weeks}, {self.max_lock_weeks}]")
        # The curve is fixed at 1.0x .. 2.0x; only the lock bounds and step move it
        if self.base_multiplier != MULTIPLIER_BASE:
            raise ValueError(f"base_multiplier must be {MULTIPLIER_BASE}, got {self.base_multiplier}")
        if self.max_multiplier != 2 * MULTIPLIER_BASE:
            raise ValueError(f"max_multiplier must be {2 * MULTIPLIER_BASE}, got {self.max_multiplier}")
        if self.multiplier_step is not None and self.multiplier_step < 0:
            raise ValueError("multiplier_step cannot be negative")
        for name in ("max_penalty_bps", "emergency_penalty_bps"):
            value = getattr(self, name)
            if value < 0 or value > BPS_DENOMINATOR:
                raise ValueError(f"{name} must be within [0, {BPS_DENOMINATOR}]")
        if self.reduction_window_weeks < 1:
            raise ValueError("reduction_window_weeks must be >= 1")

    # ═══════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════

    @property
    def step(self) -> int:
        if self.multiplier_step is not None:
            return self.multiplier_step
        span = self.max_lock_weeks - self.min_lock_weeks
        return (self.max_multiplier - self.base_multiplier) // span

    def is_admin(self, caller: str) -> bool:
        return caller in self.admins

    def can_record_emission(self, caller: str) -> bool:
        return caller in self.emission_recorders or caller in self.admins

    def can_deposit_revenue(self, caller: str) -> bool:
        return caller in self.revenue_depositors or caller in self.admins

    def with_changes(self, **changes) -> "AdminConfig":
        """Returns a validated copy with the given fields replaced."""
        return replace(self, **changes)


# ═══════════════════════════════════════════════════════════════════════════
# DEVNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
DEVNET = AdminConfig(
    min_stake=1,                                # 1 minimal unit
    max_stake=10_000_000 * UNIT,                # 10M SHIP per stake
    emergency_exit_enabled=True,                # Easier local testing
    admins=frozenset({"shipstake1admin"}),
    emission_recorders=frozenset({"shipstake1emitter"}),
    revenue_depositors=frozenset({"shipstake1game"}),
)


# ═══════════════════════════════════════════════════════════════════════════
# TESTNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
TESTNET = AdminConfig(
    min_stake=10 * UNIT,                        # 10 SHIP
    max_stake=1_000_000 * UNIT,                 # 1M SHIP per stake
    admins=frozenset({"shipstake1admin"}),
    emission_recorders=frozenset({"shipstake1emitter"}),
    revenue_depositors=frozenset({"shipstake1game"}),
)


# ═══════════════════════════════════════════════════════════════════════════
# MAINNET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
MAINNET = AdminConfig(
    min_stake=100 * UNIT,                       # 100 SHIP
    max_stake=1_000_000 * UNIT,                 # 1M SHIP per stake
    max_penalty_bps=2_000,                      # 20% early exit
    emergency_penalty_bps=2_500,                # 25% emergency exit
)


# ═══════════════════════════════════════════════════════════════════════════
# CURRENT NETWORK (selected at runtime)
# ═══════════════════════════════════════════════════════════════════════════
ECONOMIC_CONFIG = DEVNET  # Default to devnet, can be changed via config
