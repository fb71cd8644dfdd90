# MIT License
# Copyright (c) 2025 Hashborn

"""
Early-Withdrawal Penalties

    remaining_weeks >= window  -> max_penalty_bps
    0 < remaining_weeks < window -> max_penalty_bps * remaining_weeks // window
    remaining_weeks <= 0       -> 0 (stake unlocked)

Penalties are retained by the pool.
"""

from ...protocol.config.economic_model import AdminConfig, ECONOMIC_CONFIG
from ...protocol.config.params import BPS_DENOMINATOR, WEEK


class PenaltyCalculator:
    def __init__(self, max_penalty_bps: int, reduction_window_weeks: int):
        if reduction_window_weeks < 1:
            raise ValueError("reduction_window_weeks must be >= 1")
        self.max_penalty_bps = max_penalty_bps
        self.reduction_window_weeks = reduction_window_weeks

    @classmethod
    def from_config(cls, config: AdminConfig = None) -> "PenaltyCalculator":
        config = config or ECONOMIC_CONFIG
        return cls(config.max_penalty_bps, config.reduction_window_weeks)

    def percentage(self, remaining_weeks: int) -> int:
        """Penalty in basis points for the given number of remaining lock weeks."""
        if remaining_weeks <= 0:
            return 0
        if remaining_weeks >= self.reduction_window_weeks:
            return self.max_penalty_bps
        return self.max_penalty_bps * remaining_weeks // self.reduction_window_weeks

    def amount_for(self, amount: int, remaining_weeks: int) -> int:
        return amount * self.percentage(remaining_weeks) // BPS_DENOMINATOR

    @staticmethod
    def remaining_weeks(unlock_time: int, now: int) -> int:
        """Whole weeks left on a lock, rounding any partial week up."""
        remaining = unlock_time - now
        if remaining <= 0:
            return 0
        return -(-remaining // WEEK)


def flat_penalty(amount: int, penalty_bps: int) -> int:
    return amount * penalty_bps // BPS_DENOMINATOR
