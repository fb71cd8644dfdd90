# MIT License
# Copyright (c) 2025 Hashborn

"""
ShipStake - epoch-based staking pool with multi-asset reward streams.

Stakers lock the staking asset for 1-52 weeks and earn a weight of
principal * multiplier. Each epoch's emission and revenue deposits are
split pro-rata to weight and unlock linearly over the following week.
"""

__version__ = "1.0.0"
