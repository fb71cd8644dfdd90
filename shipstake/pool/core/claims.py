# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, Iterator, Set, Tuple
import logging

from ...protocol.types.common import LedgerInvariantError
from ...protocol.types.epoch import ClaimKey

logger = logging.getLogger(__name__)


class ClaimTracker:
    """
    Cumulative amount already released per (stake, epoch, asset).

    Values only ever grow. A decrease means the caller computed a payout from
    stale data, so it is refused loudly instead of being clamped.
    """

    def __init__(self, records: Dict[ClaimKey, int] = None):
        self._records: Dict[ClaimKey, int] = records if records is not None else {}
        # Keys written since this tracker was created (or cloned)
        self.dirty: Set[ClaimKey] = set()

    def get(self, key: ClaimKey) -> int:
        return self._records.get(key, 0)

    def set(self, key: ClaimKey, cumulative: int):
        previous = self._records.get(key, 0)
        if cumulative < previous:
            logger.error(f"Claim record for {key} would decrease: {previous} -> {cumulative}")
            raise LedgerInvariantError(
                f"Claim record for {key} cannot decrease ({previous} -> {cumulative})"
            )
        self._records[key] = cumulative
        self.dirty.add(key)

    def total_for(self, stake_id: int, asset: str) -> int:
        return sum(v for k, v in self._records.items() if k.stake_id == stake_id and k.asset == asset)

    def items(self) -> Iterator[Tuple[ClaimKey, int]]:
        return iter(self._records.items())

    def clone(self) -> "ClaimTracker":
        return ClaimTracker(dict(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: ClaimKey) -> bool:
        return key in self._records
