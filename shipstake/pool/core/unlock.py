# MIT License
# Copyright (c) 2025 Hashborn

from ...protocol.config.params import WEEK


class LinearUnlockCalculator:
    """
    Releases an epoch's reward linearly over the epoch.

    0 before the epoch starts, total * elapsed // duration while it runs,
    total from the end of the epoch on. The result is clamped to [0, total]
    so clock anomalies can never over-release.
    """

    def __init__(self, duration: int = WEEK):
        self.duration = duration

    def unlock(self, epoch_start: int, now: int, total_amount: int) -> int:
        if total_amount <= 0:
            return 0
        if now >= epoch_start + self.duration:
            return total_amount
        if now > epoch_start:
            released = total_amount * (now - epoch_start) // self.duration
            return max(0, min(released, total_amount))
        return 0

    def is_complete(self, epoch_start: int, now: int) -> bool:
        return now >= epoch_start + self.duration


linear_unlock = LinearUnlockCalculator()
