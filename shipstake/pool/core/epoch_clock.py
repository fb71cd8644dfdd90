# MIT License
# Copyright (c) 2025 Hashborn

"""
Epoch Clock

Maps wall-clock time to 1-indexed weekly epochs.

    current_epoch(now) = (now - genesis) // WEEK + 1
    epoch_start(epoch) = genesis + (epoch - 1) * WEEK

Every component derives epochs from the same clock instance, so all of them
share one genesis timestamp (taken from the network config).
"""

from typing import Dict

from ...protocol.config.params import BPS_DENOMINATOR, CURRENT_NETWORK, WEEK


class EpochClock:
    def __init__(self, genesis_time: int = None, epoch_length: int = WEEK):
        self.genesis_time = CURRENT_NETWORK.genesis_time if genesis_time is None else genesis_time
        self.epoch_length = epoch_length

    def current_epoch(self, now: int) -> int:
        """Epoch number at `now`; 0 before genesis."""
        if now < self.genesis_time:
            return 0
        return (now - self.genesis_time) // self.epoch_length + 1

    def epoch_start(self, epoch: int) -> int:
        if epoch < 1:
            raise ValueError(f"Epochs are 1-indexed, got {epoch}")
        return self.genesis_time + (epoch - 1) * self.epoch_length

    def epoch_end(self, epoch: int) -> int:
        return self.epoch_start(epoch) + self.epoch_length

    def progress(self, now: int) -> Dict[str, int]:
        """Snapshot of the running epoch for status views."""
        epoch = self.current_epoch(now)
        if epoch == 0:
            return {
                "epoch": 0,
                "start_time": self.genesis_time,
                "end_time": self.genesis_time,
                "elapsed": 0,
                "remaining": self.genesis_time - now,
                "progress_bps": 0,
            }

        start = self.epoch_start(epoch)
        elapsed = now - start
        return {
            "epoch": epoch,
            "start_time": start,
            "end_time": start + self.epoch_length,
            "elapsed": elapsed,
            "remaining": self.epoch_length - elapsed,
            "progress_bps": elapsed * BPS_DENOMINATOR // self.epoch_length,
        }
