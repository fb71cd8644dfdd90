# MIT License
# Copyright (c) 2025 Hashborn

"""
Asset transfer capability.

The pool never moves funds itself: it hands a batch of transfers to an
AssetBank, which must apply the whole batch or nothing.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Sequence
from threading import RLock
import logging

from pydantic import BaseModel, field_validator

from ...protocol.types.common import TransferFailure

logger = logging.getLogger(__name__)


class Transfer(BaseModel):
    asset: str
    source: str
    dest: str
    amount: int

    @field_validator("amount")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Transfer amount must be positive")
        return v


class AssetBank(ABC):
    @abstractmethod
    def balance_of(self, asset: str, account: str) -> int:
        ...

    @abstractmethod
    def execute(self, transfers: Sequence[Transfer]) -> None:
        """Applies every transfer or none; raises TransferFailure on failure."""
        ...


class InMemoryAssetBank(AssetBank):
    """
    Reference AssetBank keeping balances in memory.

    Thread-safe; a batch is validated against a scratch copy of the touched
    balances before anything is written.
    """

    def __init__(self, balances: Dict[str, Dict[str, int]] = None):
        self._balances: Dict[str, Dict[str, int]] = defaultdict(dict)
        for asset, accounts in (balances or {}).items():
            self._balances[asset].update(accounts)
        self.lock = RLock()
        self.history: List[Transfer] = []

    def balance_of(self, asset: str, account: str) -> int:
        with self.lock:
            return self._balances.get(asset, {}).get(account, 0)

    def mint(self, asset: str, account: str, amount: int):
        with self.lock:
            accounts = self._balances[asset]
            accounts[account] = accounts.get(account, 0) + amount

    def execute(self, transfers: Sequence[Transfer]) -> None:
        with self.lock:
            scratch: Dict[tuple, int] = {}

            def balance(asset: str, account: str) -> int:
                key = (asset, account)
                if key not in scratch:
                    scratch[key] = self._balances.get(asset, {}).get(account, 0)
                return scratch[key]

            for t in transfers:
                available = balance(t.asset, t.source)
                if available < t.amount:
                    logger.error(
                        f"Transfer of {t.amount} {t.asset} from {t.source} failed: balance {available}"
                    )
                    raise TransferFailure(
                        f"Insufficient {t.asset} balance for {t.source}: have {available}, need {t.amount}"
                    )
                scratch[(t.asset, t.source)] = available - t.amount
                scratch[(t.asset, t.dest)] = balance(t.asset, t.dest) + t.amount

            for (asset, account), value in scratch.items():
                self._balances[asset][account] = value
            self.history.extend(transfers)
