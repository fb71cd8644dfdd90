# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

# Global Constants
DENOM = "ship"
DECIMALS = 18

WEEK = 7 * 24 * 60 * 60           # Epoch length in seconds
MULTIPLIER_BASE = 1000            # 1.0x in fixed point
BPS_DENOMINATOR = 10_000          # 100% in basis points

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 genesis_time: int,
                 staking_asset: str = DENOM,
                 pool_account: str = "shipstake1pool",
                 rpc_host: str = "0.0.0.0",
                 rpc_port: int = 8000,
                 version: int = 1):
        self.network_id = network_id
        # Single anchor for every epoch computation on this network
        self.genesis_time = genesis_time
        # The protocol asset: stakes and emissions are denominated in it
        self.staking_asset = staking_asset
        # Custody account holding principal, undistributed rewards and penalties
        self.pool_account = pool_account
        self.rpc_host = rpc_host
        self.rpc_port = rpc_port
        self.version = version

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        genesis_time=0,
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        genesis_time=1_735_689_600,   # 2025-01-01 00:00:00 UTC
        pool_account="shipstake1pooltest",
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        genesis_time=1_767_225_600,   # 2026-01-01 00:00:00 UTC
        pool_account="shipstake1poolmain",
        rpc_host="127.0.0.1",
    )
}

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
