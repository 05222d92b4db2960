# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict
from .economic_model import SCALE, HOUR, DAY, WEEK

# Global Constants
DENOM = "cenx"
DECIMALS = 18

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 # Staking params (initial values of the delayed parameters)
                 fee: int = 3 * SCALE // 100,                  # 3% forced withdrawal fee
                 withdrawal_lock_duration: int = HOUR,         # wait after a withdrawal request
                 withdrawal_unlock_duration: int = HOUR,       # window to complete the request
                 reward_maturity_duration: int = 2 * WEEK,     # cliff before rewards are paid
                 reward_share_percent: int = 25 * SCALE // 100, # stakers' share of distributions
                 # Token used by the local CLI deployment
                 token_name: str = "Centralex",
                 token_symbol: str = "CenX",
                 ledger_address: str = "cenx1staking"):
        self.network_id = network_id
        self.fee = fee
        self.withdrawal_lock_duration = withdrawal_lock_duration
        self.withdrawal_unlock_duration = withdrawal_unlock_duration
        self.reward_maturity_duration = reward_maturity_duration
        self.reward_share_percent = reward_share_percent
        self.token_name = token_name
        self.token_symbol = token_symbol
        self.ledger_address = ledger_address

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        fee=0,
        withdrawal_lock_duration=60,
        withdrawal_unlock_duration=HOUR,
        reward_maturity_duration=10 * 60,  # 10 minutes for local experiments
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        withdrawal_lock_duration=HOUR,
        withdrawal_unlock_duration=HOUR,
        reward_maturity_duration=DAY,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        withdrawal_lock_duration=7 * DAY,
        withdrawal_unlock_duration=2 * DAY,
        reward_maturity_duration=2 * WEEK,
    ),
}

def get_network(network_id: str) -> NetworkConfig:
    if network_id not in NETWORKS:
        raise ValueError(f"Unknown network '{network_id}' (expected one of {', '.join(NETWORKS)})")
    return NETWORKS[network_id]

# Default to devnet unless overridden
CURRENT_NETWORK = get_network(os.environ.get("CENX_NETWORK", "devnet"))
