"""
Reti Client

Python client for the Reti validator staking protocol on Algorand.
Reads validator, pool and staker state from the registry contract and
submits staking operations as fee-estimated atomic transaction groups.
"""

__version__ = "0.1.0"

from reti.config import RetiConfig, get_config, set_config
from reti.engine.queries import NotFoundError, ValidatorNotFoundError, ValidatorQueries
from reti.node.algod import AlgodGateway
from reti.tx.builder import StakingTransactionBuilder

__all__ = [
    "RetiConfig",
    "get_config",
    "set_config",
    "ValidatorQueries",
    "NotFoundError",
    "ValidatorNotFoundError",
    "AlgodGateway",
    "StakingTransactionBuilder",
]
