"""
Core data model.

Typed views of registry and pool state, the entry-gating codec and the
staker aggregation fold.
"""

from reti.core.aggregate import StakerValidatorAggregate, aggregate_staker_pools
from reti.core.gating import EntryGatingType, decode_gate, make_gate
from reti.core.types import (
    Constraints,
    MbrAmounts,
    PoolInfo,
    StakerPoolData,
    StakerValidatorData,
    Validator,
    ValidatorConfig,
    ValidatorConfigInput,
    ValidatorPoolKey,
    ValidatorState,
)

__all__ = [
    "StakerValidatorAggregate",
    "aggregate_staker_pools",
    "EntryGatingType",
    "decode_gate",
    "make_gate",
    "Constraints",
    "MbrAmounts",
    "PoolInfo",
    "StakerPoolData",
    "StakerValidatorData",
    "Validator",
    "ValidatorConfig",
    "ValidatorConfigInput",
    "ValidatorPoolKey",
    "ValidatorState",
]
