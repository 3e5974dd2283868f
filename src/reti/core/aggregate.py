"""
Staker aggregation.

Folds a staker's per-pool positions into one consolidated position per
validator.
"""

from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List

from reti.core.types import StakerPoolData, StakerValidatorData


class StakerValidatorAggregate:
    """
    Ordered map of validator id -> consolidated staker position.
    
    The first pool seen for a validator seeds its entry; every later pool
    for the same validator adds its balance, rewards and reward-token
    balance, lowers entry_time to the earliest seen, and is appended to the
    entry's pool list. Validators keep the order in which they were first
    seen and pools keep the order in which they were added.
    """
    
    def __init__(self, pools: Iterable[StakerPoolData] = ()):
        self._by_validator: "OrderedDict[int, StakerValidatorData]" = OrderedDict()
        for pool in pools:
            self.add(pool)
    
    def add(self, pool: StakerPoolData) -> StakerValidatorData:
        """
        Fold one pool position into the aggregate.
        
        Args:
            pool: Staker position tagged with its pool key
            
        Returns:
            The updated consolidated position for the pool's validator
        """
        if pool.pool_key is None:
            raise ValueError("Cannot aggregate a pool position without a pool key")
        
        validator_id = pool.pool_key.validator_id
        existing = self._by_validator.get(validator_id)
        
        if existing is None:
            seeded = StakerValidatorData(
                validator_id=validator_id,
                balance=pool.balance,
                total_rewarded=pool.total_rewarded,
                reward_token_balance=pool.reward_token_balance,
                entry_time=pool.entry_time,
                pools=[pool],
            )
            self._by_validator[validator_id] = seeded
            return seeded
        
        existing.balance += pool.balance
        existing.total_rewarded += pool.total_rewarded
        existing.reward_token_balance += pool.reward_token_balance
        existing.entry_time = min(existing.entry_time, pool.entry_time)
        existing.pools.append(pool)
        return existing
    
    def get(self, validator_id: int) -> StakerValidatorData:
        return self._by_validator[validator_id]
    
    def as_dict(self) -> Dict[int, StakerValidatorData]:
        return dict(self._by_validator)
    
    def to_list(self) -> List[StakerValidatorData]:
        return list(self._by_validator.values())
    
    def __contains__(self, validator_id: int) -> bool:
        return validator_id in self._by_validator
    
    def __iter__(self) -> Iterator[StakerValidatorData]:
        return iter(self._by_validator.values())
    
    def __len__(self) -> int:
        return len(self._by_validator)


def aggregate_staker_pools(pools: Iterable[StakerPoolData]) -> List[StakerValidatorData]:
    """Consolidate per-pool positions into one entry per validator."""
    return StakerValidatorAggregate(pools).to_list()
