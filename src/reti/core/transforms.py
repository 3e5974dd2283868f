"""
Transforms from raw ABI return values to the typed data model.

ABI tuples arrive as positional lists; field order follows the contract
structs exactly.
"""

from typing import Any, List, Optional, Sequence

from reti.core.gating import EntryGatingType
from reti.core.types import (
    Constraints,
    MbrAmounts,
    NodeConfig,
    NodePoolAssignmentConfig,
    PoolInfo,
    PoolTokenPayoutRatio,
    StakerPoolData,
    Validator,
    ValidatorConfig,
    ValidatorPoolKey,
    ValidatorState,
)


def _as_bytes(value: Any) -> bytes:
    # byte[N] may decode as bytes or as a list of ints
    if isinstance(value, str):
        return value.encode()
    return bytes(value)


def transform_validator_config(raw: Sequence[Any]) -> ValidatorConfig:
    """Transform a raw ValidatorConfig struct."""
    (
        validator_id,
        owner,
        manager,
        nfd_for_info,
        entry_gating_type,
        entry_gating_value,
        gating_asset_min_balance,
        reward_token_id,
        reward_per_payout,
        payout_every_x_mins,
        percent_to_validator,
        validator_commission_address,
        min_entry_stake,
        max_algo_per_pool,
        pools_per_node,
        sunsetting_on,
        sunsetting_to,
    ) = raw
    
    return ValidatorConfig(
        id=int(validator_id),
        owner=owner,
        manager=manager,
        nfd_for_info=int(nfd_for_info),
        entry_gating_type=EntryGatingType(int(entry_gating_type)),
        entry_gating_value=_as_bytes(entry_gating_value),
        gating_asset_min_balance=int(gating_asset_min_balance),
        reward_token_id=int(reward_token_id),
        reward_per_payout=int(reward_per_payout),
        payout_every_x_mins=int(payout_every_x_mins),
        percent_to_validator=int(percent_to_validator),
        validator_commission_address=validator_commission_address,
        min_entry_stake=int(min_entry_stake),
        max_algo_per_pool=int(max_algo_per_pool),
        pools_per_node=int(pools_per_node),
        sunsetting_on=int(sunsetting_on),
        sunsetting_to=int(sunsetting_to),
    )


def transform_validator_state(raw: Sequence[Any]) -> ValidatorState:
    """Transform a raw ValidatorCurState struct."""
    num_pools, total_stakers, total_algo_staked, reward_token_held_back = raw
    return ValidatorState(
        num_pools=int(num_pools),
        total_stakers=int(total_stakers),
        total_algo_staked=int(total_algo_staked),
        reward_token_held_back=int(reward_token_held_back),
    )


def transform_pool_info(
    raw: Sequence[Any],
    validator_id: Optional[int] = None,
    pool_id: Optional[int] = None,
) -> PoolInfo:
    """Transform a raw PoolInfo struct."""
    pool_app_id, total_stakers, total_algo_staked = raw
    return PoolInfo(
        pool_app_id=int(pool_app_id),
        total_stakers=int(total_stakers),
        total_algo_staked=int(total_algo_staked),
        validator_id=validator_id,
        pool_id=pool_id,
    )


def transform_pools(raw: Sequence[Sequence[Any]], validator_id: int) -> List[PoolInfo]:
    """Transform a validator's pool directory; pool ids are 1-based positions."""
    return [
        transform_pool_info(entry, validator_id=validator_id, pool_id=index + 1)
        for index, entry in enumerate(raw)
    ]


def transform_node_pool_assignment(raw: Sequence[Any]) -> NodePoolAssignmentConfig:
    """
    Transform a raw NodePoolAssignmentConfig struct.
    
    The struct is a one-field tuple wrapping the static array of nodes,
    each node itself a one-field tuple wrapping its pool app id slots.
    """
    nodes = raw[0] if len(raw) == 1 else raw
    return NodePoolAssignmentConfig(
        nodes=tuple(
            NodeConfig(pool_app_ids=tuple(int(app_id) for app_id in _unwrap(node)))
            for node in nodes
        )
    )


def _unwrap(node: Sequence[Any]) -> Sequence[Any]:
    if len(node) == 1 and isinstance(node[0], (list, tuple)):
        return node[0]
    return node


def transform_token_payout_ratio(raw: Sequence[Any]) -> PoolTokenPayoutRatio:
    """Transform a raw PoolTokenPayoutRatio struct."""
    pool_pct_of_whole, updated_for_payout = raw
    return PoolTokenPayoutRatio(
        pool_pct_of_whole=tuple(int(pct) for pct in pool_pct_of_whole),
        updated_for_payout=int(updated_for_payout),
    )


def transform_validator_data(
    raw_config: Sequence[Any],
    raw_state: Sequence[Any],
    raw_pools: Sequence[Sequence[Any]],
    raw_token_payout_ratio: Sequence[Any],
    raw_node_pool_assignment: Sequence[Any],
) -> Validator:
    """Assemble a Validator from its five constituent reads."""
    config = transform_validator_config(raw_config)
    return Validator(
        id=config.id,
        config=config,
        state=transform_validator_state(raw_state),
        pools=transform_pools(raw_pools, config.id),
        token_payout_ratio=transform_token_payout_ratio(raw_token_payout_ratio),
        node_pool_assignment=transform_node_pool_assignment(raw_node_pool_assignment),
    )


def transform_constraints(raw: Sequence[Any]) -> Constraints:
    """Transform a raw Constraints struct."""
    (
        payout_mins_min,
        payout_mins_max,
        commission_pct_min,
        commission_pct_max,
        min_entry_stake,
        max_algo_per_pool,
        max_algo_per_validator,
        saturation_threshold,
        max_nodes,
        max_pools_per_node,
        max_stakers_per_pool,
    ) = raw
    
    return Constraints(
        payout_mins_min=int(payout_mins_min),
        payout_mins_max=int(payout_mins_max),
        commission_pct_min=int(commission_pct_min),
        commission_pct_max=int(commission_pct_max),
        min_entry_stake=int(min_entry_stake),
        max_algo_per_pool=int(max_algo_per_pool),
        max_algo_per_validator=int(max_algo_per_validator),
        saturation_threshold=int(saturation_threshold),
        max_nodes=int(max_nodes),
        max_pools_per_node=int(max_pools_per_node),
        max_stakers_per_pool=int(max_stakers_per_pool),
    )


def transform_mbr_amounts(raw: Sequence[Any]) -> MbrAmounts:
    """Transform a raw MbrAmounts struct."""
    validator_mbr, pool_mbr, pool_init_mbr, staker_mbr = raw
    return MbrAmounts(
        validator_mbr=int(validator_mbr),
        pool_mbr=int(pool_mbr),
        pool_init_mbr=int(pool_init_mbr),
        staker_mbr=int(staker_mbr),
    )


def transform_staker_pool_data(raw: Sequence[Any], pool_key: ValidatorPoolKey) -> StakerPoolData:
    """Transform a raw StakedInfo struct and tag it with its pool."""
    account, balance, total_rewarded, reward_token_balance, entry_time = raw
    return StakerPoolData(
        account=account,
        balance=int(balance),
        total_rewarded=int(total_rewarded),
        reward_token_balance=int(reward_token_balance),
        entry_time=int(entry_time),
        pool_key=pool_key,
    )
