"""
Test suite for staker aggregation.

Per-pool positions fold into one consolidated position per validator:
balances and rewards are summed, the entry time is the earliest one.
"""

import itertools

import pytest

from reti.core.aggregate import StakerValidatorAggregate, aggregate_staker_pools
from reti.core.types import StakerPoolData

from conftest import make_pool_data


# ============================================================================
# Folding
# ============================================================================

class TestAggregation:
    """Tests for folding pool positions by validator."""

    def test_two_pools_same_validator(self):
        pools = [
            make_pool_data(validator_id=1, pool_id=1, balance=100, entry_time=2000),
            make_pool_data(validator_id=1, pool_id=2, balance=50, entry_time=1000),
        ]

        result = aggregate_staker_pools(pools)

        assert len(result) == 1
        assert result[0].validator_id == 1
        assert result[0].balance == 150
        assert result[0].entry_time == 1000
        assert result[0].pools == pools

    def test_sums_rewards_and_reward_tokens(self):
        pools = [
            make_pool_data(1, 1, balance=10, entry_time=5, total_rewarded=3, reward_token_balance=7),
            make_pool_data(1, 2, balance=20, entry_time=9, total_rewarded=4, reward_token_balance=1),
        ]

        (result,) = aggregate_staker_pools(pools)

        assert result.total_rewarded == 7
        assert result.reward_token_balance == 8

    def test_one_aggregate_per_validator_in_first_seen_order(self):
        pools = [
            make_pool_data(3, 1, balance=1, entry_time=10),
            make_pool_data(1, 1, balance=2, entry_time=20),
            make_pool_data(3, 2, balance=4, entry_time=5),
            make_pool_data(2, 1, balance=8, entry_time=30),
        ]

        result = aggregate_staker_pools(pools)

        assert [data.validator_id for data in result] == [3, 1, 2]
        assert [data.balance for data in result] == [5, 2, 8]
        assert result[0].entry_time == 5

    def test_empty_input(self):
        assert aggregate_staker_pools([]) == []

    def test_pool_without_key_is_rejected(self):
        pool = StakerPoolData(
            account="STAKER",
            balance=1,
            total_rewarded=0,
            reward_token_balance=0,
            entry_time=0,
        )

        with pytest.raises(ValueError):
            aggregate_staker_pools([pool])

    def test_aggregate_container(self):
        aggregate = StakerValidatorAggregate()
        aggregate.add(make_pool_data(4, 1, balance=10, entry_time=1))
        aggregate.add(make_pool_data(4, 2, balance=5, entry_time=2))

        assert 4 in aggregate
        assert 5 not in aggregate
        assert len(aggregate) == 1
        assert aggregate.get(4).balance == 15
        assert list(aggregate.as_dict()) == [4]


# ============================================================================
# Invariants
# ============================================================================

POOLS = [
    make_pool_data(1, 1, balance=100, entry_time=3000, total_rewarded=10),
    make_pool_data(2, 1, balance=70, entry_time=1500, total_rewarded=1),
    make_pool_data(1, 2, balance=50, entry_time=1000, total_rewarded=5),
    make_pool_data(2, 3, balance=30, entry_time=2500, total_rewarded=2),
    make_pool_data(1, 3, balance=25, entry_time=4000, total_rewarded=0),
]


class TestAggregationInvariants:
    """Sums and minima do not depend on input order."""

    @pytest.mark.parametrize("order", list(itertools.permutations(range(len(POOLS)))))
    def test_permutation_invariance(self, order):
        shuffled = [POOLS[index] for index in order]

        result = {data.validator_id: data for data in aggregate_staker_pools(shuffled)}

        assert set(result) == {1, 2}
        assert result[1].balance == 175
        assert result[1].total_rewarded == 15
        assert result[1].entry_time == 1000
        assert result[2].balance == 100
        assert result[2].entry_time == 1500

    def test_balance_is_sum_of_constituents(self):
        for data in aggregate_staker_pools(POOLS):
            assert data.balance == sum(pool.balance for pool in data.pools)
            assert data.entry_time == min(pool.entry_time for pool in data.pools)

    def test_folding_twice_gives_the_same_result(self):
        assert aggregate_staker_pools(POOLS) == aggregate_staker_pools(POOLS)

    @pytest.mark.parametrize("order", list(itertools.permutations(range(len(POOLS)))))
    def test_pools_keep_input_order(self, order):
        shuffled = [POOLS[index] for index in order]

        for data in aggregate_staker_pools(shuffled):
            expected = [pool for pool in shuffled if pool.pool_key.validator_id == data.validator_id]
            assert data.pools == expected
