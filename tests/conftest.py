"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
import math
from typing import Any, Callable, Dict, List, Optional

import pytest
from algosdk import account

from reti.config import NetworkType, RetiConfig
from reti.core.types import StakerPoolData, ValidatorPoolKey
from reti.node.interface import (
    READ_ONLY,
    ExecuteOptions,
    ExecutionFailedError,
    GroupResult,
    LedgerGateway,
    SimulateOptions,
)
from reti.tx.fees import BUDGET_PER_FEE_UNIT, MIN_TXN_FEE
from reti.tx.group import AppCall, TransactionGroup
from reti.tx.signer import TransactionSigner, generate_test_key


REGISTRY_APP_ID = 1234


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> RetiConfig:
    """Create a test configuration."""
    return RetiConfig(
        network=NetworkType.LOCALNET,
        registry_app_id=REGISTRY_APP_ID,
        nfd_api_url="https://nfd.test",
        fetch_batch_size=10,
        log_level="DEBUG",
    )


@pytest.fixture
def signer(test_config) -> TransactionSigner:
    """A signer holding a freshly generated account."""
    return generate_test_key(test_config)


# ============================================================================
# Test Data Generators
# ============================================================================

def generate_test_address() -> str:
    """Generate a valid, random account address."""
    _, address = account.generate_account()
    return address


def raw_validator_config(
    validator_id: int,
    owner: Optional[str] = None,
    max_algo_per_pool: int = 0,
    entry_gating_type: int = 0,
    entry_gating_value: bytes = bytes(32),
) -> List[Any]:
    """Positional ValidatorConfig struct as the registry returns it."""
    owner = owner or generate_test_address()
    return [
        validator_id,
        owner,                      # owner
        owner,                      # manager
        0,                          # nfdForInfo
        entry_gating_type,
        list(entry_gating_value),   # byte[32] decodes as a list of ints
        0,                          # gatingAssetMinBalance
        0,                          # rewardTokenId
        0,                          # rewardPerPayout
        60,                         # payoutEveryXMins
        50_000,                     # percentToValidator (5%)
        owner,                      # validatorCommissionAddress
        1_000_000,                  # minEntryStake
        max_algo_per_pool,
        3,                          # poolsPerNode
        0,                          # sunsettingOn
        0,                          # sunsettingTo
    ]


def raw_validator_state(num_pools: int = 1, total_stakers: int = 2, total_algo_staked: int = 100) -> List[int]:
    return [num_pools, total_stakers, total_algo_staked, 0]


def raw_pools(*pools) -> List[List[int]]:
    """Pool directory entries: (pool_app_id, total_stakers, total_algo_staked)."""
    return [list(pool) for pool in pools]


def raw_token_payout_ratio() -> List[Any]:
    return [[0] * 24, 0]


def raw_node_pool_assignment(*pool_app_ids: int) -> List[Any]:
    """((uint64[3])[8]) with the given pools on node 1."""
    first = list(pool_app_ids) + [0] * (3 - len(pool_app_ids))
    nodes = [[first]] + [[[0, 0, 0]] for _ in range(7)]
    return [nodes]


def make_pool_data(
    validator_id: int,
    pool_id: int,
    balance: int,
    entry_time: int,
    total_rewarded: int = 0,
    reward_token_balance: int = 0,
    account_address: str = "STAKER",
) -> StakerPoolData:
    """Create a staker pool record tagged with its pool key."""
    return StakerPoolData(
        account=account_address,
        balance=balance,
        total_rewarded=total_rewarded,
        reward_token_balance=reward_token_balance,
        entry_time=entry_time,
        pool_key=ValidatorPoolKey(validator_id, pool_id, 5000 + validator_id * 100 + pool_id),
    )


# ============================================================================
# Mock Ledger Gateway
# ============================================================================

Handler = Callable[[AppCall], Any]


class MockLedgerGateway(LedgerGateway):
    """
    Mock ledger gateway for testing.

    Method calls are answered from `handlers`, keyed by method name. A
    handler is either a constant return value or a callable taking the
    AppCall. Methods named in `rejections` fail with the given message; a
    rejection may also be a callable taking the AppCall and returning a
    message or None.
    """

    def __init__(self):
        self.handlers: Dict[str, Any] = {}
        self.rejections: Dict[str, Any] = {}
        self.app_budget_added: int = 0
        self.minimum_fee: Optional[int] = None
        self.latency: float = 0.0

        self.simulated: List[TransactionGroup] = []
        self.simulate_options: List[SimulateOptions] = []
        self.executed: List[TransactionGroup] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def _answer(self, call: AppCall) -> Any:
        handler = self.handlers.get(call.name)
        if callable(handler):
            return handler(call)
        return handler

    def _rejection(self, call: AppCall) -> Optional[str]:
        reason = self.rejections.get(call.name)
        if callable(reason):
            return reason(call)
        return reason

    def required_fee(self) -> int:
        """Fee the mock ledger demands for a group."""
        if self.minimum_fee is not None:
            return self.minimum_fee
        return MIN_TXN_FEE * math.ceil(self.app_budget_added / BUDGET_PER_FEE_UNIT)

    @staticmethod
    def group_fee(group: TransactionGroup) -> int:
        """Total fee a group pays; unset fees pay the minimum."""
        total = 0
        for call in group:
            total += MIN_TXN_FEE if call.fee is None else call.fee
            for payment in call.payments:
                total += MIN_TXN_FEE if payment.fee is None else payment.fee
        return total

    async def simulate(
        self,
        group: TransactionGroup,
        options: SimulateOptions = READ_ONLY,
    ) -> GroupResult:
        self.simulated.append(group)
        self.simulate_options.append(options)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
        finally:
            self.in_flight -= 1

        returns = []
        for index, call in enumerate(group):
            reason = self._rejection(call)
            if reason is not None:
                return GroupResult(
                    returns=returns,
                    failure_message=reason,
                    failed_at=[index],
                )
            returns.append(self._answer(call))

        return GroupResult(
            returns=returns,
            app_budget_added=self.app_budget_added,
            app_budget_consumed=self.app_budget_added,
        )

    async def execute(
        self,
        group: TransactionGroup,
        options: ExecuteOptions = ExecuteOptions(),
    ) -> GroupResult:
        if not group.sender.is_authorizing:
            raise ExecutionFailedError("Group sender cannot sign", error_code="unsigned")

        for call in group:
            reason = self._rejection(call)
            if reason is not None:
                raise ExecutionFailedError(reason, error_code="logic")

        if self.group_fee(group) < self.required_fee():
            raise ExecutionFailedError(
                f"fee too small: {self.group_fee(group)} < {self.required_fee()}",
                error_code="fee",
            )

        self.executed.append(group)
        return GroupResult(
            returns=[self._answer(call) for call in group],
            tx_ids=[f"TX{len(self.executed)}-{index}" for index in range(group.size)],
            confirmed_round=1000 + len(self.executed),
        )


class RegistryState:
    """
    In-memory registry contents served through a MockLedgerGateway.

    Per-validator tables are keyed by validator id; a missing key reads
    as absent.
    """

    def __init__(self):
        self.configs: Dict[int, Any] = {}
        self.states: Dict[int, Any] = {}
        self.pools: Dict[int, Any] = {}
        self.payout_ratios: Dict[int, Any] = {}
        self.assignments: Dict[int, Any] = {}
        self.staked_pools: Dict[str, List[List[int]]] = {}
        self.staker_info: Dict[int, Dict[str, List[Any]]] = {}
        self.mbr_amounts = [10_000_000, 1_000_000, 300_000, 20_000]
        self.constraints = [1, 10_080, 0, 1_000_000, 1_000_000, 70_000_000_000_000, 0, 0, 8, 3, 200]

    def add_validator(self, validator_id: int, *pools, **config_overrides) -> None:
        """Register a complete validator with the given pool directory entries."""
        pools = pools or ((5000 + validator_id, 2, 100),)
        self.configs[validator_id] = raw_validator_config(validator_id, **config_overrides)
        self.states[validator_id] = raw_validator_state(num_pools=len(pools))
        self.pools[validator_id] = raw_pools(*pools)
        self.payout_ratios[validator_id] = raw_token_payout_ratio()
        self.assignments[validator_id] = raw_node_pool_assignment(*[pool[0] for pool in pools][:3])

    def install(self, gateway: MockLedgerGateway) -> MockLedgerGateway:
        gateway.handlers.update({
            "getNumValidators": lambda call: len(self.configs),
            "getValidatorConfig": lambda call: self.configs.get(call.args[0]),
            "getValidatorState": lambda call: self.states.get(call.args[0]),
            "getPools": lambda call: self.pools.get(call.args[0]),
            "getTokenPayoutRatio": lambda call: self.payout_ratios.get(call.args[0]),
            "getNodePoolAssignments": lambda call: self.assignments.get(call.args[0]),
            "getMbrAmounts": lambda call: self.mbr_amounts,
            "getProtocolConstraints": lambda call: self.constraints,
            "getStakedPoolsForAccount": lambda call: self.staked_pools.get(call.args[0], []),
            "getStakerInfo": lambda call: self.staker_info.get(call.app_id, {}).get(call.args[0]),
        })
        return gateway


@pytest.fixture
def ledger() -> MockLedgerGateway:
    """Create a mock ledger gateway."""
    return MockLedgerGateway()


@pytest.fixture
def registry_state() -> RegistryState:
    return RegistryState()


@pytest.fixture
def registry_ledger(ledger, registry_state) -> MockLedgerGateway:
    """A mock ledger serving `registry_state`."""
    return registry_state.install(ledger)
