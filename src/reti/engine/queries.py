"""
Validator Query Layer - read-only access to registry and pool state.

Every read is a simulated method call sent by a neutral, non-authorizing
sender; nothing is signed and nothing is committed. A read that the
contract rejects, or that returns nothing, is treated as absent. List
reads are the exception: an empty list is a valid answer, so only a
rejected list read counts as absent.
"""

import asyncio
from typing import Any, List, Optional, Tuple

import structlog

from reti.config import RetiConfig, get_config
from reti.contracts import RegistryClient, StakingPoolClient
from reti.core.aggregate import aggregate_staker_pools
from reti.core.transforms import (
    transform_constraints,
    transform_mbr_amounts,
    transform_node_pool_assignment,
    transform_pool_info,
    transform_pools,
    transform_staker_pool_data,
    transform_token_payout_ratio,
    transform_validator_config,
    transform_validator_data,
    transform_validator_state,
)
from reti.core.types import (
    Constraints,
    MbrAmounts,
    NodePoolAssignmentConfig,
    PoolInfo,
    PoolTokenPayoutRatio,
    StakerPoolData,
    StakerValidatorData,
    Validator,
    ValidatorConfig,
    ValidatorPoolKey,
    ValidatorState,
)
from reti.engine.scheduler import BatchFetchScheduler
from reti.node.interface import READ_ONLY, GroupResult, LedgerError, LedgerGateway
from reti.tx.group import AppCall, Sender, TransactionGroup

logger = structlog.get_logger(__name__)


class NotFoundError(LookupError):
    """A logical entity does not exist on the ledger."""
    pass


class ValidatorNotFoundError(NotFoundError):
    """Raised when any constituent read of a validator is absent."""

    def __init__(self, validator_id: int):
        super().__init__(f'Validator with id "{validator_id}" not found')
        self.validator_id = validator_id


class NodePoolAssignmentNotFoundError(NotFoundError):
    """Raised when a validator has no node/pool assignment map."""

    def __init__(self, validator_id: int):
        super().__init__(f"No node pool assignment found for validator {validator_id}")
        self.validator_id = validator_id


class ValidatorQueries:
    """
    Read-only queries against the validator registry and its pools.

    Usage:
        ```python
        queries = ValidatorQueries(gateway)
        validator = await queries.fetch_validator(7)
        stakes = await queries.fetch_staker_validator_data(address)
        ```
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        config: Optional[RetiConfig] = None,
        scheduler: Optional[BatchFetchScheduler] = None,
    ):
        """
        Initialize the query layer.

        Args:
            gateway: Ledger gateway used for simulation
            config: Client configuration. Uses global config if not provided.
            scheduler: Batch scheduler for fan-out reads
        """
        self.gateway = gateway
        self.config = config or get_config()
        self.registry = RegistryClient(self.config.registry_app_id)
        self.scheduler = scheduler or BatchFetchScheduler(self.config.fetch_batch_size)
        self.sender = Sender(self.config.read_sender)

    async def _simulate(self, call: AppCall, sender: Optional[Sender] = None) -> GroupResult:
        group = TransactionGroup(sender or self.sender, [call])
        try:
            return await self.gateway.simulate(group, READ_ONLY)
        except LedgerError as e:
            logger.error("read_failed", method=call.name, app_id=call.app_id, error=str(e))
            raise

    async def _read(self, call: AppCall, sender: Optional[Sender] = None) -> Any:
        """Simulate a single call; None if it was rejected or returned nothing."""
        result = await self._simulate(call, sender)

        if not result.succeeded:
            logger.debug("read_rejected", method=call.name, app_id=call.app_id, reason=result.failure_message)
            return None
        return result.return_at(0)

    async def _read_list(self, call: AppCall, missing: NotFoundError) -> List[Any]:
        """Simulate a call returning an array; raises `missing` if it was rejected."""
        result = await self._simulate(call)

        if not result.succeeded:
            logger.warning("read_rejected", method=call.name, app_id=call.app_id, reason=result.failure_message)
            raise missing
        return list(result.return_at(0) or [])

    # =========================================================================
    # Registry
    # =========================================================================

    async def get_num_validators(self) -> int:
        raw = await self._read(self.registry.get_num_validators())
        if raw is None:
            raise NotFoundError(f"Registry application {self.registry.app_id} not found")
        return int(raw)

    async def fetch_validator_config(self, validator_id: int) -> ValidatorConfig:
        raw = await self._read(self.registry.get_validator_config(validator_id))
        if not raw:
            raise ValidatorNotFoundError(validator_id)
        return transform_validator_config(raw)

    async def fetch_validator_state(self, validator_id: int) -> ValidatorState:
        raw = await self._read(self.registry.get_validator_state(validator_id))
        if not raw:
            raise ValidatorNotFoundError(validator_id)
        return transform_validator_state(raw)

    async def fetch_validator(self, validator_id: int) -> Validator:
        """
        Fetch a complete validator.

        The five constituent reads run concurrently. The validator exists
        only if every one of them returns a value; an empty pool directory
        counts as missing.

        Raises:
            ValidatorNotFoundError: If any constituent read is absent
        """
        raw_config, raw_state, raw_pools, raw_payout_ratio, raw_assignment = await asyncio.gather(
            self._read(self.registry.get_validator_config(validator_id)),
            self._read(self.registry.get_validator_state(validator_id)),
            self._read(self.registry.get_pools(validator_id)),
            self._read(self.registry.get_token_payout_ratio(validator_id)),
            self._read(self.registry.get_node_pool_assignments(validator_id)),
        )

        if not (raw_config and raw_state and raw_pools and raw_payout_ratio and raw_assignment):
            logger.warning(
                "validator_not_found",
                validator_id=validator_id,
                config=bool(raw_config),
                state=bool(raw_state),
                pools=bool(raw_pools),
                payout_ratio=bool(raw_payout_ratio),
                node_assignment=bool(raw_assignment),
            )
            raise ValidatorNotFoundError(validator_id)

        validator = transform_validator_data(
            raw_config,
            raw_state,
            raw_pools,
            raw_payout_ratio,
            raw_assignment,
        )
        logger.debug("validator_fetched", validator_id=validator.id, pools=len(validator.pools))
        return validator

    async def fetch_validators(self) -> List[Validator]:
        """
        Fetch every registered validator, in id order.

        Validator ids run from 1 to the registry's count. Reads are batched;
        a single missing validator fails the whole listing.
        """
        num_validators = await self.get_num_validators()
        if not num_validators:
            return []

        validators = await self.scheduler.map(self.fetch_validator, range(1, num_validators + 1))
        logger.info("validators_fetched", count=len(validators))
        return validators

    async def fetch_node_pool_assignments(self, validator_id: int) -> NodePoolAssignmentConfig:
        raw = await self._read(self.registry.get_node_pool_assignments(validator_id))
        if not raw:
            raise NodePoolAssignmentNotFoundError(validator_id)
        return transform_node_pool_assignment(raw)

    async def fetch_token_payout_ratio(self, validator_id: int) -> PoolTokenPayoutRatio:
        raw = await self._read(self.registry.get_token_payout_ratio(validator_id))
        if not raw:
            raise ValidatorNotFoundError(validator_id)
        return transform_token_payout_ratio(raw)

    async def fetch_mbr_amounts(self) -> MbrAmounts:
        """Read the registry's minimum balance reserve schedule (never cached)."""
        raw = await self._read(self.registry.get_mbr_amounts())
        if not raw:
            raise NotFoundError(f"Registry application {self.registry.app_id} not found")
        return transform_mbr_amounts(raw)

    async def fetch_protocol_constraints(self) -> Constraints:
        """Read the protocol-wide constraints (never cached)."""
        raw = await self._read(self.registry.get_protocol_constraints())
        if not raw:
            raise NotFoundError(f"Registry application {self.registry.app_id} not found")
        return transform_constraints(raw)

    # =========================================================================
    # Pools
    # =========================================================================

    async def fetch_pool_info(self, pool_key: ValidatorPoolKey) -> PoolInfo:
        raw = await self._read(self.registry.get_pool_info(pool_key))
        if not raw:
            raise NotFoundError(
                f"Pool {pool_key.pool_id} of validator {pool_key.validator_id} not found"
            )
        return transform_pool_info(raw, validator_id=pool_key.validator_id, pool_id=pool_key.pool_id)

    async def fetch_validator_pools(self, validator_id: int) -> List[PoolInfo]:
        """Read a validator's pool directory (possibly empty)."""
        raw = await self._read_list(self.registry.get_pools(validator_id), ValidatorNotFoundError(validator_id))
        return transform_pools(raw, validator_id)

    async def fetch_max_available_to_stake(self, validator_id: int) -> int:
        """
        Largest stake any single pool of the validator can still accept.

        Returns:
            max(max_algo_per_pool - total_algo_staked) over the pools, never
            below 0
        """
        config, pools = await asyncio.gather(
            self.fetch_validator_config(validator_id),
            self.fetch_validator_pools(validator_id),
        )

        available = 0
        for pool in pools:
            available = max(available, config.max_algo_per_pool - pool.total_algo_staked)
        return available

    # =========================================================================
    # Stakers
    # =========================================================================

    async def does_staker_need_to_pay_mbr(self, staker: str) -> bool:
        # The registry checks the sender's own state, so the staker sends the read
        raw = await self._read(
            self.registry.does_staker_need_to_pay_mbr(staker),
            sender=Sender(staker),
        )
        if raw is None:
            raise NotFoundError(f"Registry application {self.registry.app_id} not found")
        return bool(raw)

    async def find_pool_for_staker(
        self,
        validator_id: int,
        staker: str,
        amount_to_stake: int,
    ) -> Tuple[Optional[ValidatorPoolKey], bool, bool]:
        """
        Ask the registry which pool would take a new stake.

        Returns:
            (pool key or None when no pool has room,
             is new staker to this validator, is new staker to the protocol)
        """
        raw = await self._read(self.registry.find_pool_for_staker(validator_id, staker, amount_to_stake))
        if not raw:
            raise ValidatorNotFoundError(validator_id)

        raw_key, is_new_to_validator, is_new_to_protocol = raw
        pool_key = ValidatorPoolKey.from_abi_tuple(raw_key)
        if pool_key.pool_app_id == 0:
            pool_key = None
        return pool_key, bool(is_new_to_validator), bool(is_new_to_protocol)

    async def is_new_staker_to_validator(
        self,
        validator_id: int,
        staker: str,
        min_entry_stake: int,
    ) -> bool:
        _, is_new_to_validator, _ = await self.find_pool_for_staker(validator_id, staker, min_entry_stake)
        return is_new_to_validator

    async def fetch_staked_pools_for_account(self, staker: str) -> List[ValidatorPoolKey]:
        raw = await self._read_list(
            self.registry.get_staked_pools_for_account(staker),
            NotFoundError(f"Registry application {self.registry.app_id} not found"),
        )
        return [ValidatorPoolKey.from_abi_tuple(entry) for entry in raw]

    async def fetch_staker_pool_data(self, pool_key: ValidatorPoolKey, staker: str) -> StakerPoolData:
        pool = StakingPoolClient(pool_key.pool_app_id)
        raw = await self._read(pool.get_staker_info(staker))
        if not raw:
            raise NotFoundError(f"Staker {staker} not found in pool {pool_key.pool_app_id}")
        return transform_staker_pool_data(raw, pool_key)

    async def fetch_staker_validator_data(self, staker: str) -> List[StakerValidatorData]:
        """
        Consolidate a staker's positions per validator.

        Looks up every pool the staker occupies, batch-fetches the staker's
        record from each, and folds the records by validator id in lookup
        order.
        """
        pool_keys = await self.fetch_staked_pools_for_account(staker)

        pools = await self.scheduler.map(
            lambda pool_key: self.fetch_staker_pool_data(pool_key, staker),
            pool_keys,
        )

        aggregates = aggregate_staker_pools(pools)
        logger.debug(
            "staker_positions_fetched",
            staker=staker,
            pools=len(pools),
            validators=len(aggregates),
        )
        return aggregates
