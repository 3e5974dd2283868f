"""
Staking Transaction Builder - every state-mutating operation.

Each operation is described as a group factory `(sender, fee) -> group`
and run through the two-phase submission protocol: simulate with a
placeholder fee to learn the real one, then build again, sign and execute.
"""

from typing import List, Optional, Sequence, Union

import structlog

from reti.config import RetiConfig, get_config
from reti.contracts import RegistryClient, StakingPoolClient
from reti.core.types import (
    MICROALGOS_PER_ALGO,
    PoolInfo,
    ValidatorConfigInput,
    ValidatorPoolKey,
)
from reti.engine.queries import ValidatorQueries
from reti.node.interface import GroupResult, LedgerGateway
from reti.node.nfd import NfdDirectory
from reti.tx.fees import FeeSurcharge
from reti.tx.group import Payment, Sender, TransactionGroup
from reti.tx.signer import TransactionSigner
from reti.tx.submission import GroupFactory, GroupSubmission, GroupSubmitter

logger = structlog.get_logger(__name__)


ASSET_OPT_IN_MBR = MICROALGOS_PER_ALGO // 10    # 0.1 Algo reserve per held asset
MAX_CLAIM_POOLS = 5                             # 3 transactions per pool, 16 per group


class StakingTransactionBuilder:
    """
    Builds and submits registry and staking pool transactions.

    Usage:
        ```python
        builder = StakingTransactionBuilder(gateway, signer)
        pool_key = await builder.add_stake(validator_id=7, amount=1_000_000_000)
        ```
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        signer: TransactionSigner,
        queries: Optional[ValidatorQueries] = None,
        config: Optional[RetiConfig] = None,
        nfd_directory: Optional[NfdDirectory] = None,
        submitter: Optional[GroupSubmitter] = None,
    ):
        """
        Initialize the transaction builder.

        Args:
            gateway: Ledger gateway used for both phases
            signer: Signer of the acting account
            queries: Query layer for reads the operations depend on
            config: Client configuration. Uses global config if not provided.
            nfd_directory: Name directory used to resolve validator NFDs
            submitter: Two-phase submitter (default one over `gateway`)
        """
        self.gateway = gateway
        self.signer = signer
        self.config = config or get_config()
        self.queries = queries or ValidatorQueries(gateway, self.config)
        self.nfd_directory = nfd_directory
        self.submitter = submitter or GroupSubmitter(gateway)
        self.registry = RegistryClient(self.config.registry_app_id)

    async def _submit(
        self,
        operation: str,
        build_group: GroupFactory,
        surcharge: int,
    ) -> GroupResult:
        submission = GroupSubmission(
            operation=operation,
            build_group=build_group,
            sender=self.signer.as_sender(),
            surcharge=surcharge,
            placeholder_fee=self.config.simulate_placeholder_fee,
        )

        logger.info(
            "submission_started",
            operation=operation,
            submission_id=submission.submission_id[:8] + "...",
            sender=submission.sender.address,
        )
        return await self.submitter.submit(submission)

    # =========================================================================
    # Registry operations
    # =========================================================================

    async def add_validator(
        self,
        values: ValidatorConfigInput,
        nfd_app_id: Optional[int] = None,
    ) -> int:
        """
        Register a new validator.

        Args:
            values: Validator settings as entered by the operator
            nfd_app_id: Application id of the NFD named in `values`. When
                omitted and an NFD is named, it is resolved and must be
                owned by the acting account.

        Returns:
            The new validator id
        """
        if nfd_app_id is None:
            nfd_app_id = 0
            if values.nfd_for_info:
                directory = self.nfd_directory or NfdDirectory(self.config)
                record = await directory.verify_owner(values.nfd_for_info, self.signer.as_sender().address)
                nfd_app_id = record.app_id

        mbr = await self.queries.fetch_mbr_amounts()
        config = values.to_config(nfd_app_id)
        registry = self.registry

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            payment = Payment(sender=sender.address, receiver=registry.app_address, amount=mbr.validator_mbr)
            return TransactionGroup(sender, [
                registry.add_validator(payment, values.nfd_for_info, config, fee=fee),
            ])

        result = await self._submit("add_validator", build_group, FeeSurcharge.ADD_VALIDATOR)
        validator_id = int(result.return_at(0))

        logger.info("validator_added", validator_id=validator_id, nfd_app_id=nfd_app_id)
        return validator_id

    async def add_pool(self, validator_id: int, node_num: int, pool_mbr: int) -> ValidatorPoolKey:
        """
        Create a new staking pool on one of the validator's nodes.

        Returns:
            Key of the new pool
        """
        registry = self.registry

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            payment = Payment(sender=sender.address, receiver=registry.app_address, amount=pool_mbr)
            return TransactionGroup(sender, [
                registry.gas(note=b"1"),
                registry.gas(note=b"2"),
                registry.add_pool(payment, validator_id, node_num, fee=fee),
            ])

        result = await self._submit("add_pool", build_group, FeeSurcharge.ADD_POOL)
        pool_key = ValidatorPoolKey.from_abi_tuple(result.return_at(2))

        logger.info(
            "pool_added",
            validator_id=pool_key.validator_id,
            pool_id=pool_key.pool_id,
            pool_app_id=pool_key.pool_app_id,
        )
        return pool_key

    async def add_stake(self, validator_id: int, amount: int, value_to_verify: int = 0) -> ValidatorPoolKey:
        """
        Stake microAlgos with a validator.

        Args:
            validator_id: Validator to stake with
            amount: Stake in microAlgos (includes the staker MBR when owed)
            value_to_verify: Gating value the registry checks on entry

        Returns:
            Key of the pool the stake landed in
        """
        registry = self.registry

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            payment = Payment(sender=sender.address, receiver=registry.app_address, amount=amount)
            return TransactionGroup(sender, [
                registry.gas(),
                registry.add_stake(payment, validator_id, value_to_verify, fee=fee),
            ])

        result = await self._submit("add_stake", build_group, FeeSurcharge.ADD_STAKE)
        pool_key = ValidatorPoolKey.from_abi_tuple(result.return_at(1))

        logger.info(
            "stake_added",
            validator_id=pool_key.validator_id,
            pool_app_id=pool_key.pool_app_id,
            amount=amount,
        )
        return pool_key

    # =========================================================================
    # Pool operations
    # =========================================================================

    async def init_pool_storage(
        self,
        pool_app_id: int,
        pool_init_mbr: int,
        opt_in_reward_token: bool = False,
    ) -> GroupResult:
        """Fund and initialize a new pool's storage (and reward token opt-in)."""
        pool = StakingPoolClient(pool_app_id)
        mbr_amount = pool_init_mbr + ASSET_OPT_IN_MBR if opt_in_reward_token else pool_init_mbr

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            payment = Payment(sender=sender.address, receiver=pool.app_address, amount=mbr_amount)
            return TransactionGroup(sender, [
                pool.gas(note=b"1"),
                pool.gas(note=b"2"),
                pool.init_storage(payment, fee=fee),
            ])

        result = await self._submit("init_pool_storage", build_group, FeeSurcharge.INIT_POOL_STORAGE)
        logger.info("pool_storage_initialized", pool_app_id=pool_app_id, mbr=mbr_amount)
        return result

    async def remove_stake(self, pool_app_id: int, amount: int) -> GroupResult:
        """Withdraw stake (0 withdraws everything) from one pool."""
        pool = StakingPoolClient(pool_app_id)

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            return TransactionGroup(sender, [
                pool.gas(note=b"1", fee=0),
                pool.gas(note=b"2", fee=0),
                pool.remove_stake(amount, fee=fee),
            ])

        result = await self._submit("remove_stake", build_group, FeeSurcharge.REMOVE_STAKE)
        logger.info("stake_removed", pool_app_id=pool_app_id, amount=amount)
        return result

    async def epoch_balance_update(self, pool_app_id: int) -> GroupResult:
        """Trigger the epoch payout of one pool."""
        pool = StakingPoolClient(pool_app_id)

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            return TransactionGroup(sender, [
                pool.gas(note=b"1", fee=0),
                pool.gas(note=b"2", fee=0),
                pool.epoch_balance_update(fee=fee),
            ])

        result = await self._submit("epoch_balance_update", build_group, FeeSurcharge.EPOCH_BALANCE_UPDATE)
        logger.info("epoch_balance_updated", pool_app_id=pool_app_id)
        return result

    async def claim_tokens(self, pools: Sequence[Union[PoolInfo, int]]) -> GroupResult:
        """
        Claim reward tokens from several pools in one atomic group.

        The computed fee covers the whole group and is carried by the
        first claim; every other call in the group pays nothing.
        This differs on purpose from charging the computed fee on every
        pool's claim, which overpays by one fee per extra pool.

        Args:
            pools: Pools (or pool application ids) to claim from, at most 5
        """
        pool_app_ids = _pool_app_ids(pools)
        if not pool_app_ids:
            raise ValueError("claim_tokens requires at least one pool")
        if len(pool_app_ids) > MAX_CLAIM_POOLS:
            raise ValueError(f"claim_tokens accepts at most {MAX_CLAIM_POOLS} pools per group")

        clients = [StakingPoolClient(app_id) for app_id in pool_app_ids]

        def build_group(sender: Sender, fee: int) -> TransactionGroup:
            group = TransactionGroup(sender)
            for index, pool in enumerate(clients):
                group.extend([
                    pool.gas(note=b"1", fee=0),
                    pool.gas(note=b"2", fee=0),
                    pool.claim_tokens(fee=fee if index == 0 else 0),
                ])
            return group

        result = await self._submit("claim_tokens", build_group, FeeSurcharge.CLAIM_TOKENS)
        logger.info("tokens_claimed", pool_app_ids=pool_app_ids)
        return result


def _pool_app_ids(pools: Sequence[Union[PoolInfo, int]]) -> List[int]:
    return [pool.pool_app_id if isinstance(pool, PoolInfo) else int(pool) for pool in pools]
