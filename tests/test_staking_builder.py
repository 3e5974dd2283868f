"""
Test suite for the staking transaction builder.

Every write operation runs the two-phase protocol; these tests check the
shape of the groups it builds and the values it extracts from results.
"""

from unittest.mock import AsyncMock

import pytest
from algosdk import logic

from reti.contracts import StakingPoolClient
from reti.core.gating import AssetIdGate
from reti.core.types import PoolInfo, ValidatorConfigInput, ValidatorPoolKey
from reti.node.interface import SimulationRejectedError
from reti.node.nfd import NameOwnershipError, NfdDirectory, NfdRecord
from reti.tx.builder import StakingTransactionBuilder
from reti.tx.group import GroupTooLargeError, TransactionGroup
from reti.tx.signer import SignerNotLoadedError, TransactionSigner

from conftest import REGISTRY_APP_ID


@pytest.fixture
def builder(registry_ledger, signer, test_config) -> StakingTransactionBuilder:
    return StakingTransactionBuilder(registry_ledger, signer, config=test_config)


def make_config_input(owner: str, nfd: str = "") -> ValidatorConfigInput:
    return ValidatorConfigInput(
        owner=owner,
        manager=owner,
        validator_commission_address=owner,
        payout_every_x_mins=1440,
        percent_to_validator=5,
        min_entry_stake=1000,
        pools_per_node=2,
        entry_gate=AssetIdGate(asset_id=555),
        nfd_for_info=nfd,
    )


# ============================================================================
# Registry operations
# ============================================================================

class TestAddValidator:
    """Tests for validator registration."""

    @pytest.mark.asyncio
    async def test_group_and_return_value(self, builder, registry_ledger, signer):
        registry_ledger.handlers["addValidator"] = 12

        validator_id = await builder.add_validator(make_config_input(signer.address), nfd_app_id=0)

        assert validator_id == 12
        executed = registry_ledger.executed[-1]
        assert executed.method_names == ["addValidator"]
        (call,) = executed.calls
        payment, nfd_name, config = call.args
        assert payment.amount == 10_000_000
        assert payment.receiver == logic.get_application_address(REGISTRY_APP_ID)
        assert nfd_name == ""
        assert config[10] == 50_000
        assert config[12] == 1_000_000_000
        assert config[13] == 0

    @pytest.mark.asyncio
    async def test_resolves_and_verifies_nfd(self, registry_ledger, signer, test_config):
        registry_ledger.handlers["addValidator"] = 3
        directory = NfdDirectory(test_config)
        directory.verify_owner = AsyncMock(return_value=NfdRecord("me.algo", signer.address, 4242))
        builder = StakingTransactionBuilder(registry_ledger, signer, config=test_config, nfd_directory=directory)

        await builder.add_validator(make_config_input(signer.address, nfd="me.algo"))

        directory.verify_owner.assert_awaited_once_with("me.algo", signer.address)
        call = registry_ledger.executed[-1].calls[0]
        assert call.args[1] == "me.algo"
        assert call.args[2][3] == 4242

    @pytest.mark.asyncio
    async def test_nfd_owned_by_someone_else(self, registry_ledger, signer, test_config):
        directory = NfdDirectory(test_config)
        directory.verify_owner = AsyncMock(
            side_effect=NameOwnershipError("me.algo", "OTHER", signer.address),
        )
        builder = StakingTransactionBuilder(registry_ledger, signer, config=test_config, nfd_directory=directory)

        with pytest.raises(NameOwnershipError):
            await builder.add_validator(make_config_input(signer.address, nfd="me.algo"))

        assert registry_ledger.simulated == []


class TestAddPool:
    """Tests for pool creation."""

    @pytest.mark.asyncio
    async def test_group_shape_and_key(self, builder, registry_ledger):
        registry_ledger.handlers["addPool"] = [4, 2, 4002]

        pool_key = await builder.add_pool(validator_id=4, node_num=1, pool_mbr=1_000_000)

        assert pool_key == ValidatorPoolKey(4, 2, 4002)
        executed = registry_ledger.executed[-1]
        assert executed.method_names == ["gas", "gas", "addPool"]
        assert [call.note for call in executed] == [b"1", b"2", b""]
        assert executed.calls[2].payments[0].amount == 1_000_000
        assert executed.size == 4


class TestAddStake:
    """Tests for staking."""

    @pytest.mark.asyncio
    async def test_group_shape_fee_and_key(self, builder, registry_ledger, signer):
        registry_ledger.app_budget_added = 1400
        registry_ledger.handlers["addStake"] = [1, 3, 1003]

        pool_key = await builder.add_stake(validator_id=1, amount=5_000_000, value_to_verify=9)

        assert pool_key == ValidatorPoolKey(1, 3, 1003)
        simulated = registry_ledger.simulated[-1]
        executed = registry_ledger.executed[-1]
        assert simulated.method_names == executed.method_names == ["gas", "addStake"]
        assert simulated.calls[1].fee == 240_000
        assert executed.calls[1].fee == 2000 + 2000
        payment = executed.calls[1].payments[0]
        assert payment.sender == signer.address
        assert payment.amount == 5_000_000
        assert executed.calls[1].args[1:] == (1, 9)

    @pytest.mark.asyncio
    async def test_rejected_stake_is_not_submitted(self, builder, registry_ledger):
        registry_ledger.rejections["addStake"] = "stake below minimum"

        with pytest.raises(SimulationRejectedError):
            await builder.add_stake(validator_id=1, amount=1)

        assert registry_ledger.executed == []


# ============================================================================
# Pool operations
# ============================================================================

class TestPoolOperations:
    """Tests for operations against a single pool."""

    @pytest.mark.asyncio
    async def test_init_pool_storage_with_reward_token(self, builder, registry_ledger):
        await builder.init_pool_storage(pool_app_id=8001, pool_init_mbr=300_000, opt_in_reward_token=True)

        executed = registry_ledger.executed[-1]
        assert executed.method_names == ["gas", "gas", "initStorage"]
        payment = executed.calls[2].payments[0]
        assert payment.amount == 400_000
        assert payment.receiver == logic.get_application_address(8001)
        assert executed.app_ids == [8001]

    @pytest.mark.asyncio
    async def test_init_pool_storage_without_reward_token(self, builder, registry_ledger):
        await builder.init_pool_storage(pool_app_id=8001, pool_init_mbr=300_000)

        assert registry_ledger.executed[-1].calls[2].payments[0].amount == 300_000

    @pytest.mark.asyncio
    async def test_remove_stake_pools_fee_on_logical_call(self, builder, registry_ledger):
        registry_ledger.app_budget_added = 2100

        await builder.remove_stake(pool_app_id=8001, amount=0)

        simulated = registry_ledger.simulated[-1]
        executed = registry_ledger.executed[-1]
        assert [call.fee for call in simulated] == [0, 0, 240_000]
        assert [call.fee for call in executed] == [0, 0, 3000]
        assert executed.calls[2].args == (0,)

    @pytest.mark.asyncio
    async def test_epoch_balance_update_surcharge(self, builder, registry_ledger):
        registry_ledger.app_budget_added = 700

        await builder.epoch_balance_update(pool_app_id=8001)

        executed = registry_ledger.executed[-1]
        assert executed.method_names == ["gas", "gas", "epochBalanceUpdate"]
        assert executed.calls[2].fee == 1000 + 3000


class TestClaimTokens:
    """Tests for multi-pool reward claims."""

    @pytest.mark.asyncio
    async def test_one_group_across_pools(self, builder, registry_ledger):
        registry_ledger.app_budget_added = 4200
        pools = [PoolInfo(9001, 1, 10), PoolInfo(9002, 1, 10), 9003]

        await builder.claim_tokens(pools)

        executed = registry_ledger.executed[-1]
        assert executed.app_ids == [9001, 9002, 9003]
        assert executed.method_names == ["gas", "gas", "claimTokens"] * 3
        assert [call.fee for call in executed if call.name == "claimTokens"] == [6000, 0, 0]
        assert len(registry_ledger.executed) == 1

    @pytest.mark.asyncio
    async def test_at_most_five_pools(self, builder):
        with pytest.raises(ValueError):
            await builder.claim_tokens(list(range(9001, 9007)))

    @pytest.mark.asyncio
    async def test_requires_pools(self, builder):
        with pytest.raises(ValueError):
            await builder.claim_tokens([])

    def test_seventeen_transactions_do_not_fit(self, signer):
        group = TransactionGroup(signer.as_sender())
        group.extend([StakingPoolClient(9001).gas(note=bytes([i])) for i in range(16)])

        with pytest.raises(GroupTooLargeError):
            group.add(StakingPoolClient(9001).gas())


# ============================================================================
# Signing
# ============================================================================

class TestSigning:
    """Write operations need a loaded signing key."""

    @pytest.mark.asyncio
    async def test_unloaded_signer(self, registry_ledger, test_config):
        builder = StakingTransactionBuilder(registry_ledger, TransactionSigner(test_config), config=test_config)

        with pytest.raises(SignerNotLoadedError):
            await builder.remove_stake(pool_app_id=8001, amount=1)

        assert registry_ledger.simulated == []

    @pytest.mark.asyncio
    async def test_phase_one_is_unsigned(self, builder, registry_ledger, signer):
        await builder.epoch_balance_update(pool_app_id=8001)

        assert registry_ledger.simulated[-1].sender.is_authorizing is False
        assert registry_ledger.executed[-1].sender.is_authorizing is True
        assert registry_ledger.executed[-1].sender.address == signer.address
