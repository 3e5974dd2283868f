"""
Contract call factories for the validator registry and staking pools.

Each factory returns an AppCall description; nothing is sent from here.
Method signatures must match the ARC-4 interface of the deployed contracts.
"""

from typing import Optional

from algosdk import logic

from reti.core.types import ValidatorConfig, ValidatorPoolKey
from reti.tx.group import AppCall, Payment


VALIDATOR_CONFIG_TYPE = (
    "(uint64,address,address,uint64,uint8,byte[32],uint64,uint64,uint64,"
    "uint16,uint32,address,uint64,uint64,uint8,uint64,uint64)"
)
POOL_KEY_TYPE = "(uint64,uint64,uint64)"
POOL_INFO_TYPE = "(uint64,uint16,uint64)"


class RegistryMethods:
    """ARC-4 signatures of the validator registry."""
    GAS = "gas()void"
    GET_NUM_VALIDATORS = "getNumValidators()uint64"
    GET_VALIDATOR_CONFIG = f"getValidatorConfig(uint64){VALIDATOR_CONFIG_TYPE}"
    GET_VALIDATOR_STATE = "getValidatorState(uint64)(uint16,uint64,uint64,uint64)"
    GET_POOLS = f"getPools(uint64){POOL_INFO_TYPE}[]"
    GET_POOL_INFO = f"getPoolInfo({POOL_KEY_TYPE}){POOL_INFO_TYPE}"
    GET_NODE_POOL_ASSIGNMENTS = "getNodePoolAssignments(uint64)((uint64[3])[8])"
    GET_TOKEN_PAYOUT_RATIO = "getTokenPayoutRatio(uint64)(uint64[24],uint64)"
    GET_MBR_AMOUNTS = "getMbrAmounts()(uint64,uint64,uint64,uint64)"
    GET_PROTOCOL_CONSTRAINTS = (
        "getProtocolConstraints()"
        "(uint64,uint64,uint64,uint64,uint64,uint64,uint64,uint64,uint64,uint64,uint64)"
    )
    GET_STAKED_POOLS_FOR_ACCOUNT = f"getStakedPoolsForAccount(address){POOL_KEY_TYPE}[]"
    DOES_STAKER_NEED_TO_PAY_MBR = "doesStakerNeedToPayMBR(address)bool"
    FIND_POOL_FOR_STAKER = f"findPoolForStaker(uint64,address,uint64)({POOL_KEY_TYPE},bool,bool)"
    ADD_VALIDATOR = f"addValidator(pay,string,{VALIDATOR_CONFIG_TYPE})uint64"
    ADD_POOL = f"addPool(pay,uint64,uint64){POOL_KEY_TYPE}"
    ADD_STAKE = f"addStake(pay,uint64,uint64){POOL_KEY_TYPE}"


class PoolMethods:
    """ARC-4 signatures of a staking pool."""
    GAS = "gas()void"
    INIT_STORAGE = "initStorage(pay)void"
    GET_STAKER_INFO = "getStakerInfo(address)(address,uint64,uint64,uint64,uint64)"
    REMOVE_STAKE = "removeStake(uint64)void"
    CLAIM_TOKENS = "claimTokens()void"
    EPOCH_BALANCE_UPDATE = "epochBalanceUpdate()void"


class RegistryClient:
    """Builds calls against the validator registry application."""
    
    def __init__(self, app_id: int):
        self.app_id = int(app_id)
    
    @property
    def app_address(self) -> str:
        return logic.get_application_address(self.app_id)
    
    def _call(self, method: str, *args, fee: Optional[int] = None, note: bytes = b"") -> AppCall:
        return AppCall(app_id=self.app_id, method=method, args=tuple(args), fee=fee, note=note)
    
    def gas(self, note: bytes = b"", fee: Optional[int] = None) -> AppCall:
        return self._call(RegistryMethods.GAS, fee=fee, note=note)
    
    def get_num_validators(self) -> AppCall:
        return self._call(RegistryMethods.GET_NUM_VALIDATORS)
    
    def get_validator_config(self, validator_id: int) -> AppCall:
        return self._call(RegistryMethods.GET_VALIDATOR_CONFIG, int(validator_id))
    
    def get_validator_state(self, validator_id: int) -> AppCall:
        return self._call(RegistryMethods.GET_VALIDATOR_STATE, int(validator_id))
    
    def get_pools(self, validator_id: int) -> AppCall:
        return self._call(RegistryMethods.GET_POOLS, int(validator_id))
    
    def get_pool_info(self, pool_key: ValidatorPoolKey) -> AppCall:
        return self._call(RegistryMethods.GET_POOL_INFO, list(pool_key.to_abi_tuple()))
    
    def get_node_pool_assignments(self, validator_id: int) -> AppCall:
        return self._call(RegistryMethods.GET_NODE_POOL_ASSIGNMENTS, int(validator_id))
    
    def get_token_payout_ratio(self, validator_id: int) -> AppCall:
        return self._call(RegistryMethods.GET_TOKEN_PAYOUT_RATIO, int(validator_id))
    
    def get_mbr_amounts(self) -> AppCall:
        return self._call(RegistryMethods.GET_MBR_AMOUNTS)
    
    def get_protocol_constraints(self) -> AppCall:
        return self._call(RegistryMethods.GET_PROTOCOL_CONSTRAINTS)
    
    def get_staked_pools_for_account(self, staker: str) -> AppCall:
        return self._call(RegistryMethods.GET_STAKED_POOLS_FOR_ACCOUNT, staker)
    
    def does_staker_need_to_pay_mbr(self, staker: str) -> AppCall:
        return self._call(RegistryMethods.DOES_STAKER_NEED_TO_PAY_MBR, staker)
    
    def find_pool_for_staker(self, validator_id: int, staker: str, amount_to_stake: int) -> AppCall:
        return self._call(
            RegistryMethods.FIND_POOL_FOR_STAKER,
            int(validator_id),
            staker,
            int(amount_to_stake),
        )
    
    def add_validator(
        self,
        mbr_payment: Payment,
        nfd_name: str,
        config: ValidatorConfig,
        fee: Optional[int] = None,
    ) -> AppCall:
        return self._call(
            RegistryMethods.ADD_VALIDATOR,
            mbr_payment,
            nfd_name,
            config.to_abi_tuple(),
            fee=fee,
        )
    
    def add_pool(
        self,
        mbr_payment: Payment,
        validator_id: int,
        node_num: int,
        fee: Optional[int] = None,
    ) -> AppCall:
        return self._call(
            RegistryMethods.ADD_POOL,
            mbr_payment,
            int(validator_id),
            int(node_num),
            fee=fee,
        )
    
    def add_stake(
        self,
        staked_amount_payment: Payment,
        validator_id: int,
        value_to_verify: int,
        fee: Optional[int] = None,
    ) -> AppCall:
        return self._call(
            RegistryMethods.ADD_STAKE,
            staked_amount_payment,
            int(validator_id),
            int(value_to_verify),
            fee=fee,
        )


class StakingPoolClient:
    """Builds calls against one staking pool application."""
    
    def __init__(self, app_id: int):
        self.app_id = int(app_id)
    
    @property
    def app_address(self) -> str:
        return logic.get_application_address(self.app_id)
    
    def _call(self, method: str, *args, fee: Optional[int] = None, note: bytes = b"") -> AppCall:
        return AppCall(app_id=self.app_id, method=method, args=tuple(args), fee=fee, note=note)
    
    def gas(self, note: bytes = b"", fee: Optional[int] = None) -> AppCall:
        return self._call(PoolMethods.GAS, fee=fee, note=note)
    
    def init_storage(self, mbr_payment: Payment, fee: Optional[int] = None) -> AppCall:
        return self._call(PoolMethods.INIT_STORAGE, mbr_payment, fee=fee)
    
    def get_staker_info(self, staker: str) -> AppCall:
        return self._call(PoolMethods.GET_STAKER_INFO, staker)
    
    def remove_stake(self, amount_to_unstake: int, fee: Optional[int] = None) -> AppCall:
        return self._call(PoolMethods.REMOVE_STAKE, int(amount_to_unstake), fee=fee)
    
    def claim_tokens(self, fee: Optional[int] = None) -> AppCall:
        return self._call(PoolMethods.CLAIM_TOKENS, fee=fee)
    
    def epoch_balance_update(self, fee: Optional[int] = None) -> AppCall:
        return self._call(PoolMethods.EPOCH_BALANCE_UPDATE, fee=fee)
