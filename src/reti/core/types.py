"""
Reti data model.

Typed views over the registry and staking pool contract state. Everything
here is re-derived from the ledger on each read; nothing is persisted.
"""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from reti.core.gating import EntryGate, EntryGatingType, NoGate, decode_gate


MICROALGOS_PER_ALGO = 1_000_000
COMMISSION_PRECISION = 10_000     # percentToValidator is percent x 10000


@dataclass(frozen=True)
class ValidatorPoolKey:
    """Uniquely addresses one staking pool of one validator."""
    validator_id: int
    pool_id: int
    pool_app_id: int
    
    def to_abi_tuple(self) -> Tuple[int, int, int]:
        return (self.validator_id, self.pool_id, self.pool_app_id)
    
    @classmethod
    def from_abi_tuple(cls, raw) -> "ValidatorPoolKey":
        validator_id, pool_id, pool_app_id = raw
        return cls(
            validator_id=int(validator_id),
            pool_id=int(pool_id),
            pool_app_id=int(pool_app_id),
        )


@dataclass(frozen=True)
class ValidatorConfig:
    """
    Protocol parameters of one validator, fixed at registration.
    
    Attributes:
        id: Validator id (0 until the registry assigns one)
        owner: Owner account
        manager: Manager account (runs the nodes, triggers payouts)
        nfd_for_info: NFD application id describing the validator (0 if none)
        entry_gating_type: Gate type code
        entry_gating_value: Raw 32-byte gating value
        gating_asset_min_balance: Minimum qualifying balance of the gating asset
        reward_token_id: Optional reward token asset id
        reward_per_payout: Reward tokens paid per epoch
        payout_every_x_mins: Epoch length in minutes
        percent_to_validator: Commission, percent x 10000
        validator_commission_address: Account receiving commission
        min_entry_stake: Minimum stake (microAlgos) to enter a pool
        max_algo_per_pool: Maximum stake per pool (0 means protocol default)
        pools_per_node: Pools allowed on one node
        sunsetting_on: Timestamp after which the validator stops accepting stake
        sunsetting_to: Validator id stakers are asked to move to
    """
    id: int
    owner: str
    manager: str
    nfd_for_info: int
    entry_gating_type: EntryGatingType
    entry_gating_value: bytes
    gating_asset_min_balance: int
    reward_token_id: int
    reward_per_payout: int
    payout_every_x_mins: int
    percent_to_validator: int
    validator_commission_address: str
    min_entry_stake: int
    max_algo_per_pool: int
    pools_per_node: int
    sunsetting_on: int = 0
    sunsetting_to: int = 0
    
    @property
    def entry_gate(self) -> EntryGate:
        """The decoded entry gate."""
        return decode_gate(
            self.entry_gating_type,
            self.entry_gating_value,
            self.gating_asset_min_balance,
        )
    
    @property
    def commission_percent(self) -> Decimal:
        return Decimal(self.percent_to_validator) / COMMISSION_PRECISION
    
    def to_abi_tuple(self) -> list:
        """Field order of the registry's ValidatorConfig struct."""
        return [
            self.id,
            self.owner,
            self.manager,
            self.nfd_for_info,
            int(self.entry_gating_type),
            self.entry_gating_value,
            self.gating_asset_min_balance,
            self.reward_token_id,
            self.reward_per_payout,
            self.payout_every_x_mins,
            self.percent_to_validator,
            self.validator_commission_address,
            self.min_entry_stake,
            self.max_algo_per_pool,
            self.pools_per_node,
            self.sunsetting_on,
            self.sunsetting_to,
        ]


@dataclass(frozen=True)
class ValidatorState:
    """Mutable aggregate counters of a validator."""
    num_pools: int
    total_stakers: int
    total_algo_staked: int
    reward_token_held_back: int


@dataclass(frozen=True)
class PoolInfo:
    """Observed totals of one pool; validator/pool ids are set when known."""
    pool_app_id: int
    total_stakers: int
    total_algo_staked: int
    validator_id: Optional[int] = None
    pool_id: Optional[int] = None
    
    @property
    def pool_key(self) -> Optional[ValidatorPoolKey]:
        if self.validator_id is None or self.pool_id is None:
            return None
        return ValidatorPoolKey(self.validator_id, self.pool_id, self.pool_app_id)


@dataclass(frozen=True)
class NodeConfig:
    """Pool application ids placed on one node (0 marks an empty slot)."""
    pool_app_ids: Tuple[int, ...]
    
    @property
    def assigned(self) -> List[int]:
        return [app_id for app_id in self.pool_app_ids if app_id]


@dataclass(frozen=True)
class NodePoolAssignmentConfig:
    """Placement of a validator's pools across its nodes."""
    nodes: Tuple[NodeConfig, ...]
    
    def node_for_pool(self, pool_app_id: int) -> Optional[int]:
        """Get the 1-based node number hosting a pool."""
        for index, node in enumerate(self.nodes):
            if pool_app_id in node.assigned:
                return index + 1
        return None


@dataclass(frozen=True)
class PoolTokenPayoutRatio:
    """Share of the reward token each pool received at the last payout."""
    pool_pct_of_whole: Tuple[int, ...]
    updated_for_payout: int


@dataclass(frozen=True)
class Validator:
    """A validator assembled from all of its constituent reads."""
    id: int
    config: ValidatorConfig
    state: ValidatorState
    pools: List[PoolInfo]
    token_payout_ratio: PoolTokenPayoutRatio
    node_pool_assignment: NodePoolAssignmentConfig
    
    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Constraints:
    """Protocol-wide bounds published by the registry."""
    payout_mins_min: int
    payout_mins_max: int
    commission_pct_min: int
    commission_pct_max: int
    min_entry_stake: int
    max_algo_per_pool: int
    max_algo_per_validator: int
    saturation_threshold: int
    max_nodes: int
    max_pools_per_node: int
    max_stakers_per_pool: int


@dataclass(frozen=True)
class MbrAmounts:
    """Minimum balance reserves (microAlgos) the registry requires."""
    validator_mbr: int
    pool_mbr: int
    pool_init_mbr: int
    staker_mbr: int


@dataclass
class StakedInfo:
    """One staker's position within one pool."""
    account: str
    balance: int
    total_rewarded: int
    reward_token_balance: int
    entry_time: int


@dataclass
class StakerPoolData(StakedInfo):
    """A staked position tagged with the pool it lives in."""
    pool_key: Optional[ValidatorPoolKey] = None


@dataclass
class StakerValidatorData:
    """
    A staker's consolidated position across every pool of one validator.
    
    balance, total_rewarded and reward_token_balance are sums over `pools`;
    entry_time is the earliest entry time among them.
    """
    validator_id: int
    balance: int
    total_rewarded: int
    reward_token_balance: int
    entry_time: int
    pools: List[StakerPoolData] = field(default_factory=list)
    
    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidatorConfigInput:
    """
    Caller-supplied values for registering a new validator.
    
    Amounts are in the units a person would type: commission in percent
    (e.g. 5.5) and minimum entry stake in Algo.
    """
    owner: str
    manager: str
    validator_commission_address: str
    payout_every_x_mins: int
    percent_to_validator: Union[Decimal, float, str]
    min_entry_stake: Union[Decimal, float, str]
    pools_per_node: int
    entry_gate: EntryGate = field(default_factory=NoGate)
    reward_token_id: int = 0
    reward_per_payout: int = 0
    nfd_for_info: str = ""
    
    def to_config(self, nfd_app_id: int = 0) -> ValidatorConfig:
        """Convert to the on-chain config of a not-yet-registered validator."""
        percent = Decimal(str(self.percent_to_validator)) * COMMISSION_PRECISION
        min_stake = Decimal(str(self.min_entry_stake)) * MICROALGOS_PER_ALGO
        return ValidatorConfig(
            id=0,
            owner=self.owner,
            manager=self.manager,
            nfd_for_info=int(nfd_app_id),
            entry_gating_type=self.entry_gate.gating_type,
            entry_gating_value=self.entry_gate.encode(),
            gating_asset_min_balance=int(self.entry_gate.min_balance),
            reward_token_id=int(self.reward_token_id),
            reward_per_payout=int(self.reward_per_payout),
            payout_every_x_mins=int(self.payout_every_x_mins),
            percent_to_validator=int(percent),
            validator_commission_address=self.validator_commission_address,
            min_entry_stake=int(min_stake),
            max_algo_per_pool=0,
            pools_per_node=int(self.pools_per_node),
            sunsetting_on=0,
            sunsetting_to=0,
        )
