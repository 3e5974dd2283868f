"""
Entry gating value codec.

The registry stores a pool's entry gate as a type code plus a fixed 32-byte
value. How those bytes are laid out depends on the type: asset-by-creator
gates hold a raw account public key, every other type holds a big-endian
unsigned integer (asset id or NFD application id). Each gate type below owns
its own encode/decode pair so the layout cannot be picked by accident.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Dict, Type, Union

from algosdk import encoding


GATING_VALUE_SIZE = 32


class EntryGatingType(IntEnum):
    """Entry gating policies understood by the registry contract."""
    NONE = 0
    ASSET_BY_CREATOR = 1          # Hold an asset created by this account
    ASSET_ID = 2                  # Hold this specific asset
    CREATOR_NFD = 3               # Hold an asset created by an account linked to this NFD
    SEGMENT_OF_NFD = 4            # Hold a segment of this root/parent NFD


class GatingValueError(ValueError):
    """Raised when a gating value cannot be encoded or decoded."""
    pass


def encode_address_value(address: str) -> bytes:
    """Encode an account address as its 32-byte public key."""
    try:
        public_key = encoding.decode_address(address)
    except Exception as e:
        raise GatingValueError(f"Invalid gating address {address!r}: {e}")
    
    if public_key is None or len(public_key) != GATING_VALUE_SIZE:
        raise GatingValueError(f"Invalid gating address {address!r}")
    return bytes(public_key)


def decode_address_value(raw: bytes) -> str:
    """Decode a 32-byte public key back into an account address."""
    return encoding.encode_address(_check_size(raw))


def encode_uint_value(value: int) -> bytes:
    """Encode an unsigned integer as a fixed-width big-endian byte string."""
    value = int(value)
    if value < 0:
        raise GatingValueError(f"Gating value must be non-negative, got {value}")
    try:
        return value.to_bytes(GATING_VALUE_SIZE, "big")
    except OverflowError:
        raise GatingValueError(f"Gating value {value} does not fit in {GATING_VALUE_SIZE} bytes")


def decode_uint_value(raw: bytes) -> int:
    """Decode a fixed-width big-endian byte string into an integer."""
    return int.from_bytes(_check_size(raw), "big")


def _check_size(raw) -> bytes:
    raw = bytes(raw)
    if len(raw) != GATING_VALUE_SIZE:
        raise GatingValueError(
            f"Gating value must be {GATING_VALUE_SIZE} bytes, got {len(raw)}"
        )
    return raw


# =============================================================================
# Gate variants
# =============================================================================

@dataclass(frozen=True)
class NoGate:
    """Pool entry is open to everyone."""
    gating_type: ClassVar[EntryGatingType] = EntryGatingType.NONE
    min_balance: int = 0
    
    @property
    def value(self) -> int:
        return 0
    
    def encode(self) -> bytes:
        return bytes(GATING_VALUE_SIZE)
    
    @classmethod
    def decode(cls, raw: bytes, min_balance: int = 0) -> "NoGate":
        _check_size(raw)
        return cls(min_balance=min_balance)


@dataclass(frozen=True)
class AssetCreatorGate:
    """Stakers must hold an asset created by `creator`."""
    creator: str
    min_balance: int = 0
    gating_type: ClassVar[EntryGatingType] = EntryGatingType.ASSET_BY_CREATOR
    
    @property
    def value(self) -> str:
        return self.creator
    
    def encode(self) -> bytes:
        return encode_address_value(self.creator)
    
    @classmethod
    def decode(cls, raw: bytes, min_balance: int = 0) -> "AssetCreatorGate":
        return cls(creator=decode_address_value(raw), min_balance=min_balance)


@dataclass(frozen=True)
class AssetIdGate:
    """Stakers must hold asset `asset_id`."""
    asset_id: int
    min_balance: int = 0
    gating_type: ClassVar[EntryGatingType] = EntryGatingType.ASSET_ID
    
    @property
    def value(self) -> int:
        return self.asset_id
    
    def encode(self) -> bytes:
        return encode_uint_value(self.asset_id)
    
    @classmethod
    def decode(cls, raw: bytes, min_balance: int = 0) -> "AssetIdGate":
        return cls(asset_id=decode_uint_value(raw), min_balance=min_balance)


@dataclass(frozen=True)
class CreatorNfdGate:
    """Stakers must hold an asset created by an account linked to NFD `nfd_app_id`."""
    nfd_app_id: int
    min_balance: int = 0
    gating_type: ClassVar[EntryGatingType] = EntryGatingType.CREATOR_NFD
    
    @property
    def value(self) -> int:
        return self.nfd_app_id
    
    def encode(self) -> bytes:
        return encode_uint_value(self.nfd_app_id)
    
    @classmethod
    def decode(cls, raw: bytes, min_balance: int = 0) -> "CreatorNfdGate":
        return cls(nfd_app_id=decode_uint_value(raw), min_balance=min_balance)


@dataclass(frozen=True)
class NfdSegmentGate:
    """Stakers must hold a segment of root/parent NFD `parent_nfd_app_id`."""
    parent_nfd_app_id: int
    min_balance: int = 0
    gating_type: ClassVar[EntryGatingType] = EntryGatingType.SEGMENT_OF_NFD
    
    @property
    def value(self) -> int:
        return self.parent_nfd_app_id
    
    def encode(self) -> bytes:
        return encode_uint_value(self.parent_nfd_app_id)
    
    @classmethod
    def decode(cls, raw: bytes, min_balance: int = 0) -> "NfdSegmentGate":
        return cls(parent_nfd_app_id=decode_uint_value(raw), min_balance=min_balance)


EntryGate = Union[NoGate, AssetCreatorGate, AssetIdGate, CreatorNfdGate, NfdSegmentGate]

GATE_TYPES: Dict[EntryGatingType, Type] = {
    EntryGatingType.NONE: NoGate,
    EntryGatingType.ASSET_BY_CREATOR: AssetCreatorGate,
    EntryGatingType.ASSET_ID: AssetIdGate,
    EntryGatingType.CREATOR_NFD: CreatorNfdGate,
    EntryGatingType.SEGMENT_OF_NFD: NfdSegmentGate,
}


def gate_class(gating_type: Union[EntryGatingType, int]) -> Type:
    """Look up the gate variant for a type code."""
    try:
        return GATE_TYPES[EntryGatingType(int(gating_type))]
    except ValueError:
        raise GatingValueError(f"Unknown entry gating type: {gating_type}")


def make_gate(
    gating_type: Union[EntryGatingType, int],
    value: Union[str, int, None] = None,
    min_balance: int = 0,
) -> EntryGate:
    """
    Build a gate from loosely-typed input (CLI arguments, form values).
    
    Args:
        gating_type: Gate type code
        value: Creator address for ASSET_BY_CREATOR, numeric id otherwise
        min_balance: Minimum qualifying asset balance
        
    Returns:
        The matching gate variant
    """
    cls = gate_class(gating_type)
    if cls is NoGate:
        return NoGate(min_balance=int(min_balance))
    if value is None or value == "":
        raise GatingValueError(f"A gating value is required for {cls.gating_type.name}")
    if cls is AssetCreatorGate:
        return AssetCreatorGate(creator=str(value), min_balance=int(min_balance))
    return cls(int(value), int(min_balance))


def encode_gating_value(gating_type: Union[EntryGatingType, int], value: Union[str, int, None]) -> bytes:
    """Encode a gating value using the layout dictated by `gating_type`."""
    return make_gate(gating_type, value).encode()


def decode_gating_value(gating_type: Union[EntryGatingType, int], raw: bytes) -> Union[str, int]:
    """Decode raw gating bytes using the layout dictated by `gating_type`."""
    return gate_class(gating_type).decode(raw).value


def decode_gate(
    gating_type: Union[EntryGatingType, int],
    raw: bytes,
    min_balance: int = 0,
) -> EntryGate:
    """Decode the on-chain (type, value, min balance) triple into a gate."""
    return gate_class(gating_type).decode(raw, min_balance=int(min_balance))
