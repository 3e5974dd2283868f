"""
Test suite for the entry gating value codec.

Asset-by-creator gates hold a 32-byte public key; every other gate type
holds a 32-byte big-endian integer.
"""

from decimal import Decimal

import pytest
from algosdk import encoding

from reti.core.gating import (
    GATING_VALUE_SIZE,
    AssetCreatorGate,
    AssetIdGate,
    CreatorNfdGate,
    EntryGatingType,
    GatingValueError,
    NfdSegmentGate,
    NoGate,
    decode_gate,
    decode_gating_value,
    encode_gating_value,
    make_gate,
)
from reti.core.types import ValidatorConfigInput

from conftest import generate_test_address


# ============================================================================
# Round trips
# ============================================================================

class TestGateRoundTrip:
    """Each variant decodes back to what it encoded."""

    def test_asset_creator_gate(self):
        creator = generate_test_address()
        gate = AssetCreatorGate(creator=creator, min_balance=5)

        raw = gate.encode()

        assert raw == encoding.decode_address(creator)
        assert decode_gate(EntryGatingType.ASSET_BY_CREATOR, raw, 5) == gate

    @pytest.mark.parametrize("gate", [
        AssetIdGate(asset_id=31566704),
        CreatorNfdGate(nfd_app_id=763931197, min_balance=1),
        NfdSegmentGate(parent_nfd_app_id=2 ** 64 - 1),
    ])
    def test_integer_gates(self, gate):
        raw = gate.encode()

        assert len(raw) == GATING_VALUE_SIZE
        assert int.from_bytes(raw, "big") == gate.value
        assert decode_gate(gate.gating_type, raw, gate.min_balance) == gate

    def test_no_gate_is_all_zero(self):
        assert NoGate().encode() == bytes(GATING_VALUE_SIZE)
        assert decode_gate(0, bytes(GATING_VALUE_SIZE)) == NoGate()

    def test_integer_layout_is_big_endian(self):
        raw = AssetIdGate(asset_id=1).encode()

        assert raw[-1] == 1
        assert raw[:-1] == bytes(GATING_VALUE_SIZE - 1)

    def test_decode_accepts_int_lists(self):
        raw = list(AssetIdGate(asset_id=42).encode())

        assert decode_gating_value(EntryGatingType.ASSET_ID, raw) == 42

    def test_encode_by_type_code(self):
        creator = generate_test_address()

        assert encode_gating_value(1, creator) == encoding.decode_address(creator)
        assert encode_gating_value(2, "123") == (123).to_bytes(32, "big")


# ============================================================================
# Invalid values
# ============================================================================

class TestGateErrors:
    """Tests for rejected gating values."""

    def test_invalid_address(self):
        with pytest.raises(GatingValueError):
            AssetCreatorGate(creator="not-an-address").encode()

    def test_negative_integer(self):
        with pytest.raises(GatingValueError):
            AssetIdGate(asset_id=-1).encode()

    def test_integer_too_large(self):
        with pytest.raises(GatingValueError):
            AssetIdGate(asset_id=2 ** 256).encode()

    def test_wrong_raw_size(self):
        with pytest.raises(GatingValueError):
            decode_gate(EntryGatingType.ASSET_ID, bytes(8))

    def test_unknown_type(self):
        with pytest.raises(GatingValueError):
            decode_gate(9, bytes(GATING_VALUE_SIZE))

    def test_value_required(self):
        with pytest.raises(GatingValueError):
            make_gate(EntryGatingType.ASSET_ID, "")

    def test_make_gate_picks_variant(self):
        assert make_gate(0) == NoGate()
        assert make_gate(3, "99", min_balance=2) == CreatorNfdGate(99, 2)
        assert isinstance(make_gate(1, generate_test_address()), AssetCreatorGate)


# ============================================================================
# Validator registration input
# ============================================================================

class TestValidatorConfigInput:
    """Conversion of operator input into the on-chain config."""

    def make_input(self, **overrides) -> ValidatorConfigInput:
        owner = generate_test_address()
        values = dict(
            owner=owner,
            manager=owner,
            validator_commission_address=owner,
            payout_every_x_mins=60,
            percent_to_validator="5.5",
            min_entry_stake="1000",
            pools_per_node=3,
        )
        values.update(overrides)
        return ValidatorConfigInput(**values)

    def test_commission_and_stake_units(self):
        config = self.make_input().to_config(nfd_app_id=77)

        assert config.percent_to_validator == 55_000
        assert config.commission_percent == Decimal("5.5")
        assert config.min_entry_stake == 1_000_000_000
        assert config.nfd_for_info == 77

    def test_creation_defaults(self):
        config = self.make_input().to_config()

        assert config.id == 0
        assert config.max_algo_per_pool == 0
        assert config.sunsetting_on == 0
        assert config.sunsetting_to == 0
        assert config.entry_gating_type == EntryGatingType.NONE

    def test_gate_is_encoded(self):
        gate = AssetIdGate(asset_id=1234, min_balance=10)

        config = self.make_input(entry_gate=gate).to_config()

        assert config.entry_gating_type == EntryGatingType.ASSET_ID
        assert config.entry_gating_value == gate.encode()
        assert config.gating_asset_min_balance == 10
        assert config.entry_gate == gate

    def test_abi_tuple_field_order(self):
        config = self.make_input().to_config(nfd_app_id=5)

        raw = config.to_abi_tuple()

        assert len(raw) == 17
        assert raw[0] == 0
        assert raw[3] == 5
        assert raw[10] == 55_000
        assert raw[14] == 3
