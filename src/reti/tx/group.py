"""
Transaction group description.

A TransactionGroup is a ledger-agnostic description of an atomic group:
an ordered list of ARC-4 method calls, each optionally carrying payment
transactions as arguments. The ledger gateway turns a description into
real transactions every time it is submitted, so the same description can
be simulated and later executed without carrying group linkage over.
"""

from dataclasses import dataclass, replace
from typing import Any, Iterator, List, Optional, Sequence, Tuple


MAX_GROUP_SIZE = 16               # Ledger limit on transactions per atomic group


class GroupTooLargeError(ValueError):
    """Raised when a group would exceed the ledger's transaction limit."""
    pass


@dataclass(frozen=True)
class Sender:
    """
    Identity attached to every transaction of a group.
    
    A sender without a signer is non-authorizing: its transactions can be
    simulated with empty signatures but never executed.
    """
    address: str
    signer: Optional[Any] = None
    
    @property
    def is_authorizing(self) -> bool:
        return self.signer is not None
    
    def without_signer(self) -> "Sender":
        return Sender(address=self.address)


@dataclass(frozen=True)
class Payment:
    """A payment passed as a transaction argument to a method call."""
    sender: str
    receiver: str
    amount: int
    note: bytes = b""
    fee: Optional[int] = None


@dataclass(frozen=True)
class AppCall:
    """
    One ARC-4 method call.
    
    Attributes:
        app_id: Application being called
        method: ARC-4 method signature, e.g. "getPools(uint64)(uint64,uint16,uint64)[]"
        args: Method arguments; Payment instances become transaction arguments
        fee: Flat fee in microAlgos (None uses the network minimum)
        note: Transaction note, used to keep otherwise identical calls distinct
    """
    app_id: int
    method: str
    args: Tuple[Any, ...] = ()
    fee: Optional[int] = None
    note: bytes = b""
    
    @property
    def name(self) -> str:
        return self.method.split("(", 1)[0]
    
    @property
    def payments(self) -> List[Payment]:
        return [arg for arg in self.args if isinstance(arg, Payment)]
    
    @property
    def transaction_count(self) -> int:
        return 1 + len(self.payments)
    
    def with_fee(self, fee: Optional[int]) -> "AppCall":
        return replace(self, fee=fee)


class TransactionGroup:
    """
    Ordered, atomic group of method calls sent by one sender.
    
    Usage:
        ```python
        group = (
            TransactionGroup(sender)
            .add(pool.gas(note=b"1", fee=0))
            .add(pool.gas(note=b"2", fee=0))
            .add(pool.remove_stake(amount, fee=fee))
        )
        ```
    """
    
    def __init__(self, sender: Sender, calls: Sequence[AppCall] = ()):
        self.sender = sender
        self._calls: List[AppCall] = []
        for call in calls:
            self.add(call)
    
    def add(self, call: AppCall) -> "TransactionGroup":
        """Append a call, keeping the group within the ledger limit."""
        if self.size + call.transaction_count > MAX_GROUP_SIZE:
            raise GroupTooLargeError(
                f"Group would hold {self.size + call.transaction_count} transactions "
                f"(max {MAX_GROUP_SIZE})"
            )
        self._calls.append(call)
        return self
    
    def extend(self, calls: Sequence[AppCall]) -> "TransactionGroup":
        for call in calls:
            self.add(call)
        return self
    
    @property
    def calls(self) -> Tuple[AppCall, ...]:
        return tuple(self._calls)
    
    @property
    def size(self) -> int:
        """Number of ledger transactions, payments included."""
        return sum(call.transaction_count for call in self._calls)
    
    @property
    def method_names(self) -> List[str]:
        return [call.name for call in self._calls]
    
    @property
    def app_ids(self) -> List[int]:
        """Distinct applications called, in first-call order."""
        seen: List[int] = []
        for call in self._calls:
            if call.app_id not in seen:
                seen.append(call.app_id)
        return seen
    
    @property
    def is_empty(self) -> bool:
        return not self._calls
    
    def __iter__(self) -> Iterator[AppCall]:
        return iter(self._calls)
    
    def __len__(self) -> int:
        return len(self._calls)
    
    def __repr__(self) -> str:
        return f"TransactionGroup(sender={self.sender.address[:8]}..., calls={self.method_names})"
