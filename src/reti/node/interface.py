"""
Abstract interface for ledger access.

Defines the contract every ledger gateway adapter must implement: dry-run
simulation and real execution of atomic transaction groups.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from reti.tx.group import TransactionGroup


@dataclass(frozen=True)
class SimulateOptions:
    """Relaxations requested from a simulation."""
    allow_empty_signatures: bool = True
    allow_unnamed_resources: bool = True


@dataclass(frozen=True)
class ExecuteOptions:
    """Options for a real, state-committing submission."""
    populate_app_call_resources: bool = True


READ_ONLY = SimulateOptions(allow_empty_signatures=True, allow_unnamed_resources=True)


@dataclass
class GroupResult:
    """
    Outcome of a simulated or executed group.
    
    Attributes:
        returns: ABI return values, one per method call in group order
            (None for void methods). After a rejected simulation only the
            calls that ran before the failure are present.
        app_budget_added: Extra compute budget the group pulled in (simulate only)
        app_budget_consumed: Compute budget actually used (simulate only)
        failure_message: Contract-level rejection reason, None on success
        failed_at: Path of the failing transaction, if any
        tx_ids: Transaction ids of the group
        confirmed_round: Round the group committed in (execute only)
    """
    returns: List[Any] = field(default_factory=list)
    app_budget_added: Optional[int] = None
    app_budget_consumed: Optional[int] = None
    failure_message: Optional[str] = None
    failed_at: Optional[List[int]] = None
    tx_ids: List[str] = field(default_factory=list)
    confirmed_round: Optional[int] = None
    
    @property
    def succeeded(self) -> bool:
        return self.failure_message is None
    
    def return_at(self, index: int) -> Any:
        """Return value of the `index`-th method call, None if absent."""
        if index < 0 or index >= len(self.returns):
            return None
        return self.returns[index]


class LedgerGateway(ABC):
    """
    Abstract interface for ledger access.
    
    Gateways never retry. A contract-level rejection during simulation is
    reported in the returned GroupResult; a rejection during execution
    raises ExecutionFailedError; transport failures raise
    LedgerConnectionError from both.
    """
    
    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the node/API.
        
        Raises:
            LedgerConnectionError: If connection cannot be established
        """
        pass
    
    @abstractmethod
    async def disconnect(self) -> None:
        """Release any held connection."""
        pass
    
    @abstractmethod
    async def simulate(
        self,
        group: TransactionGroup,
        options: SimulateOptions = READ_ONLY,
    ) -> GroupResult:
        """
        Dry-run a group against current ledger state.
        
        Args:
            group: Group to simulate; signatures may be empty
            options: Simulation relaxations
            
        Returns:
            Per-call results plus the compute budget metric
        """
        pass
    
    @abstractmethod
    async def execute(
        self,
        group: TransactionGroup,
        options: ExecuteOptions = ExecuteOptions(),
    ) -> GroupResult:
        """
        Sign, submit and wait for a group to commit.
        
        Args:
            group: Group to execute; its sender must be authorizing
            options: Execution options
            
        Returns:
            Per-call results of the committed group
            
        Raises:
            ExecutionFailedError: If the ledger rejects the group
        """
        pass


class LedgerError(Exception):
    """Base class for ledger gateway failures."""
    pass


class LedgerConnectionError(LedgerError):
    """Raised when the ledger cannot be reached."""
    pass


class SimulationRejectedError(LedgerError):
    """Raised when a dry run fails at the contract-logic level."""
    
    def __init__(
        self,
        message: str,
        failure_message: Optional[str] = None,
        failed_at: Optional[List[int]] = None,
    ):
        super().__init__(message)
        self.failure_message = failure_message
        self.failed_at = failed_at


class ExecutionFailedError(LedgerError):
    """Raised when a real submission fails; the group did not commit."""
    
    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code
