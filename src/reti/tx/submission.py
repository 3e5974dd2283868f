"""
Two-phase group submission.

Every state-mutating operation goes through the same protocol:

1. Build the group with a non-authorizing sender and a placeholder fee,
   simulate it and derive the real fee.
2. Rebuild the group from scratch, signed by the real sender and carrying
   the computed fee, and execute it.

A GroupSubmission records where in that protocol an operation is.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import structlog

from reti.node.interface import (
    ExecuteOptions,
    ExecutionFailedError,
    GroupResult,
    LedgerError,
    LedgerGateway,
)
from reti.tx.fees import FeeEstimate, FeeEstimator
from reti.tx.group import Sender, TransactionGroup

logger = structlog.get_logger(__name__)


GroupFactory = Callable[[Sender, int], TransactionGroup]


class SubmissionState(str, Enum):
    """State of a two-phase submission."""
    BUILT = "built"                   # Group description ready
    SIMULATED = "simulated"           # Dry run succeeded
    FEE_COMPUTED = "fee_computed"     # Real fee derived from the dry run
    SUBMITTED = "submitted"           # Signed group sent to the ledger
    COMMITTED = "committed"           # Group committed atomically
    FAILED = "failed"                 # Protocol stopped; nothing committed


_ALLOWED_TRANSITIONS = {
    SubmissionState.BUILT: {SubmissionState.SIMULATED, SubmissionState.FAILED},
    SubmissionState.SIMULATED: {SubmissionState.FEE_COMPUTED, SubmissionState.FAILED},
    SubmissionState.FEE_COMPUTED: {SubmissionState.SUBMITTED, SubmissionState.FAILED},
    SubmissionState.SUBMITTED: {SubmissionState.COMMITTED, SubmissionState.FAILED},
    SubmissionState.COMMITTED: set(),
    SubmissionState.FAILED: set(),
}


@dataclass
class GroupSubmission:
    """
    One run of the two-phase protocol for one operation.
    
    Attributes:
        operation: Name of the operation (for logging)
        build_group: Factory producing a fresh group for a sender and fee
        sender: Authorizing sender used for the real execution
        surcharge: Flat fee surcharge for the operation
        placeholder_fee: Fee attached during simulation
        state: Current protocol state
        estimate: Fee estimate from phase 1
        result: Ledger result from phase 2
        error_message: Failure reason once FAILED
    """
    
    operation: str
    build_group: GroupFactory
    sender: Sender
    surcharge: int = 0
    placeholder_fee: int = 240_000
    submission_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: SubmissionState = SubmissionState.BUILT
    
    estimate: Optional[FeeEstimate] = None
    result: Optional[GroupResult] = None
    error_message: Optional[str] = None
    failed_in: Optional[SubmissionState] = None
    
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    
    def _transition(self, new_state: SubmissionState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal submission transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.updated_at = datetime.utcnow()
    
    @property
    def fee(self) -> Optional[int]:
        return self.estimate.fee if self.estimate else None
    
    @property
    def is_finished(self) -> bool:
        return self.state in (SubmissionState.COMMITTED, SubmissionState.FAILED)
    
    def simulation_group(self) -> TransactionGroup:
        """Phase-1 group: non-authorizing sender, placeholder fee."""
        return self.build_group(self.sender.without_signer(), self.placeholder_fee)
    
    def execution_group(self) -> TransactionGroup:
        """Phase-2 group: real sender, computed fee."""
        if self.estimate is None:
            raise RuntimeError("Fee has not been computed")
        return self.build_group(self.sender, self.estimate.fee)
    
    def mark_simulated(self, estimate: FeeEstimate) -> None:
        self._transition(SubmissionState.SIMULATED)
        self.estimate = estimate
    
    def mark_fee_computed(self) -> None:
        self._transition(SubmissionState.FEE_COMPUTED)
    
    def mark_submitted(self) -> None:
        self._transition(SubmissionState.SUBMITTED)
    
    def mark_committed(self, result: GroupResult) -> None:
        self._transition(SubmissionState.COMMITTED)
        self.result = result
    
    def mark_failed(self, error: str) -> None:
        self.failed_in = self.state
        self._transition(SubmissionState.FAILED)
        self.error_message = error
    
    def __repr__(self) -> str:
        return (
            f"GroupSubmission(op={self.operation}, id={self.submission_id[:8]}..., "
            f"state={self.state.value})"
        )


class GroupSubmitter:
    """
    Drives GroupSubmissions through both phases.
    
    Never retries: a failure in either phase is logged, recorded on the
    submission and raised to the caller, who may start a new submission.
    """
    
    def __init__(
        self,
        gateway: LedgerGateway,
        estimator: Optional[FeeEstimator] = None,
        execute_options: ExecuteOptions = ExecuteOptions(populate_app_call_resources=True),
    ):
        self.gateway = gateway
        self.estimator = estimator or FeeEstimator(gateway)
        self.execute_options = execute_options
    
    async def submit(self, submission: GroupSubmission) -> GroupResult:
        """
        Run the full two-phase protocol.
        
        Args:
            submission: A submission in the BUILT state
            
        Returns:
            Result of the committed group
            
        Raises:
            SimulationRejectedError: Phase 1 rejected; nothing was submitted
            ExecutionFailedError: Phase 2 failed; the group did not commit
        """
        if submission.state != SubmissionState.BUILT:
            raise RuntimeError(f"Submission already {submission.state.value}")
        if not submission.sender.is_authorizing:
            raise ValueError(f"{submission.operation} requires an authorizing sender")
        
        await self.simulate(submission)
        return await self.execute(submission)
    
    async def simulate(self, submission: GroupSubmission) -> FeeEstimate:
        """Phase 1: dry-run and compute the fee."""
        try:
            group = submission.simulation_group()
            estimate = await self.estimator.estimate(group, submission.surcharge)
        except Exception as e:
            submission.mark_failed(str(e))
            logger.error(
                "submission_simulation_failed",
                operation=submission.operation,
                submission_id=submission.submission_id[:8] + "...",
                error=str(e),
            )
            raise
        
        submission.mark_simulated(estimate)
        submission.mark_fee_computed()
        
        logger.info(
            "submission_fee_computed",
            operation=submission.operation,
            submission_id=submission.submission_id[:8] + "...",
            fee=estimate.fee,
            app_budget_added=estimate.app_budget_added,
        )
        return estimate
    
    async def execute(self, submission: GroupSubmission) -> GroupResult:
        """Phase 2: rebuild with the real sender and computed fee, then execute."""
        try:
            group = submission.execution_group()
        except Exception as e:
            submission.mark_failed(str(e))
            raise
        submission.mark_submitted()
        
        try:
            result = await self.gateway.execute(group, self.execute_options)
        except ExecutionFailedError as e:
            submission.mark_failed(str(e))
            logger.error(
                "submission_execution_failed",
                operation=submission.operation,
                submission_id=submission.submission_id[:8] + "...",
                error=str(e),
            )
            raise
        except LedgerError as e:
            submission.mark_failed(str(e))
            logger.error(
                "submission_execution_failed",
                operation=submission.operation,
                submission_id=submission.submission_id[:8] + "...",
                error=str(e),
            )
            raise ExecutionFailedError(f"{submission.operation} failed: {e}") from e
        except Exception as e:
            submission.mark_failed(str(e))
            logger.error(
                "submission_execution_failed",
                operation=submission.operation,
                submission_id=submission.submission_id[:8] + "...",
                error=str(e),
            )
            raise
        
        submission.mark_committed(result)
        
        logger.info(
            "submission_committed",
            operation=submission.operation,
            submission_id=submission.submission_id[:8] + "...",
            confirmed_round=result.confirmed_round,
        )
        return result
