"""
Fee Estimator - derives real fees from simulated compute usage.

App calls that need more compute than one call provides pull in extra
budget through inner transactions, and every inner transaction must be
paid for by the outer group. Simulating the group reports how much extra
budget was added; the fee follows from that figure.
"""

import math
from dataclasses import dataclass
from typing import Optional

import structlog

from reti.node.interface import (
    LedgerGateway,
    SimulateOptions,
    SimulationRejectedError,
)
from reti.tx.group import TransactionGroup

logger = structlog.get_logger(__name__)


MIN_TXN_FEE = 1000                # microAlgos per transaction
BUDGET_PER_FEE_UNIT = 700         # compute budget bought by one MIN_TXN_FEE


class FeeSurcharge:
    """
    Flat amounts (microAlgos) added on top of the budget-derived fee.
    
    These cover the fixed overhead of the auxiliary calls each operation
    always includes. They are protocol-version constants and must be
    confirmed against the deployed contracts when those change.
    """
    ADD_VALIDATOR = 0
    ADD_POOL = 2000
    INIT_POOL_STORAGE = 3000
    ADD_STAKE = 2000
    REMOVE_STAKE = 0
    CLAIM_TOKENS = 0
    EPOCH_BALANCE_UPDATE = 3000


def compute_fee(app_budget_added: Optional[int], surcharge: int = 0) -> int:
    """
    Convert an added-budget figure into a fee.
    
    Args:
        app_budget_added: Extra budget reported by simulation (None counts as 0)
        surcharge: Flat amount added on top
        
    Returns:
        ceil(app_budget_added / 700) * 1000 + surcharge, in microAlgos
    """
    budget = max(int(app_budget_added or 0), 0)
    return MIN_TXN_FEE * math.ceil(budget / BUDGET_PER_FEE_UNIT) + surcharge


@dataclass(frozen=True)
class FeeEstimate:
    """Result of a fee estimation."""
    fee: int
    app_budget_added: int
    surcharge: int


class FeeEstimator:
    """
    Runs a group in simulate mode and derives the fee for its real execution.
    
    An estimate is only valid for the exact group it was computed from:
    compute cost depends on the calls and their arguments.
    """
    
    def __init__(self, gateway: LedgerGateway):
        self.gateway = gateway
        self._options = SimulateOptions(
            allow_empty_signatures=True,
            allow_unnamed_resources=True,
        )
    
    async def estimate(self, group: TransactionGroup, surcharge: int = 0) -> FeeEstimate:
        """
        Estimate the fee needed to execute a group.
        
        Args:
            group: Group to dry-run (may use a non-authorizing sender)
            surcharge: Operation-specific flat surcharge
            
        Returns:
            The fee estimate
            
        Raises:
            SimulationRejectedError: If the contracts reject the group
        """
        result = await self.gateway.simulate(group, self._options)
        
        if not result.succeeded:
            logger.error(
                "fee_simulation_rejected",
                calls=group.method_names,
                failure=result.failure_message,
                failed_at=result.failed_at,
            )
            raise SimulationRejectedError(
                f"Simulation rejected: {result.failure_message}",
                failure_message=result.failure_message,
                failed_at=result.failed_at,
            )
        
        budget = int(result.app_budget_added or 0)
        fee = compute_fee(budget, surcharge)
        
        logger.debug(
            "fee_estimated",
            calls=group.method_names,
            app_budget_added=budget,
            surcharge=surcharge,
            fee=fee,
        )
        
        return FeeEstimate(fee=fee, app_budget_added=budget, surcharge=surcharge)
