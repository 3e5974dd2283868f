"""
Algod adapter for ledger access.

Turns TransactionGroup descriptions into atomic transaction groups with
py-algorand-sdk and runs them through an algod node's simulate and
submit endpoints.
"""

import asyncio
import base64
import copy
import urllib.error
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog
from algosdk import abi, transaction
from algosdk.atomic_transaction_composer import (
    AtomicTransactionComposer,
    EmptySigner,
    TransactionSigner,
    TransactionWithSigner,
)
from algosdk.error import (
    AlgodHTTPError,
    ConfirmationTimeoutError,
    TransactionRejectedError,
)
from algosdk.v2client import algod
from algosdk.v2client.models import SimulateRequest

from reti.config import RetiConfig, get_config
from reti.node.interface import (
    READ_ONLY,
    ExecuteOptions,
    ExecutionFailedError,
    GroupResult,
    LedgerConnectionError,
    LedgerGateway,
    SimulateOptions,
)
from reti.tx.group import Payment, TransactionGroup

logger = structlog.get_logger(__name__)


MAX_FOREIGN_REFS = 8              # accounts + apps + assets + boxes per app call
MAX_FOREIGN_ACCOUNTS = 4


@dataclass
class ResourceSet:
    """Foreign references one app call must declare."""
    accounts: List[str] = field(default_factory=list)
    apps: List[int] = field(default_factory=list)
    assets: List[int] = field(default_factory=list)
    boxes: List[Tuple[int, bytes]] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.accounts) + len(self.apps) + len(self.assets) + len(self.boxes)

    def add_account(self, address: str) -> None:
        if address not in self.accounts:
            self.accounts.append(address)

    def add_app(self, app_id: int) -> None:
        if app_id not in self.apps:
            self.apps.append(app_id)

    def add_asset(self, asset_id: int) -> None:
        if asset_id not in self.assets:
            self.assets.append(asset_id)

    def add_box(self, app_id: int, name: bytes) -> None:
        if (app_id, name) not in self.boxes:
            self.boxes.append((app_id, name))

    def merge(self, other: "ResourceSet") -> None:
        for address in other.accounts:
            self.add_account(address)
        for app_id in other.apps:
            self.add_app(app_id)
        for asset_id in other.assets:
            self.add_asset(asset_id)
        for app_id, name in other.boxes:
            self.add_box(app_id, name)

    def has_room_for(self, other: "ResourceSet") -> bool:
        merged = ResourceSet()
        merged.merge(self)
        merged.merge(other)
        return (
            merged.size <= MAX_FOREIGN_REFS
            and len(merged.accounts) <= MAX_FOREIGN_ACCOUNTS
        )


def parse_unnamed_resources(accessed: Optional[Dict[str, Any]]) -> ResourceSet:
    """
    Convert a simulate `unnamed-resources-accessed` object to a ResourceSet.

    Local-state and holding accesses imply both the account and the
    application or asset they refer to.
    """
    resources = ResourceSet()
    if not accessed:
        return resources

    for address in accessed.get("accounts", []):
        resources.add_account(address)
    for app_id in accessed.get("apps", []):
        resources.add_app(int(app_id))
    for asset_id in accessed.get("assets", []):
        resources.add_asset(int(asset_id))
    for box in accessed.get("boxes", []):
        resources.add_box(int(box["app"]), base64.b64decode(box.get("name", "")))
    for local in accessed.get("app-locals", []):
        resources.add_account(local["account"])
        resources.add_app(int(local["app"]))
    for holding in accessed.get("asset-holdings", []):
        resources.add_account(holding["account"])
        resources.add_asset(int(holding["asset"]))

    return resources


def collect_call_resources(
    simulate_response: Dict[str, Any],
    group: TransactionGroup,
) -> List[ResourceSet]:
    """
    Work out the references each method call of a group needs.

    Transaction-level accesses belong to the call that made them.
    Group-level accesses are placed on the first call with room for them.

    Args:
        simulate_response: Raw simulate response body
        group: The group that was simulated

    Returns:
        One ResourceSet per method call, in group order
    """
    txn_group = (simulate_response.get("txn-groups") or [{}])[0]
    txn_results = txn_group.get("txn-results", [])

    per_call: List[ResourceSet] = []
    position = 0
    for call in group:
        position += len(call.payments)
        accessed = None
        if position < len(txn_results):
            accessed = txn_results[position].get("unnamed-resources-accessed")
        resources = parse_unnamed_resources(accessed)
        _declare_box_apps(resources, call.app_id)
        per_call.append(resources)
        position += 1

    shared = parse_unnamed_resources(txn_group.get("unnamed-resources-accessed"))
    for piece in _split(shared):
        for call, resources in zip(group, per_call):
            candidate = ResourceSet()
            candidate.merge(piece)
            _declare_box_apps(candidate, call.app_id)
            if resources.has_room_for(candidate):
                resources.merge(candidate)
                break
        else:
            raise ExecutionFailedError(
                "Group accesses more resources than its calls can reference",
                error_code="too_many_resources",
            )

    return per_call


def _declare_box_apps(resources: ResourceSet, called_app_id: int) -> None:
    # Boxes of another application need that application as a foreign app
    for app_id, _ in resources.boxes:
        if app_id != called_app_id:
            resources.add_app(app_id)


def _split(resources: ResourceSet) -> List[ResourceSet]:
    pieces = []
    for address in resources.accounts:
        piece = ResourceSet()
        piece.add_account(address)
        pieces.append(piece)
    for app_id in resources.apps:
        piece = ResourceSet()
        piece.add_app(app_id)
        pieces.append(piece)
    for asset_id in resources.assets:
        piece = ResourceSet()
        piece.add_asset(asset_id)
        pieces.append(piece)
    for app_id, name in resources.boxes:
        piece = ResourceSet()
        piece.add_box(app_id, name)
        pieces.append(piece)
    return pieces


def read_budget(simulate_response: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """Extract (app-budget-added, app-budget-consumed) from a simulate response."""
    txn_groups = simulate_response.get("txn-groups") or []
    if not txn_groups:
        return None, None
    return txn_groups[0].get("app-budget-added"), txn_groups[0].get("app-budget-consumed")


class AlgodGateway(LedgerGateway):
    """
    Algod adapter.

    Implements the LedgerGateway using an algod node's REST API. The SDK
    client is synchronous, so every network call runs in a worker thread.
    """

    def __init__(self, config: Optional[RetiConfig] = None):
        """
        Initialize the algod adapter.

        Args:
            config: Client configuration. Uses global config if not provided.
        """
        self.config = config or get_config()
        self.algod_url = self.config.algod_url
        self._client: Optional[algod.AlgodClient] = None

    @property
    def client(self) -> algod.AlgodClient:
        if self._client is None:
            raise LedgerConnectionError("Algod gateway is not connected")
        return self._client

    async def connect(self) -> None:
        """Create the algod client and check the node is reachable."""
        if self._client is not None:
            return

        client = algod.AlgodClient(self.config.algod_token, self.algod_url)

        try:
            status = await asyncio.to_thread(client.status)
        except (AlgodHTTPError, urllib.error.URLError, OSError) as e:
            raise LedgerConnectionError(f"Failed to connect to algod: {e}")

        self._client = client
        logger.info("algod_connected", url=self.algod_url, last_round=status.get("last-round"))

    async def disconnect(self) -> None:
        if self._client is not None:
            self._client = None
            logger.info("algod_disconnected")

    async def simulate(
        self,
        group: TransactionGroup,
        options: SimulateOptions = READ_ONLY,
    ) -> GroupResult:
        """Dry-run a group. Contract rejections come back in the result."""
        if self._client is None:
            await self.connect()

        try:
            return await asyncio.to_thread(self._simulate_sync, group, options)
        except AlgodHTTPError as e:
            if e.code is not None and 400 <= e.code < 500:
                logger.debug("algod_simulate_rejected", calls=group.method_names, error=str(e))
                return GroupResult(failure_message=str(e))
            logger.error("algod_simulate_failed", calls=group.method_names, error=str(e))
            raise LedgerConnectionError(f"Algod simulate failed: {e}")
        except (urllib.error.URLError, OSError) as e:
            logger.error("algod_request_error", calls=group.method_names, error=str(e))
            raise LedgerConnectionError(f"Algod request failed: {e}")

    async def execute(
        self,
        group: TransactionGroup,
        options: ExecuteOptions = ExecuteOptions(),
    ) -> GroupResult:
        """Sign, submit and wait for a group to commit."""
        if not group.sender.is_authorizing:
            raise ExecutionFailedError("Group sender cannot sign", error_code="unsigned")
        if self._client is None:
            await self.connect()

        try:
            result = await asyncio.to_thread(self._execute_sync, group, options)
        except AlgodHTTPError as e:
            logger.error("algod_execute_failed", calls=group.method_names, error=str(e))
            raise ExecutionFailedError(f"Group rejected: {e}", error_code=str(e.code))
        except TransactionRejectedError as e:
            logger.error("algod_group_rejected", calls=group.method_names, error=str(e))
            raise ExecutionFailedError(f"Group rejected: {e}", error_code="rejected")
        except ConfirmationTimeoutError as e:
            logger.error("algod_confirmation_timeout", calls=group.method_names, error=str(e))
            raise ExecutionFailedError(f"Group not confirmed: {e}", error_code="timeout")
        except (urllib.error.URLError, OSError) as e:
            logger.error("algod_request_error", calls=group.method_names, error=str(e))
            raise ExecutionFailedError(f"Algod request failed: {e}", error_code="connection")

        logger.info(
            "algod_group_committed",
            calls=group.method_names,
            confirmed_round=result.confirmed_round,
            tx_id=result.tx_ids[0] if result.tx_ids else None,
        )
        return result

    def _simulate_sync(self, group: TransactionGroup, options: SimulateOptions) -> GroupResult:
        atc = self._compose(group)
        request = SimulateRequest(
            txn_groups=[],
            allow_empty_signatures=options.allow_empty_signatures,
            allow_unnamed_resources=options.allow_unnamed_resources,
        )
        response = atc.simulate(self.client, request)

        budget_added, budget_consumed = read_budget(response.simulate_response)
        return GroupResult(
            returns=[result.return_value for result in response.abi_results],
            app_budget_added=budget_added,
            app_budget_consumed=budget_consumed,
            failure_message=response.failure_message or None,
            failed_at=response.failed_at,
            tx_ids=list(response.tx_ids),
        )

    def _execute_sync(self, group: TransactionGroup, options: ExecuteOptions) -> GroupResult:
        resources = None
        if options.populate_app_call_resources:
            dry_run = self._compose(group).simulate(
                self.client,
                SimulateRequest(
                    txn_groups=[],
                    allow_empty_signatures=True,
                    allow_unnamed_resources=True,
                ),
            )
            if dry_run.failure_message:
                raise ExecutionFailedError(
                    f"Group rejected while populating resources: {dry_run.failure_message}",
                    error_code="logic",
                )
            resources = collect_call_resources(dry_run.simulate_response, group)

        atc = self._compose(group, resources)
        response = atc.execute(self.client, self.config.execute_wait_rounds)

        return GroupResult(
            returns=[result.return_value for result in response.abi_results],
            tx_ids=list(response.tx_ids),
            confirmed_round=response.confirmed_round,
        )

    def _compose(
        self,
        group: TransactionGroup,
        resources: Optional[List[ResourceSet]] = None,
    ) -> AtomicTransactionComposer:
        """Build a fresh composer for a group description."""
        params = self.client.suggested_params()
        signer: TransactionSigner = group.sender.signer or EmptySigner()
        atc = AtomicTransactionComposer()

        for index, call in enumerate(group):
            refs = resources[index] if resources else ResourceSet()
            atc.add_method_call(
                app_id=call.app_id,
                method=abi.Method.from_signature(call.method),
                sender=group.sender.address,
                sp=_with_fee(params, call.fee),
                signer=signer,
                method_args=[self._method_arg(arg, params, signer) for arg in call.args],
                note=call.note or None,
                accounts=refs.accounts or None,
                foreign_apps=refs.apps or None,
                foreign_assets=refs.assets or None,
                boxes=refs.boxes or None,
            )

        return atc

    @staticmethod
    def _method_arg(
        arg: Any,
        params: transaction.SuggestedParams,
        signer: TransactionSigner,
    ) -> Any:
        if isinstance(arg, Payment):
            txn = transaction.PaymentTxn(
                sender=arg.sender,
                sp=_with_fee(params, arg.fee),
                receiver=arg.receiver,
                amt=arg.amount,
                note=arg.note or None,
            )
            return TransactionWithSigner(txn, signer)
        return arg


def _with_fee(params: transaction.SuggestedParams, fee: Optional[int]) -> transaction.SuggestedParams:
    sp = copy.copy(params)
    if fee is not None:
        sp.flat_fee = True
        sp.fee = fee
    return sp
