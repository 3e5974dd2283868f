"""
Node Integration Layer.

Provides abstracted access to the Algorand ledger (simulate and execute
of atomic groups) and to the NFD name directory.
"""

from reti.node.interface import LedgerGateway
from reti.node.algod import AlgodGateway
from reti.node.nfd import NfdDirectory

__all__ = [
    "LedgerGateway",
    "AlgodGateway",
    "NfdDirectory",
]
