"""
Transaction Signer - holds the account that authorizes write operations.
"""

from typing import Optional

import structlog

from algosdk import account, mnemonic
from algosdk.atomic_transaction_composer import AccountTransactionSigner

from reti.config import RetiConfig, get_config
from reti.tx.group import Sender

logger = structlog.get_logger(__name__)


class SignerNotLoadedError(RuntimeError):
    """Raised when a write operation is attempted without a signing key."""
    pass


class TransactionSigner:
    """
    Handles the signing account for state-mutating operations.
    
    Supports loading keys from:
    - A 25-word mnemonic (configuration or argument)
    - A base64 private key
    """
    
    def __init__(self, config: Optional[RetiConfig] = None):
        """
        Initialize the transaction signer.
        
        Args:
            config: Reti configuration
        """
        self.config = config or get_config()
        self._private_key: Optional[str] = None
        self._address: Optional[str] = None
    
    def load_from_mnemonic(self, words: str) -> None:
        """
        Load the signing key from a 25-word mnemonic.
        
        Args:
            words: Space separated mnemonic
        """
        self.load_private_key(mnemonic.to_private_key(words.strip()))
        logger.info("signing_key_loaded", address=self._address[:8] + "...")
    
    def load_private_key(self, private_key: str) -> None:
        """
        Load the signing key from a base64 private key.
        
        Args:
            private_key: Base64 encoded private key
        """
        self._private_key = private_key
        self._address = account.address_from_private_key(private_key)
    
    def load_from_config(self) -> None:
        """Load signing key from configuration."""
        if not self.config.signer_mnemonic:
            raise ValueError("No signing key configured (set RETI_SIGNER_MNEMONIC)")
        self.load_from_mnemonic(self.config.signer_mnemonic)
    
    @property
    def address(self) -> Optional[str]:
        """Get the signing account's address."""
        return self._address
    
    @property
    def is_loaded(self) -> bool:
        """Check if a signing key is loaded."""
        return self._private_key is not None
    
    def as_sender(self) -> Sender:
        """
        Get the authorizing sender for transaction groups.
        
        Raises:
            SignerNotLoadedError: If no key is loaded
        """
        if not self._private_key:
            raise SignerNotLoadedError("No signing key loaded")
        return Sender(
            address=self._address,
            signer=AccountTransactionSigner(self._private_key),
        )


def generate_test_key(config: Optional[RetiConfig] = None) -> TransactionSigner:
    """
    Generate a new random signing account for testing.
    
    WARNING: Do not use in production. The key is not persisted.
    
    Returns:
        TransactionSigner with a new random key
    """
    private_key, _ = account.generate_account()
    signer = TransactionSigner(config or RetiConfig())
    signer.load_private_key(private_key)
    
    logger.warning("test_key_generated", address=signer.address[:8] + "...")
    
    return signer
