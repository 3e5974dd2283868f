"""
Configuration management for the Reti client.

Supports configuration via environment variables and .env files.
"""

from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


FEE_SINK = "A7NMWS3NT3IUDMLVO26ULGXGIIOUQ3ND2TXSER6EBGRZNOBOUIQXHIBGDE"


class NetworkType(str, Enum):
    """Algorand network types."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    BETANET = "betanet"
    LOCALNET = "localnet"


class RetiConfig(BaseSettings):
    """
    Configuration settings for the Reti client.
    
    All settings can be configured via environment variables with the RETI_ prefix.
    """
    
    model_config = SettingsConfigDict(
        env_prefix="RETI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Network settings
    network: NetworkType = Field(
        default=NetworkType.TESTNET,
        description="Algorand network to connect to"
    )
    
    # Algod settings
    algod_server: Optional[str] = Field(
        default=None,
        description="Custom algod server URL (optional)"
    )
    algod_port: Optional[int] = Field(
        default=None,
        description="Custom algod port (optional)"
    )
    algod_token: str = Field(
        default="",
        description="Algod API token"
    )
    
    # Protocol settings
    registry_app_id: int = Field(
        default=0,
        ge=0,
        description="Application id of the validator registry contract"
    )
    read_sender: str = Field(
        default=FEE_SINK,
        description="Neutral sender address used for read-only simulation"
    )
    
    # Name directory settings
    nfd_api_url: Optional[str] = Field(
        default=None,
        description="Custom NFD API base URL (optional)"
    )
    
    # Signing settings
    signer_mnemonic: Optional[str] = Field(
        default=None,
        description="25-word account mnemonic used for state-mutating operations"
    )
    
    # Orchestration parameters
    fetch_batch_size: int = Field(
        default=10,
        ge=1,
        description="Number of concurrent reads per fetch batch"
    )
    simulate_placeholder_fee: int = Field(
        default=240_000,
        ge=0,
        description="Fee (microAlgos) attached to logical calls during fee simulation"
    )
    execute_wait_rounds: int = Field(
        default=4,
        ge=1,
        description="Rounds to wait for confirmation of a submitted group"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for HTTP requests to external services"
    )
    
    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )
    
    @property
    def algod_url(self) -> str:
        """Get the algod URL based on overrides or network."""
        if self.algod_server:
            if self.algod_port:
                return f"{self.algod_server.rstrip('/')}:{self.algod_port}"
            return self.algod_server
        
        network_urls = {
            NetworkType.MAINNET: "https://mainnet-api.algonode.cloud",
            NetworkType.TESTNET: "https://testnet-api.algonode.cloud",
            NetworkType.BETANET: "https://betanet-api.algonode.cloud",
            NetworkType.LOCALNET: "http://localhost:4001",
        }
        return network_urls.get(self.network, "https://testnet-api.algonode.cloud")
    
    @property
    def nfd_url(self) -> str:
        """Get the NFD API URL based on network."""
        if self.nfd_api_url:
            return self.nfd_api_url
        
        if self.network == NetworkType.MAINNET:
            return "https://api.nf.domains"
        return "https://api.testnet.nf.domains"


# Global config instance
_config: Optional[RetiConfig] = None


def get_config() -> RetiConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = RetiConfig()
    return _config


def set_config(config: RetiConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
