"""mint-ledger - multi-mint Cashu registry and proof ledger.

Client-side state for an e-cash wallet holding balances on several mints.
"""

__version__ = "0.1.0"

from .activation import ActivationController, ActivationState
from .ledger import ProofLedger
from .mint import HttpMintClient, MintApi, sanitize_url
from .registry import MintRegistry
from .store import JsonFileStore, MemoryStore
from .sync import KeysetMergePolicy, KeysetSynchronizer
from .view import MintView

__all__ = [
    # Registry
    "MintRegistry",
    # Components
    "ProofLedger",
    "MintView",
    "KeysetSynchronizer",
    "KeysetMergePolicy",
    "ActivationController",
    "ActivationState",
    # Mint API
    "MintApi",
    "HttpMintClient",
    "sanitize_url",
    # Storage
    "MemoryStore",
    "JsonFileStore",
]
