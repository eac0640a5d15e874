"""Secret storage with managed rotation of provider API keys."""

from .catalog import DEFAULT_CATALOG, KeyCatalog, ProviderKey
from .coordinator import MutationCoordinator
from .ledger import ManagedEntry, SecretDocument
from .manager import SecretManager
from .rotation import ByComment, ByIndex, Next, ProbeResult, parse_search
from .store import SecretStore

__all__ = [
    "DEFAULT_CATALOG",
    "KeyCatalog",
    "ProviderKey",
    "MutationCoordinator",
    "ManagedEntry",
    "SecretDocument",
    "SecretManager",
    "ByComment",
    "ByIndex",
    "Next",
    "ProbeResult",
    "parse_search",
    "SecretStore",
]
