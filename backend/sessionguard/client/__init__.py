"""Convenience imports for API consumers."""

from sessionguard.client.coordinator import OutcomeKind, RefreshCoordinator, RefreshOutcome
from sessionguard.client.credentials import CredentialStore, TokenBundle
from sessionguard.client.pipeline import ApiClient
from sessionguard.client.transport import RotationTransport

__all__ = [
    "ApiClient",
    "CredentialStore",
    "OutcomeKind",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RotationTransport",
    "TokenBundle",
]
