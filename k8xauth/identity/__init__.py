"""
k8xauth.identity

Source workload identity discovery for k8xauth.

This package detects which cloud the workload natively runs on and retrieves
that cloud's ambient identity token, supporting GKE Workload Identity, EKS
IRSA and AKS Workload Identity.
"""

from .provider import (
    IdentityProvider,
    Platform,
    WorkloadIdentity,
    make_session_identifier,
)
from .token import IdentityToken, ReuseTokenSource, StaticTokenSource, TokenSource
from .gke_provider import GKEWorkloadIdentityProvider
from .eks_provider import EKSIRSAProvider
from .aks_provider import AKSWorkloadIdentityProvider
from .factory import AUTH_SOURCES, discover_identity, default_providers
from .debug import pretty_print_jwt
from .exceptions import (
    K8xAuthError,
    ConfigurationError,
    IdentityProviderError,
    TokenNotFoundError,
    InvalidTokenError,
    NoIdentitySourceFound,
    ExchangeError,
    ImpersonationError,
    CredentialWriteError,
)

__all__ = [
    # Model
    "IdentityToken",
    "TokenSource",
    "StaticTokenSource",
    "ReuseTokenSource",
    "WorkloadIdentity",
    "Platform",
    "make_session_identifier",
    # Providers
    "IdentityProvider",
    "GKEWorkloadIdentityProvider",
    "EKSIRSAProvider",
    "AKSWorkloadIdentityProvider",
    # Discovery
    "AUTH_SOURCES",
    "discover_identity",
    "default_providers",
    "pretty_print_jwt",
    # Exceptions
    "K8xAuthError",
    "ConfigurationError",
    "IdentityProviderError",
    "TokenNotFoundError",
    "InvalidTokenError",
    "NoIdentitySourceFound",
    "ExchangeError",
    "ImpersonationError",
    "CredentialWriteError",
]
