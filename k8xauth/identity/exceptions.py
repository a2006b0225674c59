"""
k8xauth.identity.exceptions

Custom exceptions for source discovery and target exchange.

Every exception carries the process exit status the CLI should use when it
is the reason the run stops.
"""


class K8xAuthError(Exception):
    """Base exception for all k8xauth errors."""

    exit_code = 1


class ConfigurationError(K8xAuthError):
    """Raised when required configuration is missing or invalid."""

    pass


class IdentityProviderError(K8xAuthError):
    """Base exception for identity provider errors."""

    pass


class TokenNotFoundError(IdentityProviderError):
    """Raised when an identity token cannot be found."""

    pass


class InvalidTokenError(IdentityProviderError):
    """Raised when an identity token is invalid or cannot be parsed."""

    pass


class NoIdentitySourceFound(IdentityProviderError):
    """Raised when no probe in the discovery chain produced an identity."""

    pass


class ExchangeError(K8xAuthError):
    """Raised when a target cloud rejects or fails to exchange the identity."""

    pass


class ImpersonationError(ExchangeError):
    """Raised when service account impersonation is rejected."""

    exit_code = 2


class CredentialWriteError(K8xAuthError):
    """Raised when the ExecCredential cannot be built or written."""

    pass
