"""
k8xauth.identity.factory

Source identity discovery chain.
"""

import logging
from typing import List, Optional, Sequence

from .aks_provider import AKSWorkloadIdentityProvider
from .eks_provider import EKSIRSAProvider
from .exceptions import ConfigurationError, NoIdentitySourceFound
from .gke_provider import GKEWorkloadIdentityProvider
from .provider import IdentityProvider, WorkloadIdentity

AUTH_SOURCE_ALL = "all"
AUTH_SOURCE_PRIORITY = ("gke", "eks", "aks")
AUTH_SOURCES = AUTH_SOURCE_PRIORITY + (AUTH_SOURCE_ALL,)


def default_providers(logger: Optional[logging.Logger] = None) -> List[IdentityProvider]:
    """Return one provider per supported platform, in priority order."""
    return [
        GKEWorkloadIdentityProvider(logger=logger),
        EKSIRSAProvider(logger=logger),
        AKSWorkloadIdentityProvider(logger=logger),
    ]


def discover_identity(
    auth_source: str = AUTH_SOURCE_ALL,
    logger: Optional[logging.Logger] = None,
    providers: Optional[Sequence[IdentityProvider]] = None,
) -> WorkloadIdentity:
    """
    Return the identity of the first provider that yields a usable token.

    Providers are probed lazily in order; a provider that fails is expected
    (the workload is simply not running on that cloud) and only logged at
    debug level.

    Args:
        auth_source: 'gke', 'eks', 'aks' or 'all'
        logger: Logger for probe diagnostics
        providers: Ordered providers to probe, defaults to default_providers()

    Returns:
        WorkloadIdentity of the first successful provider

    Raises:
        ConfigurationError: If auth_source is not a known source
        NoIdentitySourceFound: If no enabled provider succeeded
    """
    logger = logger or logging.getLogger(__name__)

    auth_source = (auth_source or "").lower().strip()
    if auth_source not in AUTH_SOURCES:
        raise ConfigurationError(
            f"Invalid authentication source: '{auth_source}'. "
            f"Valid options are: {', '.join(AUTH_SOURCES)}"
        )

    if providers is None:
        providers = default_providers(logger)

    for provider in providers:
        name = provider.get_name()
        if auth_source not in (AUTH_SOURCE_ALL, name):
            continue

        logger.debug("Source Authentication - Trying %s", name)
        try:
            identity = provider.get_current_identity()
        except Exception as e:
            # Cloud SDKs raise their own error types; none of them are fatal here
            logger.debug("Source Authentication - %s unavailable: %s", name, e)
            continue

        logger.debug(
            "Source Authentication - Successfully retrieved %s identity token (platform=%s)",
            name,
            identity.platform.value,
        )
        return identity

    raise NoIdentitySourceFound("no valid authentication source found")
