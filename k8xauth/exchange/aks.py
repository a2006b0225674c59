"""
k8xauth.exchange.aks

Exchanges a source workload identity for an AKS (Entra ID) access token.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import ClientAssertionCredential, DefaultAzureCredential

from ..identity.exceptions import ExchangeError, K8xAuthError
from ..identity.provider import WorkloadIdentity
from ..identity.token import IdentityToken

# https://azure.github.io/kubelogin/concepts/aks.html
DEFAULT_AAD_SERVER_APPLICATION_ID = "6dae42f8-4368-4678-94ff-3960e28e3630"

TENANT_ID_PATTERN = re.compile(r"^[0-9A-Za-z.-]+$")

logger = logging.getLogger(__name__)


def build_federated_credential(
    identity: WorkloadIdentity, tenant_id: str, client_id: str
) -> ClientAssertionCredential:
    """
    Build a credential that presents the source identity token to Entra ID.

    Raises:
        ExchangeError: If the credential cannot be constructed
    """
    if not tenant_id or not TENANT_ID_PATTERN.match(tenant_id):
        raise ExchangeError(
            f"Invalid workload identity federation settings: bad tenant ID {tenant_id!r}"
        )
    if not client_id:
        raise ExchangeError(
            "Invalid workload identity federation settings: client ID is empty"
        )

    def federated_token() -> str:
        return identity.token().access_token

    try:
        return ClientAssertionCredential(
            tenant_id,
            client_id,
            federated_token,
            disable_instance_discovery=True,
        )
    except (TypeError, ValueError) as e:
        raise ExchangeError(f"Invalid workload identity federation settings: {e}") from e


def build_ambient_credential(
    tenant_id: str, logger: logging.Logger = logger
) -> Optional[DefaultAzureCredential]:
    """Return Azure default credentials, or None when they can't be built."""
    try:
        return DefaultAzureCredential(workload_identity_tenant_id=tenant_id)
    except (ValueError, AzureError) as e:
        logger.debug("Error getting default Azure credentials: %s", e)
        return None


def get_first_token(
    candidates: List[Tuple[str, TokenCredential]],
    scope: str,
    logger: logging.Logger = logger,
) -> IdentityToken:
    """
    Ask each credential for a token in order and return the first one.

    Later candidates are only tried if every earlier one failed.

    Raises:
        ExchangeError: If all candidates failed
    """
    errors = []
    for name, credential in candidates:
        try:
            access_token = credential.get_token(scope)
        except (AzureError, K8xAuthError) as e:
            # K8xAuthError comes from the federated assertion callback
            logger.debug("%s credential failed to get a token: %s", name, e)
            errors.append(f"{name}: {e}")
            continue

        logger.debug("Got AKS token from %s credential", name)
        return IdentityToken(
            access_token=access_token.token,
            expiry=datetime.fromtimestamp(access_token.expires_on, tz=timezone.utc),
        )

    raise ExchangeError("Failed to get AKS token; " + "; ".join(errors))


def get_aks_token(
    identity: WorkloadIdentity,
    tenant_id: str,
    client_id: str,
    server_id: str = DEFAULT_AAD_SERVER_APPLICATION_ID,
    logger: logging.Logger = logger,
    ambient_credential: Optional[TokenCredential] = None,
) -> IdentityToken:
    """
    Get an access token for the AKS AAD server application.

    The federated credential is tried first, falling back to whatever
    ambient Azure identity the workload already has.

    Args:
        identity: Discovered source workload identity
        tenant_id: Entra ID tenant of the target cluster
        client_id: Application (client) ID trusting the source identity
        server_id: AKS AAD server application ID
        logger: Logger for diagnostics
        ambient_credential: Override for the fallback credential

    Returns:
        IdentityToken scoped to '<server_id>/.default'

    Raises:
        ExchangeError: If no credential returned a token
    """
    logger.debug("Getting Azure client credentials")

    federated = build_federated_credential(identity, tenant_id, client_id)
    candidates = [("federated", federated)]
    # Credentials built here hold HTTP transports and are closed afterwards
    owned = [federated]
    if ambient_credential is None:
        ambient_credential = build_ambient_credential(tenant_id, logger)
        if ambient_credential is not None:
            owned.append(ambient_credential)
    if ambient_credential is not None:
        candidates.append(("ambient", ambient_credential))

    try:
        return get_first_token(candidates, f"{server_id}/.default", logger)
    finally:
        for credential in owned:
            credential.close()
