"""
k8xauth.identity.aks_provider

AKS Workload Identity provider implementation.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

from azure.identity import WorkloadIdentityCredential

from .provider import PROGRAM_NAME, IdentityProvider, Platform
from .token import IdentityToken, TokenSource

AZURE_TOKEN_EXCHANGE_SCOPE = "api://AzureADTokenExchange/.default"


class AzureCredentialTokenSource(TokenSource):
    """Adapts an azure-identity TokenCredential to a TokenSource."""

    def __init__(self, credential, scopes: Sequence[str]):
        self._credential = credential
        self._scopes = tuple(scopes)

    def token(self) -> IdentityToken:
        access_token = self._credential.get_token(*self._scopes)
        return IdentityToken(
            access_token=access_token.token,
            expiry=datetime.fromtimestamp(access_token.expires_on, tz=timezone.utc),
        )


class AKSWorkloadIdentityProvider(IdentityProvider):
    """
    Source identity from Azure Workload Identity.

    The credential reads AZURE_TENANT_ID, AZURE_CLIENT_ID and
    AZURE_FEDERATED_TOKEN_FILE, which the Azure Workload Identity webhook
    injects into the pod.
    """

    platform = Platform.AZURE

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        scope: str = AZURE_TOKEN_EXCHANGE_SCOPE,
    ):
        super().__init__(logger)
        self.scope = scope

    def get_name(self) -> str:
        """Return provider name."""
        return "aks"

    def get_token_source(self) -> TokenSource:
        """Build a workload identity credential scoped to token exchange."""
        credential = WorkloadIdentityCredential()
        return AzureCredentialTokenSource(credential, [self.scope])

    def get_session_parts(self) -> Tuple[str, ...]:
        """No natural session ID exists on Azure; generate one."""
        return PROGRAM_NAME, str(time.time_ns())
