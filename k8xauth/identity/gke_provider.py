"""
k8xauth.identity.gke_provider

GKE Workload Identity provider implementation.
"""

import logging
from datetime import timezone
from typing import Optional, Tuple

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import id_token

from .metadata import get_gce_metadata
from .provider import IdentityProvider, Platform
from .token import IdentityToken, TokenSource, expiry_from_jwt

GCP_TOKEN_AUDIENCE = "gcp"


class GoogleCredentialsTokenSource(TokenSource):
    """Adapts refreshable google-auth ID token credentials to a TokenSource."""

    def __init__(self, credentials, request: Optional[Request] = None):
        self._credentials = credentials
        self._request = request or Request()

    def token(self) -> IdentityToken:
        if not self._credentials.valid:
            self._credentials.refresh(self._request)

        token = self._credentials.token
        expiry = self._credentials.expiry
        if expiry is None:
            return IdentityToken(access_token=token, expiry=expiry_from_jwt(token))
        # google-auth keeps expiry as a naive UTC datetime
        return IdentityToken(access_token=token, expiry=expiry.replace(tzinfo=timezone.utc))


class GKEWorkloadIdentityProvider(IdentityProvider):
    """Source identity from GCP application default credentials."""

    platform = Platform.GCP

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        audience: str = GCP_TOKEN_AUDIENCE,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize GKE Workload Identity provider.

        Args:
            logger: Logger to report probe progress to
            audience: Audience of the ID token requested from GCP
            http_client: Client used to reach the metadata server
        """
        super().__init__(logger)
        self.audience = audience
        self.http_client = http_client

    def get_name(self) -> str:
        """Return provider name."""
        return "gke"

    def get_token_source(self) -> TokenSource:
        """Fetch ID token credentials for the ambient GCP identity."""
        request = Request()
        credentials = id_token.fetch_id_token_credentials(self.audience, request=request)
        return GoogleCredentialsTokenSource(credentials, request)

    def get_session_parts(self) -> Tuple[str, ...]:
        """Return project ID and hostname from the metadata server."""
        try:
            project_id = get_gce_metadata("project/project-id", self.http_client)
        except httpx.HTTPError as e:
            self.logger.debug("Couldn't fetch ProjectId from GCP metadata server: %s", e)
            project_id = ""

        try:
            hostname = get_gce_metadata("instance/hostname", self.http_client)
        except httpx.HTTPError as e:
            self.logger.debug("Couldn't fetch Hostname from GCP metadata server: %s", e)
            hostname = ""

        return project_id, hostname
