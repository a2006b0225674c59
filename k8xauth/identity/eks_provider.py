"""
k8xauth.identity.eks_provider

EKS IRSA (IAM Roles for Service Accounts) identity provider implementation.
"""

import logging
import os
from datetime import timedelta
from typing import Optional, Tuple

import httpx

from .exceptions import InvalidTokenError, TokenNotFoundError
from .metadata import get_instance_identity_document
from .provider import IdentityProvider, Platform
from .token import (
    IdentityToken,
    ReuseTokenSource,
    TokenSource,
    expiry_from_jwt,
    utc_now,
)

IRSA_ENV_VARS = ("AWS_REGION", "AWS_ROLE_ARN", "AWS_WEB_IDENTITY_TOKEN_FILE")
TOKEN_EARLY_EXPIRY = timedelta(seconds=60)


class WebIdentityTokenFileSource(TokenSource):
    """Reads the projected web identity token from disk on every call."""

    def __init__(self, token_path: str):
        """
        Initialize the token file source.

        Args:
            token_path: Path to the projected service account token
        """
        self.token_path = token_path

    def _read_token(self) -> str:
        try:
            with open(self.token_path, "r") as f:
                token = f.read().strip()
        except IOError as e:
            raise TokenNotFoundError(
                f"Failed to read web identity token from {self.token_path}: {e}"
            )

        if not token:
            raise TokenNotFoundError(
                f"Web identity token file {self.token_path} is empty"
            )
        return token

    def token(self) -> IdentityToken:
        token = self._read_token()
        # Unverified decode; AWS STS verifies the token when it is redeemed
        expiry = expiry_from_jwt(token)
        if expiry <= utc_now():
            raise InvalidTokenError(
                f"Web identity token in {self.token_path} expired at {expiry.isoformat()}"
            )
        return IdentityToken(access_token=token, expiry=expiry)


class EKSIRSAProvider(IdentityProvider):
    """Source identity from the EKS IRSA projected token."""

    platform = Platform.AWS

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__(logger)
        self.http_client = http_client

    def get_name(self) -> str:
        """Return provider name."""
        return "eks"

    def get_token_source(self) -> TokenSource:
        """Wrap the IRSA token file in a source reused until 60s before exp."""
        missing = [name for name in IRSA_ENV_VARS if not os.environ.get(name)]
        if missing:
            raise TokenNotFoundError(
                f"IRSA environment variables not set: {', '.join(missing)}"
            )

        return ReuseTokenSource(
            WebIdentityTokenFileSource(os.environ["AWS_WEB_IDENTITY_TOKEN_FILE"]),
            early_expiry=TOKEN_EARLY_EXPIRY,
        )

    def get_session_parts(self) -> Tuple[str, ...]:
        """Return account ID and instance ID from the instance identity document."""
        try:
            document = get_instance_identity_document(self.http_client)
        except (httpx.HTTPError, ValueError) as e:
            self.logger.debug("Couldn't fetch instance identity from AWS/EKS metadata server: %s", e)
            return "", ""

        return document.get("accountId", ""), document.get("instanceId", "")
