"""
k8xauth.identity.provider

Workload identity model and the abstract base class for source identity
providers.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .token import IdentityToken, TokenSource

PROGRAM_NAME = "k8xauth"

# Used as the AWS RoleSessionName, among others.
MAX_SESSION_IDENTIFIER_LENGTH = 32


class Platform(str, Enum):
    """Cloud platform a workload identity was discovered on."""

    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"


def make_session_identifier(*parts: Optional[str]) -> str:
    """
    Join platform identifiers into a short, stable session identifier.

    Empty parts are skipped. When every part is empty a generated
    identifier based on the current time is used instead.

    Returns:
        str: Identifier of at most MAX_SESSION_IDENTIFIER_LENGTH characters
    """
    values = [p for p in parts if p]
    if not values:
        values = [PROGRAM_NAME, str(time.time_ns())]
    return "-".join(values)[:MAX_SESSION_IDENTIFIER_LENGTH]


@dataclass(frozen=True)
class WorkloadIdentity:
    """Represents the native cloud identity of the current workload."""

    platform: Platform
    session_identifier: str
    token_source: TokenSource = field(repr=False)
    raw_identity_token: bytes = field(repr=False)

    def token(self) -> IdentityToken:
        """Return a fresh token from the owning token source."""
        return self.token_source.token()


class IdentityProvider(ABC):
    """Probes one native cloud identity mechanism."""

    platform: Platform

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    def get_name(self) -> str:
        """
        Returns the auth source name used to select this provider.

        Returns:
            str: One of 'gke', 'eks', 'aks'
        """
        pass

    @abstractmethod
    def get_token_source(self) -> TokenSource:
        """
        Returns a token source for the ambient identity of this platform.

        Raises:
            IdentityProviderError: If the platform's ambient identity is absent
        """
        pass

    @abstractmethod
    def get_session_parts(self) -> Tuple[str, ...]:
        """
        Returns the platform identifiers that make up the session identifier.

        Failures to look them up must be logged and reported as empty strings,
        never raised.
        """
        pass

    def get_current_identity(self) -> WorkloadIdentity:
        """
        Retrieves identity for the current workload.

        Returns:
            WorkloadIdentity: The current workload's identity

        Raises:
            Exception: Whatever the underlying platform SDK raised when no
                token could be obtained
        """
        token_source = self.get_token_source()
        identity_token = token_source.token()
        return WorkloadIdentity(
            platform=self.platform,
            session_identifier=make_session_identifier(*self.get_session_parts()),
            token_source=token_source,
            raw_identity_token=identity_token.access_token.encode("utf-8"),
        )
