"""
k8xauth.credwriter

Writes tokens as Kubernetes client.authentication.k8s.io ExecCredentials.
"""

import json
import os
import sys
from datetime import timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, TextIO

from .identity.exceptions import CredentialWriteError
from .identity.token import IdentityToken

EXEC_INFO_ENV = "KUBERNETES_EXEC_INFO"


class ApiVersion(str, Enum):
    """ExecCredential API versions this plugin can answer with."""

    V1 = "client.authentication.k8s.io/v1"
    V1BETA1 = "client.authentication.k8s.io/v1beta1"


DEFAULT_API_VERSION = ApiVersion.V1BETA1


def resolve_api_version(environ: Optional[Mapping[str, str]] = None) -> ApiVersion:
    """
    Pick the ExecCredential version requested by the calling client.

    kubectl passes its ExecCredential in KUBERNETES_EXEC_INFO; older clients
    don't set it at all, in which case v1beta1 is used.

    Raises:
        CredentialWriteError: If the variable is not valid JSON or asks for
            an unsupported version
    """
    environ = os.environ if environ is None else environ
    exec_info = environ.get(EXEC_INFO_ENV, "")
    if not exec_info:
        return DEFAULT_API_VERSION

    try:
        api_version = json.loads(exec_info).get("apiVersion", "")
    except (ValueError, AttributeError) as e:
        raise CredentialWriteError(
            f"cannot unmarshal {exec_info!r} to ExecCredential: {e}"
        ) from e

    if not api_version:
        return DEFAULT_API_VERSION
    try:
        return ApiVersion(api_version)
    except ValueError:
        raise CredentialWriteError(f"api version: {api_version} is not supported")


def format_timestamp(token: IdentityToken) -> str:
    """Format the token expiry as an RFC 3339 UTC timestamp."""
    return token.expiry.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_exec_credential(token: IdentityToken, api_version: ApiVersion) -> Dict[str, Any]:
    """Build the ExecCredential document for a token."""
    return {
        "apiVersion": api_version.value,
        "kind": "ExecCredential",
        "status": {
            "token": token.access_token,
            "expirationTimestamp": format_timestamp(token),
        },
    }


class ExecCredentialWriter:
    """Serializes tokens for kubectl and other client-go based callers."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ

    def write(self, token: IdentityToken, *streams: TextIO) -> None:
        """
        Write the ExecCredential for ``token`` to each stream (stdout by default).

        Raises:
            CredentialWriteError: If the version can't be resolved or writing fails
        """
        credential = build_exec_credential(token, resolve_api_version(self.environ))
        try:
            document = json.dumps(credential)
            for stream in streams or (sys.stdout,):
                stream.write(document + "\n")
                stream.flush()
        except (TypeError, ValueError, OSError) as e:
            raise CredentialWriteError(f"could not write the ExecCredential: {e}") from e
