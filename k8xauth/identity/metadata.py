"""
k8xauth.identity.metadata

Minimal clients for the unauthenticated instance metadata endpoints of GCP
and AWS. Only used to build session identifiers.
"""

from typing import Any, Dict, Optional

import httpx

GCE_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
GCE_METADATA_HEADERS = {"Metadata-Flavor": "Google"}

EC2_IMDS_URL = "http://169.254.169.254"
EC2_IMDS_TOKEN_TTL_SECONDS = "21600"


def get_gce_metadata(path: str, client: Optional[httpx.Client] = None) -> str:
    """
    Read a value from the GCE metadata server.

    Args:
        path: Path below computeMetadata/v1/, e.g. 'project/project-id'
        client: Optional httpx client to use

    Returns:
        str: The stripped response body

    Raises:
        httpx.HTTPError: If the metadata server is unreachable or errors
    """
    if client is None:
        with httpx.Client() as owned:
            return get_gce_metadata(path, owned)

    response = client.get(GCE_METADATA_URL + path, headers=GCE_METADATA_HEADERS)
    response.raise_for_status()
    return response.text.strip()


def get_instance_identity_document(
    client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """
    Fetch the EC2 instance identity document using IMDSv2.

    Returns:
        Dict[str, Any]: The parsed document (accountId, instanceId, region, ...)

    Raises:
        httpx.HTTPError: If IMDS is unreachable or errors
    """
    if client is None:
        with httpx.Client() as owned:
            return get_instance_identity_document(owned)

    token_response = client.put(
        f"{EC2_IMDS_URL}/latest/api/token",
        headers={"X-aws-ec2-metadata-token-ttl-seconds": EC2_IMDS_TOKEN_TTL_SECONDS},
    )
    token_response.raise_for_status()

    response = client.get(
        f"{EC2_IMDS_URL}/latest/dynamic/instance-identity/document",
        headers={"X-aws-ec2-metadata-token": token_response.text},
    )
    response.raise_for_status()
    return response.json()
