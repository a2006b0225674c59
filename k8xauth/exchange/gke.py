"""
k8xauth.exchange.gke

Exchanges a source workload identity for a GCP access token through
Workload Identity Federation, optionally impersonating a service account.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from ..identity.exceptions import ExchangeError, ImpersonationError
from ..identity.provider import WorkloadIdentity
from ..identity.token import IdentityToken, utc_now

GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
REQUESTED_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"
SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:jwt"
SCOPE = "https://www.googleapis.com/auth/cloud-platform"

STS_TOKEN_URL = "https://sts.googleapis.com/v1/token"
IAM_CREDENTIALS_URL = "https://iamcredentials.googleapis.com/v1"
IMPERSONATION_LIFETIME = "3600s"

logger = logging.getLogger(__name__)


def workload_identity_provider_name(project_id: str, pool_id: str, provider_id: str) -> str:
    """Return the full resource name of a workload identity pool provider."""
    return (
        f"//iam.googleapis.com/projects/{project_id}/locations/global"
        f"/workloadIdentityPools/{pool_id}/providers/{provider_id}"
    )


def exchange_sts_token(
    client: httpx.Client, subject_token: str, audience: str
) -> Dict[str, Any]:
    """
    Exchange an external identity token at the GCP Security Token Service.

    The request is not authenticated; the subject token is the proof.

    Returns:
        Dict[str, Any]: STS response with access_token and expires_in, the
            latter as a positive int

    Raises:
        ExchangeError: If the exchange is rejected
    """
    payload = {
        "grantType": GRANT_TYPE,
        "requestedTokenType": REQUESTED_TOKEN_TYPE,
        "subjectTokenType": SUBJECT_TOKEN_TYPE,
        "audience": audience,
        "scope": SCOPE,
        "subjectToken": subject_token,
    }
    try:
        response = client.post(STS_TOKEN_URL, json=payload)
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as e:
        raise ExchangeError(
            f"GCP STS token exchange failed with {e.response.status_code}: {e.response.text}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise ExchangeError(f"GCP STS token exchange failed: {e}") from e

    if not isinstance(body, dict) or "access_token" not in body:
        raise ExchangeError("GCP STS response does not contain an access_token")

    try:
        expires_in = int(body.get("expires_in"))
    except (TypeError, ValueError):
        expires_in = 0
    if expires_in <= 0:
        raise ExchangeError(
            f"GCP STS response has no usable expires_in: {body.get('expires_in')!r}"
        )
    body["expires_in"] = expires_in
    return body


def generate_access_token(
    client: httpx.Client, sts_token: str, service_account: str
) -> Dict[str, Any]:
    """
    Mint an access token for a service account using the STS token.

    Returns:
        Dict[str, Any]: IAM credentials response with accessToken and expireTime

    Raises:
        ImpersonationError: If the impersonation is rejected
    """
    url = (
        f"{IAM_CREDENTIALS_URL}/projects/-/serviceAccounts/"
        f"{service_account}:generateAccessToken"
    )
    try:
        response = client.post(
            url,
            json={"lifetime": IMPERSONATION_LIFETIME, "scope": [SCOPE]},
            headers={"Authorization": f"Bearer {sts_token}"},
        )
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as e:
        raise ImpersonationError(
            f"Impersonating {service_account} failed with "
            f"{e.response.status_code}: {e.response.text}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise ImpersonationError(f"Impersonating {service_account} failed: {e}") from e

    if "accessToken" not in body:
        raise ImpersonationError("generateAccessToken response does not contain an accessToken")
    return body


def _parse_expire_time(
    value: Optional[str], logger: logging.Logger = logger
) -> Optional[datetime]:
    if not value:
        logger.debug("No expireTime in generateAccessToken response")
        return None
    try:
        expire_time = datetime.fromisoformat(value)
    except ValueError as e:
        logger.debug("Couldn't parse expireTime %r: %s", value, e)
        return None
    if expire_time.tzinfo is None:
        expire_time = expire_time.replace(tzinfo=timezone.utc)
    return expire_time


def get_gke_token(
    identity: WorkloadIdentity,
    project_id: str,
    pool_id: str,
    provider_id: str,
    service_account: Optional[str] = None,
    logger: logging.Logger = logger,
    http_client: Optional[httpx.Client] = None,
) -> IdentityToken:
    """
    Get a GCP access token usable against GKE.

    Without a service account the federated STS token is returned as is, so
    cluster RBAC binds to the federated principal. With one, the STS token
    is used to impersonate it.

    Args:
        identity: Discovered source workload identity
        project_id: Numerical GCP project ID owning the pool
        pool_id: Workload identity pool ID
        provider_id: Workload identity pool provider ID
        service_account: Optional service account email to impersonate
        logger: Logger for diagnostics
        http_client: Override for the HTTP client

    Returns:
        IdentityToken for the federated principal or the service account

    Raises:
        ExchangeError: If the STS exchange fails
        ImpersonationError: If service account impersonation fails
    """
    if http_client is None:
        with httpx.Client() as client:
            return get_gke_token(
                identity,
                project_id,
                pool_id,
                provider_id,
                service_account=service_account,
                logger=logger,
                http_client=client,
            )

    audience = workload_identity_provider_name(project_id, pool_id, provider_id)
    logger.debug("Exchanging source identity token for audience %s", audience)

    requested_at = utc_now()
    sts_response = exchange_sts_token(
        http_client, identity.raw_identity_token.decode("utf-8"), audience
    )
    sts_expiry = requested_at + timedelta(seconds=sts_response["expires_in"])

    if not service_account:
        return IdentityToken(access_token=sts_response["access_token"], expiry=sts_expiry)

    logger.debug("Generating access token for service account %s", service_account)
    iam_response = generate_access_token(
        http_client, sts_response["access_token"], service_account
    )

    expiry = _parse_expire_time(iam_response.get("expireTime"), logger)
    if expiry is None:
        logger.debug("Using STS expiry for the impersonated token")
        expiry = sts_expiry
    return IdentityToken(access_token=iam_response["accessToken"], expiry=expiry)
