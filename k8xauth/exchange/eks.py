"""
k8xauth.exchange.eks

Exchanges a source workload identity for an EKS bearer token.

The token is a presigned STS GetCallerIdentity URL bound to the cluster
through the x-k8s-aws-id header, the same format aws-iam-authenticator and
`aws eks get-token` produce.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..identity.exceptions import ExchangeError
from ..identity.provider import WorkloadIdentity
from ..identity.token import IdentityToken

DEFAULT_STS_REGION = "us-east-1"

# Header identifying the EKS cluster in the STS GetCallerIdentity call
EKS_CLUSTER_ID_HEADER = "x-k8s-aws-id"
# STS ignores X-Amz-Expires; presigned GetCallerIdentity URLs are valid for
# 15 minutes after X-Amz-Date. EKS only checks this is between 0 and 60.
REQUEST_PRESIGN_PARAM = 60
PRESIGNED_URL_EXPIRATION = timedelta(minutes=15)
TOKEN_EXPIRY_MARGIN = timedelta(minutes=1)
TOKEN_V1_PREFIX = "k8s-aws-v1."

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

logger = logging.getLogger(__name__)


def assume_role_with_web_identity(
    identity: WorkloadIdentity,
    role_arn: str,
    sts_region: str = DEFAULT_STS_REGION,
    sts_client=None,
) -> Dict[str, Any]:
    """
    Trade the source identity token for temporary AWS credentials.

    Returns:
        Dict[str, Any]: The STS 'Credentials' structure

    Raises:
        ExchangeError: If STS rejects the token or the role
    """
    try:
        if sts_client is None:
            sts_client = boto3.Session(region_name=sts_region).client("sts")
        response = sts_client.assume_role_with_web_identity(
            RoleArn=role_arn,
            RoleSessionName=identity.session_identifier,
            WebIdentityToken=identity.raw_identity_token.decode("utf-8"),
        )
    except (BotoCoreError, ClientError) as e:
        raise ExchangeError(f"Couldn't retrieve AWS credentials: {e}") from e

    return response["Credentials"]


def _retrieve_cluster_id(params, context, **kwargs):
    if EKS_CLUSTER_ID_HEADER in params:
        context["eks_cluster"] = params.pop(EKS_CLUSTER_ID_HEADER)


def _inject_cluster_id_header(request, **kwargs):
    if "eks_cluster" in request.context:
        request.headers[EKS_CLUSTER_ID_HEADER] = request.context["eks_cluster"]


def presign_get_caller_identity(
    credentials: Dict[str, Any],
    cluster_name: str,
    sts_region: str = DEFAULT_STS_REGION,
) -> str:
    """
    Presign an STS GetCallerIdentity request carrying the cluster header.

    Args:
        credentials: STS 'Credentials' structure from the assumed role
        cluster_name: EKS cluster the token is bound to
        sts_region: Region of the STS endpoint to sign for

    Returns:
        str: The presigned URL

    Raises:
        ExchangeError: If the request cannot be presigned
    """
    try:
        session = boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials.get("SessionToken"),
            region_name=sts_region,
        )
        sts_client = session.client("sts")
        events = sts_client.meta.events
        events.register(
            "provide-client-params.sts.GetCallerIdentity", _retrieve_cluster_id
        )
        events.register("before-sign.sts.GetCallerIdentity", _inject_cluster_id_header)

        return sts_client.generate_presigned_url(
            "get_caller_identity",
            Params={EKS_CLUSTER_ID_HEADER: cluster_name},
            ExpiresIn=REQUEST_PRESIGN_PARAM,
            HttpMethod="GET",
        )
    except (BotoCoreError, ClientError, KeyError) as e:
        raise ExchangeError(f"Couldn't presign STS request: {e}") from e


def signing_time(presigned_url: str) -> datetime:
    """Return the X-Amz-Date of a presigned URL as an aware UTC datetime."""
    query = parse_qs(urlparse(presigned_url).query)
    try:
        amz_date = query["X-Amz-Date"][0]
        return datetime.strptime(amz_date, AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except (KeyError, ValueError) as e:
        raise ExchangeError(f"Presigned STS URL has no valid X-Amz-Date: {e}") from e


def token_from_presigned_url(presigned_url: str) -> IdentityToken:
    """
    Encode a presigned URL into an EKS bearer token.

    The advertised expiry is one minute before the URL stops being accepted.
    """
    encoded = base64.urlsafe_b64encode(presigned_url.encode("utf-8")).decode("utf-8")
    return IdentityToken(
        access_token=TOKEN_V1_PREFIX + encoded.rstrip("="),
        expiry=signing_time(presigned_url) + PRESIGNED_URL_EXPIRATION - TOKEN_EXPIRY_MARGIN,
    )


def get_eks_token(
    identity: WorkloadIdentity,
    role_arn: str,
    cluster_name: str,
    sts_region: str = DEFAULT_STS_REGION,
    logger: logging.Logger = logger,
    sts_client=None,
) -> IdentityToken:
    """
    Get an EKS bearer token for the given cluster.

    Args:
        identity: Discovered source workload identity
        role_arn: AWS role to assume with the source identity token
        cluster_name: Name of the target EKS cluster
        sts_region: AWS STS region requests are made to
        logger: Logger for diagnostics
        sts_client: Override for the client used to assume the role

    Returns:
        IdentityToken holding a 'k8s-aws-v1.' token

    Raises:
        ExchangeError: If the role can't be assumed or the request presigned
    """
    logger.debug(
        "Assuming role %s with session name %s", role_arn, identity.session_identifier
    )
    credentials = assume_role_with_web_identity(identity, role_arn, sts_region, sts_client)

    logger.debug("Presigning STS GetCallerIdentity for cluster %s", cluster_name)
    presigned_url = presign_get_caller_identity(credentials, cluster_name, sts_region)
    return token_from_presigned_url(presigned_url)
