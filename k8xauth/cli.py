"""
k8xauth command line interface.

Kubernetes exec credential plugin for authenticating with clusters on another
cloud using the workload's native identity instead of long-term credentials.

Usage:
    k8xauth aks --tenantid "<tenant>" --clientid "<client>"
    k8xauth eks --rolearn "arn:aws:iam::123456789012:role/argocd" --cluster "my-cluster"
    k8xauth gke --projectid "12345678901" --poolid "pool" --providerid "provider"
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .credwriter import ExecCredentialWriter
from .exchange import (
    DEFAULT_AAD_SERVER_APPLICATION_ID,
    DEFAULT_STS_REGION,
    get_aks_token,
    get_eks_token,
    get_gke_token,
)
from .identity import (
    AUTH_SOURCES,
    InvalidTokenError,
    K8xAuthError,
    WorkloadIdentity,
    discover_identity,
    pretty_print_jwt,
)
from .identity.token import IdentityToken
from .logger import setup_logger


def exchange_aks(args: argparse.Namespace, identity: WorkloadIdentity, logger: logging.Logger) -> IdentityToken:
    return get_aks_token(
        identity,
        tenant_id=args.tenantid,
        client_id=args.clientid,
        server_id=args.serverid,
        logger=logger,
    )


def exchange_eks(args: argparse.Namespace, identity: WorkloadIdentity, logger: logging.Logger) -> IdentityToken:
    return get_eks_token(
        identity,
        role_arn=args.rolearn,
        cluster_name=args.cluster,
        sts_region=args.stsregion,
        logger=logger,
    )


def exchange_gke(args: argparse.Namespace, identity: WorkloadIdentity, logger: logging.Logger) -> IdentityToken:
    return get_gke_token(
        identity,
        project_id=args.projectid,
        pool_id=args.poolid,
        provider_id=args.providerid,
        service_account=args.serviceaccount,
        logger=logger,
    )


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--authsource",
        default="all",
        choices=AUTH_SOURCES,
        help="Authentication source to use (default: %(default)s)",
    )
    common.add_argument(
        "--printsourceauthtoken",
        action="store_true",
        help="Print source authentication token, useful for debugging. May expose sensitive data",
    )
    common.add_argument("--loglevel", default="info", help="Set log level (default: %(default)s)")
    common.add_argument(
        "--logformat",
        default="text",
        choices=("text", "json"),
        help="Set log format (default: %(default)s)",
    )
    common.add_argument(
        "--logfile",
        default=None,
        help="Set log file. If not set logs are sent to standard error",
    )

    parser = argparse.ArgumentParser(
        prog="k8xauth",
        description="Kubernetes exec credential plugin for identity based "
        "authentication with clusters on other clouds, without long-term credentials.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="{aks,eks,gke}")
    subparsers.required = True

    aks = subparsers.add_parser(
        "aks",
        parents=[common],
        help="Fetches Azure AKS cluster credentials",
        description="Fetches Azure AKS cluster credentials from GKE Workload Identity or EKS IRSA",
    )
    aks.add_argument("-t", "--tenantid", required=True, help="Azure Entra Directory tenant ID")
    aks.add_argument("-c", "--clientid", required=True, help="Azure Managed Principal/App client ID")
    aks.add_argument(
        "-s",
        "--serverid",
        default=DEFAULT_AAD_SERVER_APPLICATION_ID,
        help="Azure Entra (AAD) server app ID (default: %(default)s)",
    )
    aks.set_defaults(exchange=exchange_aks)

    eks = subparsers.add_parser(
        "eks",
        parents=[common],
        help="Fetches AWS EKS cluster credentials",
        description="Fetches AWS EKS cluster credentials from GKE or AKS Workload Identity",
    )
    eks.add_argument("-r", "--rolearn", required=True, help="AWS role ARN to assume")
    eks.add_argument("-c", "--cluster", required=True, help="AWS EKS cluster name for which we fetch credentials")
    eks.add_argument(
        "-s",
        "--stsregion",
        default=DEFAULT_STS_REGION,
        help="AWS STS region to which requests are made (default: %(default)s)",
    )
    eks.set_defaults(exchange=exchange_eks)

    gke = subparsers.add_parser(
        "gke",
        parents=[common],
        help="Fetches Google Cloud GKE cluster credentials",
        description="Fetches Google Cloud GKE cluster credentials from AKS Workload Identity or EKS IRSA",
    )
    gke.add_argument("-p", "--projectid", required=True, help="Numerical GCP project ID")
    gke.add_argument("--poolid", required=True, help="GCP Workload Identity Federation pool ID")
    gke.add_argument("--providerid", required=True, help="GCP Workload Identity Federation provider ID")
    gke.add_argument(
        "-s",
        "--serviceaccount",
        default=None,
        help="GCP Service Account to generate access token for",
    )
    gke.set_defaults(exchange=exchange_gke)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run one credential request and return the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        logger = setup_logger(args.loglevel, args.logformat, args.logfile)
    except OSError as e:
        print(f"Unable to open log file: {e}", file=sys.stderr)
        return 1

    try:
        identity = discover_identity(args.authsource, logger=logger)
        logger.debug(
            "Using %s source identity (session %s)",
            identity.platform.value,
            identity.session_identifier,
        )

        if args.printsourceauthtoken:
            try:
                pretty_print_jwt(identity.raw_identity_token.decode("utf-8"))
            except InvalidTokenError as e:
                logger.warning("Couldn't print source token: %s", e)

        token = args.exchange(args, identity, logger)
        ExecCredentialWriter().write(token, sys.stdout)
    except K8xAuthError as e:
        logger.error("%s failed: %s", args.command, e)
        return e.exit_code

    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
