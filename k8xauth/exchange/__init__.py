"""
k8xauth.exchange

Target cloud exchanges turning a source workload identity into a token for
the target cluster's control plane.
"""

from .aks import DEFAULT_AAD_SERVER_APPLICATION_ID, get_aks_token
from .eks import DEFAULT_STS_REGION, get_eks_token
from .gke import get_gke_token

__all__ = [
    "DEFAULT_AAD_SERVER_APPLICATION_ID",
    "DEFAULT_STS_REGION",
    "get_aks_token",
    "get_eks_token",
    "get_gke_token",
]
