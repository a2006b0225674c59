"""
k8xauth

Cross-cloud Kubernetes exec credential plugin. Obtains short-lived AKS, EKS
and GKE credentials from the workload's native cloud identity.
"""

__version__ = "0.1.0"
