"""
Shared fixtures for k8xauth unit tests.

All cloud SDK and HTTP traffic is replaced with in-process fakes; nothing in
these tests talks to a real cloud or metadata endpoint.
"""

import logging
import os
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from k8xauth.identity import (
    IdentityToken,
    Platform,
    StaticTokenSource,
    WorkloadIdentity,
)

CLOUD_ENV_PREFIXES = ("AWS_", "AZURE_", "GOOGLE_", "KUBERNETES_EXEC_INFO")


@pytest.fixture(autouse=True)
def clean_cloud_env(monkeypatch, tmp_path):
    """Hide ambient cloud configuration of the machine running the tests."""
    for name in list(os.environ):
        if name.startswith(CLOUD_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws-config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws-credentials"))
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")


@pytest.fixture
def make_jwt():
    """Return a factory for unverifiable test JWTs with the given claims."""

    def _make_jwt(exp_offset_seconds: int = 3600, **claims) -> str:
        payload = {
            "iss": "https://oidc.example.test",
            "sub": "system:serviceaccount:argocd:argocd-server",
            "aud": "sts.amazonaws.com",
            "exp": int(time.time()) + exp_offset_seconds,
        }
        payload.update(claims)
        return jwt.encode(payload, "k8xauth-test-signing-key-0123456789abcdef", algorithm="HS256")

    return _make_jwt


@pytest.fixture
def source_identity(make_jwt):
    """A discovered GCP workload identity backed by a static token."""
    token = make_jwt()
    return WorkloadIdentity(
        platform=Platform.GCP,
        session_identifier="my-project-gke-node-1",
        token_source=StaticTokenSource(
            IdentityToken(
                access_token=token,
                expiry=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        ),
        raw_identity_token=token.encode("utf-8"),
    )


@pytest.fixture
def test_logger():
    logger = logging.getLogger("k8xauth_tests")
    logger.setLevel(logging.DEBUG)
    return logger
