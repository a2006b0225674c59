"""Tests for the GKE, EKS and AKS source identity providers."""

import json
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from k8xauth.identity import (
    AKSWorkloadIdentityProvider,
    EKSIRSAProvider,
    GKEWorkloadIdentityProvider,
    InvalidTokenError,
    Platform,
    TokenNotFoundError,
)
from k8xauth.identity import aks_provider, gke_provider


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def failing_metadata(request):
    return httpx.Response(503, text="unavailable")


class FakeIDTokenCredentials:
    """Stands in for google-auth ID token credentials."""

    def __init__(self, token):
        self._token = token
        self.token = None
        self.expiry = None
        self.refreshes = 0

    @property
    def valid(self):
        return self.token is not None

    def refresh(self, request):
        self.refreshes += 1
        self.token = self._token
        self.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)


class TestGKEWorkloadIdentityProvider:
    @pytest.fixture
    def credentials(self, monkeypatch, make_jwt):
        creds = FakeIDTokenCredentials(make_jwt(aud="gcp"))
        audiences = []

        def fetch(audience, request=None):
            audiences.append(audience)
            return creds

        monkeypatch.setattr(gke_provider.id_token, "fetch_id_token_credentials", fetch)
        creds.audiences = audiences
        return creds

    def test_identity_from_default_credentials(self, credentials, test_logger):
        def metadata(request):
            assert request.headers["Metadata-Flavor"] == "Google"
            if request.url.path.endswith("project/project-id"):
                return httpx.Response(200, text="my-very-long-gcp-project-name\n")
            return httpx.Response(200, text="gke-cluster-default-pool-1a2b3c4d-xyz.c.internal")

        provider = GKEWorkloadIdentityProvider(logger=test_logger, http_client=mock_client(metadata))
        identity = provider.get_current_identity()

        assert identity.platform == Platform.GCP
        assert credentials.audiences == ["gcp"]
        assert identity.session_identifier == "my-very-long-gcp-project-name-gk"
        assert identity.raw_identity_token == credentials.token.encode()
        assert identity.token().expiry.tzinfo is not None

    def test_metadata_failures_are_not_fatal(self, credentials, test_logger):
        provider = GKEWorkloadIdentityProvider(
            logger=test_logger, http_client=mock_client(failing_metadata)
        )

        identity = provider.get_current_identity()

        assert identity.session_identifier.startswith("k8xauth-")
        assert len(identity.session_identifier) <= 32

    def test_token_source_reuses_valid_credentials(self, credentials, test_logger):
        provider = GKEWorkloadIdentityProvider(
            logger=test_logger, http_client=mock_client(failing_metadata)
        )
        identity = provider.get_current_identity()
        identity.token()

        assert credentials.refreshes == 1

    def test_no_default_credentials(self, monkeypatch, test_logger):
        from google.auth.exceptions import DefaultCredentialsError

        def fetch(audience, request=None):
            raise DefaultCredentialsError("no credentials")

        monkeypatch.setattr(gke_provider.id_token, "fetch_id_token_credentials", fetch)

        with pytest.raises(DefaultCredentialsError):
            GKEWorkloadIdentityProvider(logger=test_logger).get_current_identity()


class TestEKSIRSAProvider:
    @pytest.fixture
    def irsa_env(self, monkeypatch, tmp_path, make_jwt):
        token_file = tmp_path / "token"
        token_file.write_text(make_jwt() + "\n")
        monkeypatch.setenv("AWS_REGION", "us-east-2")
        monkeypatch.setenv("AWS_ROLE_ARN", "arn:aws:iam::123456789012:role/source")
        monkeypatch.setenv("AWS_WEB_IDENTITY_TOKEN_FILE", str(token_file))
        return token_file

    @staticmethod
    def imds(request):
        if request.method == "PUT":
            assert request.headers["X-aws-ec2-metadata-token-ttl-seconds"] == "21600"
            return httpx.Response(200, text="imds-session-token")
        assert request.headers["X-aws-ec2-metadata-token"] == "imds-session-token"
        return httpx.Response(
            200,
            text=json.dumps(
                {
                    "accountId": "123456789012",
                    "instanceId": "i-0123456789abcdef0123456789",
                    "region": "us-east-2",
                }
            ),
        )

    def test_identity_from_token_file(self, irsa_env, test_logger):
        provider = EKSIRSAProvider(logger=test_logger, http_client=mock_client(self.imds))

        identity = provider.get_current_identity()

        assert identity.platform == Platform.AWS
        assert identity.raw_identity_token == irsa_env.read_text().strip().encode()
        assert identity.session_identifier == "123456789012-i-0123456789abcdef0"

    @pytest.mark.parametrize(
        "missing", ["AWS_REGION", "AWS_ROLE_ARN", "AWS_WEB_IDENTITY_TOKEN_FILE"]
    )
    def test_requires_all_irsa_variables(self, irsa_env, monkeypatch, missing, test_logger):
        monkeypatch.delenv(missing)

        with pytest.raises(TokenNotFoundError, match=missing):
            EKSIRSAProvider(logger=test_logger).get_current_identity()

    def test_expired_token(self, irsa_env, make_jwt, test_logger):
        irsa_env.write_text(make_jwt(exp_offset_seconds=-10))
        provider = EKSIRSAProvider(logger=test_logger, http_client=mock_client(self.imds))

        with pytest.raises(InvalidTokenError):
            provider.get_current_identity()

    def test_token_reused_until_near_expiry(self, irsa_env, make_jwt, test_logger):
        provider = EKSIRSAProvider(logger=test_logger, http_client=mock_client(self.imds))
        identity = provider.get_current_identity()
        first = identity.token().access_token

        irsa_env.write_text(make_jwt(sub="rotated"))

        assert identity.token().access_token == first

    def test_rereads_file_inside_early_expiry(self, irsa_env, make_jwt, test_logger):
        irsa_env.write_text(make_jwt(exp_offset_seconds=30))
        provider = EKSIRSAProvider(logger=test_logger, http_client=mock_client(self.imds))
        identity = provider.get_current_identity()

        rotated = make_jwt(sub="rotated")
        irsa_env.write_text(rotated)

        assert identity.token().access_token == rotated

    def test_metadata_failure_is_not_fatal(self, irsa_env, test_logger):
        provider = EKSIRSAProvider(logger=test_logger, http_client=mock_client(failing_metadata))

        identity = provider.get_current_identity()

        assert identity.session_identifier.startswith("k8xauth-")


class FakeWorkloadIdentityCredential:
    def __init__(self, **kwargs):
        self.scopes = []

    def get_token(self, *scopes):
        from azure.core.credentials import AccessToken

        self.scopes.extend(scopes)
        return AccessToken("azure-federation-token", int(time.time()) + 3600)


class TestAKSWorkloadIdentityProvider:
    def test_identity_from_workload_identity(self, monkeypatch, test_logger):
        monkeypatch.setattr(aks_provider, "WorkloadIdentityCredential", FakeWorkloadIdentityCredential)

        identity = AKSWorkloadIdentityProvider(logger=test_logger).get_current_identity()

        assert identity.platform == Platform.AZURE
        assert identity.raw_identity_token == b"azure-federation-token"
        assert identity.session_identifier.startswith("k8xauth-")
        assert len(identity.session_identifier) <= 32
        assert identity.token().expiry > datetime.now(timezone.utc)

    def test_requests_token_exchange_scope(self, monkeypatch, test_logger):
        created = []

        def factory(**kwargs):
            credential = FakeWorkloadIdentityCredential()
            created.append(credential)
            return credential

        monkeypatch.setattr(aks_provider, "WorkloadIdentityCredential", factory)

        AKSWorkloadIdentityProvider(logger=test_logger).get_current_identity()

        assert created[0].scopes == ["api://AzureADTokenExchange/.default"]

    def test_missing_workload_identity_environment(self, test_logger):
        with pytest.raises(ValueError):
            AKSWorkloadIdentityProvider(logger=test_logger).get_current_identity()
