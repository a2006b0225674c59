"""Tests for the source identity discovery chain."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from k8xauth.identity import (
    ConfigurationError,
    IdentityProvider,
    IdentityToken,
    NoIdentitySourceFound,
    Platform,
    StaticTokenSource,
    TokenNotFoundError,
    TokenSource,
    discover_identity,
    make_session_identifier,
)

PLATFORMS = {"gke": Platform.GCP, "eks": Platform.AWS, "aks": Platform.AZURE}


class FailingSource(TokenSource):
    def __init__(self, error):
        self.error = error

    def token(self):
        raise self.error


class FakeProvider(IdentityProvider):
    """Provider whose outcome is fixed up front."""

    def __init__(self, name, available=True, token_error=None, logger=None):
        super().__init__(logger)
        self.name = name
        self.platform = PLATFORMS[name]
        self.available = available
        self.token_error = token_error
        self.calls = 0

    def get_name(self):
        return self.name

    def get_token_source(self):
        self.calls += 1
        if not self.available:
            raise TokenNotFoundError(f"{self.name} not available")
        if self.token_error is not None:
            return FailingSource(self.token_error)
        return StaticTokenSource(
            IdentityToken(
                access_token=f"{self.name}-token",
                expiry=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        )

    def get_session_parts(self):
        return self.name, "session"


def chain(*outcomes):
    return [FakeProvider(name, available=ok) for name, ok in outcomes]


class TestDiscoveryChain:
    def test_first_successful_provider_wins(self, test_logger):
        providers = chain(("gke", True), ("eks", True), ("aks", True))

        identity = discover_identity("all", logger=test_logger, providers=providers)

        assert identity.platform == Platform.GCP
        assert identity.raw_identity_token == b"gke-token"

    def test_later_providers_are_not_tried_after_success(self, test_logger):
        providers = chain(("gke", False), ("eks", True), ("aks", True))

        identity = discover_identity("all", logger=test_logger, providers=providers)

        assert identity.platform == Platform.AWS
        assert [p.calls for p in providers] == [1, 1, 0]

    def test_token_fetch_error_fails_the_provider(self, test_logger):
        providers = [
            FakeProvider("gke", token_error=RuntimeError("metadata server said no")),
            FakeProvider("eks", available=False),
            FakeProvider("aks"),
        ]

        identity = discover_identity("all", logger=test_logger, providers=providers)

        assert identity.platform == Platform.AZURE

    @pytest.mark.parametrize("source", ["gke", "eks", "aks"])
    def test_auth_source_filter(self, source, test_logger):
        providers = chain(("gke", True), ("eks", True), ("aks", True))

        identity = discover_identity(source, logger=test_logger, providers=providers)

        assert identity.platform == PLATFORMS[source]
        assert [p.calls for p in providers if p.name != source] == [0, 0]

    def test_filter_does_not_fall_back_to_other_sources(self, test_logger):
        providers = chain(("gke", True), ("eks", False), ("aks", True))

        with pytest.raises(NoIdentitySourceFound):
            discover_identity("eks", logger=test_logger, providers=providers)

    def test_exhaustion(self, test_logger, caplog):
        providers = chain(("gke", False), ("eks", False), ("aks", False))

        with caplog.at_level(logging.DEBUG, logger="k8xauth_tests"):
            with pytest.raises(NoIdentitySourceFound) as exc_info:
                discover_identity("all", logger=test_logger, providers=providers)

        assert exc_info.value.exit_code == 1
        assert "eks not available" in caplog.text
        assert all(r.levelno == logging.DEBUG for r in caplog.records)

    def test_invalid_auth_source(self, test_logger):
        with pytest.raises(ConfigurationError):
            discover_identity("openstack", logger=test_logger, providers=[])

    def test_auth_source_is_case_insensitive(self, test_logger):
        providers = chain(("gke", True))
        identity = discover_identity(" GKE ", logger=test_logger, providers=providers)
        assert identity.platform == Platform.GCP


class TestSessionIdentifier:
    def test_joins_parts(self):
        assert make_session_identifier("123456789012", "i-abc") == "123456789012-i-abc"

    def test_truncates_to_32(self):
        result = make_session_identifier("my-very-long-gcp-project-name", "gke-cluster-default-pool-node-1")
        assert result == "my-very-long-gcp-project-name-gk"
        assert len(result) == 32

    def test_skips_empty_parts(self):
        assert make_session_identifier("", "host") == "host"

    def test_generated_when_all_parts_empty(self):
        result = make_session_identifier("", "")
        assert result.startswith("k8xauth-")
        assert len(result) <= 32
