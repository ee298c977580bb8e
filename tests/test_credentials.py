"""Tests for credential sources and messaging client construction."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from fcmpush.config import Settings
from fcmpush.exceptions import (
    ConfigurationError,
    CredentialResolutionError,
    NoCredentialForEnvironmentError,
)
from fcmpush.services.credentials import (
    EmbeddedKeySource,
    EnvironmentKeySource,
    IdentityPoolKeySource,
    MessagingClient,
    build_source,
    client_from_credential_json,
    default_fallback_sources,
    resolve,
)


@pytest.fixture
def identity_pool_source() -> IdentityPoolKeySource:
    return IdentityPoolKeySource(
        project_number="123456789",
        pool_id="aws-pool",
        provider_id="aws-provider",
        service_account="fcm-sender@test-project.iam.gserviceaccount.com",
    )


class TestEmbeddedKeySource:
    @pytest.mark.parametrize("environment", ["production", "staging"])
    def test_known_environments_map_to_distinct_files(self, environment: str, tmp_path: Path) -> None:
        path = EmbeddedKeySource(environment, tmp_path).key_path()

        assert path == tmp_path / f"workload_identity_pool_credentials_{environment}.json"

    @pytest.mark.parametrize("environment", ["development", "test", ""])
    def test_unknown_environment_raises_named_error(self, environment: str, tmp_path: Path) -> None:
        source = EmbeddedKeySource(environment, tmp_path)

        with pytest.raises(NoCredentialForEnvironmentError, match="No credential available") as exc_info:
            source.load()

        assert exc_info.value.context["known"] == ["production", "staging"]
        assert isinstance(exc_info.value, CredentialResolutionError)

    def test_load_reads_file(self, tmp_path: Path) -> None:
        key_file = tmp_path / "workload_identity_pool_credentials_production.json"
        key_file.write_text('{"type": "external_account"}')

        assert EmbeddedKeySource("production", tmp_path).load() == '{"type": "external_account"}'

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(CredentialResolutionError, match="Cannot read embedded credential file"):
            EmbeddedKeySource("staging", tmp_path).load()


class TestEnvironmentKeySource:
    def test_reads_variable_verbatim(self, monkeypatch) -> None:
        monkeypatch.setenv("MY_KEY", "not even json")

        assert EnvironmentKeySource("MY_KEY").load() == "not even json"

    def test_missing_variable_raises(self) -> None:
        with pytest.raises(CredentialResolutionError, match="GOOGLE_SERVICE_ACCOUNT_KEY"):
            EnvironmentKeySource().load()


class TestIdentityPoolKeySource:
    def test_descriptor_fields(self, identity_pool_source: IdentityPoolKeySource) -> None:
        descriptor = json.loads(identity_pool_source.load())

        assert descriptor["type"] == "external_account"
        assert descriptor["audience"] == (
            "//iam.googleapis.com/projects/123456789/locations/global/"
            "workloadIdentityPools/aws-pool/providers/aws-provider"
        )
        assert descriptor["token_url"] == "https://sts.googleapis.com/v1/token"
        assert descriptor["service_account_impersonation_url"].endswith(
            "fcm-sender@test-project.iam.gserviceaccount.com:generateAccessToken"
        )
        credential_source = descriptor["credential_source"]
        assert credential_source["environment_id"] == "aws1"
        assert credential_source["regional_cred_verification_url"].startswith(
            "https://sts.eu-west-1.amazonaws.com"
        )

    def test_region_is_configurable(self) -> None:
        source = IdentityPoolKeySource("1", "p", "q", "sa@x", aws_region="us-east-2")

        descriptor = source.descriptor()

        assert "sts.us-east-2.amazonaws.com" in descriptor["credential_source"]["regional_cred_verification_url"]

    def test_incomplete_configuration_raises(self) -> None:
        source = IdentityPoolKeySource("", "pool", "", "sa@x")

        with pytest.raises(CredentialResolutionError) as exc_info:
            source.load()

        assert exc_info.value.context["missing"] == ["project_number", "provider_id"]


class TestClientFromCredentialJson:
    def test_malformed_json_raises(self) -> None:
        with pytest.raises(CredentialResolutionError, match="malformed"):
            client_from_credential_json("{not json", source_name="env")

    def test_non_object_json_raises(self) -> None:
        with pytest.raises(CredentialResolutionError, match="must be an object"):
            client_from_credential_json("[1, 2]")

    def test_service_account_uses_certificate(self, service_account_info: dict) -> None:
        app = MagicMock()
        app.name = "fcmpush-test"
        with patch("fcmpush.services.credentials.fb_credentials.Certificate") as mock_certificate, \
             patch("fcmpush.services.credentials.firebase_admin.initialize_app", return_value=app) as mock_init:
            client = client_from_credential_json(
                json.dumps(service_account_info),
                project_id="test-project",
                source_name="env",
            )

        mock_certificate.assert_called_once_with(service_account_info)
        args, kwargs = mock_init.call_args
        assert args[0] is mock_certificate.return_value
        assert kwargs["options"] == {"projectId": "test-project"}
        assert kwargs["name"].startswith("fcmpush-")
        assert isinstance(client, MessagingClient)
        assert client.app is app
        assert client.source_name == "env"

    def test_external_account_uses_google_auth(self, identity_pool_source: IdentityPoolKeySource) -> None:
        google_credential = MagicMock()
        with patch(
            "fcmpush.services.credentials.google.auth.load_credentials_from_dict",
            return_value=(google_credential, None),
        ) as mock_load, patch(
            "fcmpush.services.credentials.firebase_admin.initialize_app"
        ) as mock_init:
            client_from_credential_json(identity_pool_source.load())

        _args, kwargs = mock_load.call_args
        assert "https://www.googleapis.com/auth/firebase.messaging" in kwargs["scopes"]
        credential = mock_init.call_args.args[0]
        assert credential.get_credential() is google_credential
        assert mock_init.call_args.kwargs["options"] is None

    def test_initialization_failure_is_wrapped(self, service_account_info: dict) -> None:
        with patch(
            "fcmpush.services.credentials.fb_credentials.Certificate",
            side_effect=ValueError("Failed to initialize a certificate credential"),
        ), pytest.raises(CredentialResolutionError, match="Cannot initialize messaging client") as exc_info:
            client_from_credential_json(json.dumps(service_account_info))

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.context["credential_type"] == "service_account"


def test_resolve_loads_source_and_builds_client(monkeypatch, service_account_info: dict) -> None:
    monkeypatch.setenv("GOOGLE_SERVICE_ACCOUNT_KEY", json.dumps(service_account_info))
    with patch("fcmpush.services.credentials.fb_credentials.Certificate"), \
         patch("fcmpush.services.credentials.firebase_admin.initialize_app") as mock_init:
        client = resolve(EnvironmentKeySource(), project_id="p1")

    assert mock_init.call_args.kwargs["options"] == {"projectId": "p1"}
    assert client.source_name == "env"


def test_unreadable_embedded_key_logged_once(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with pytest.raises(CredentialResolutionError, match="Cannot read embedded credential file"):
        resolve(EmbeddedKeySource("production", tmp_path))

    errors = [record for record in caplog.records if record.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert errors[0].operation == "resolve_credential"  # type: ignore[attr-defined]


def test_messaging_client_delegates_to_sdk() -> None:
    app = MagicMock()
    client = MessagingClient(app, source_name="env")
    message = MagicMock()

    with patch("fcmpush.services.credentials.messaging.send_each_for_multicast") as mock_multicast, \
         patch("fcmpush.services.credentials.messaging.send") as mock_send, \
         patch("fcmpush.services.credentials.firebase_admin.delete_app") as mock_delete:
        client.send_each_for_multicast(message, dry_run=True)
        client.send(message)
        client.close()

    mock_multicast.assert_called_once_with(message, dry_run=True, app=app)
    mock_send.assert_called_once_with(message, dry_run=False, app=app)
    mock_delete.assert_called_once_with(app)


class TestBuildSource:
    def test_default_is_env(self) -> None:
        source = build_source(Settings())

        assert isinstance(source, EnvironmentKeySource)
        assert source.variable == "GOOGLE_SERVICE_ACCOUNT_KEY"

    def test_embedded_uses_environment(self, tmp_path: Path) -> None:
        settings = Settings(environment="staging", credentials_dir=tmp_path)

        source = build_source(settings, "embedded")

        assert source == EmbeddedKeySource("staging", tmp_path)

    def test_unknown_kind_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            build_source(Settings(), "vault")

    def test_default_fallback_order(self) -> None:
        sources = default_fallback_sources(Settings())

        assert [s.name for s in sources] == ["embedded", "identity_pool"]
