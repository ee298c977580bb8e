"""Credential sources and messaging client construction."""

from __future__ import annotations

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import firebase_admin
import google.auth
from firebase_admin import credentials as fb_credentials
from firebase_admin import messaging
from google.auth.exceptions import GoogleAuthError

from fcmpush.exceptions import (
    ConfigurationError,
    CredentialResolutionError,
    NoCredentialForEnvironmentError,
)
from fcmpush.utils.error_handling import log_errors
from fcmpush.utils.redaction import redact_dict

if TYPE_CHECKING:
    from fcmpush.config import Settings

logger = logging.getLogger(__name__)

FCM_SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/firebase.messaging",
]

# Exactly these environments ship an embedded credential file
EMBEDDED_KEY_FILES = {
    "production": "workload_identity_pool_credentials_production.json",
    "staging": "workload_identity_pool_credentials_staging.json",
}

STS_TOKEN_URL = "https://sts.googleapis.com/v1/token"
AWS_SUBJECT_TOKEN_TYPE = "urn:ietf:params:aws:token-type:aws4_request"
AWS_METADATA_HOST = "http://169.254.169.254"


class CredentialSource(ABC):
    """Somewhere a credential JSON blob can be loaded from, once."""

    name: str = "unknown"

    @abstractmethod
    def load(self) -> str:
        """
        Return the credential JSON text.

        Raises:
            CredentialResolutionError: If the credential cannot be loaded
        """


@dataclass(frozen=True)
class EmbeddedKeySource(CredentialSource):
    """Key file shipped with the deployment, selected by environment name."""

    environment: str
    credentials_dir: Path

    name = "embedded"

    def key_path(self) -> Path:
        """
        Raises:
            NoCredentialForEnvironmentError: For any environment without a key file
        """
        try:
            file_name = EMBEDDED_KEY_FILES[self.environment]
        except KeyError:
            msg = f"No credential available for environment '{self.environment}'"
            raise NoCredentialForEnvironmentError(
                msg,
                context={"environment": self.environment, "known": sorted(EMBEDDED_KEY_FILES)},
            ) from None
        return Path(self.credentials_dir) / file_name

    def load(self) -> str:
        path = self.key_path()
        logger.info("Opening embedded credential file", extra={"path": str(path)})
        try:
            return path.read_text()
        except OSError as e:
            msg = f"Cannot read embedded credential file {path}"
            raise CredentialResolutionError(
                msg,
                context={"environment": self.environment, "path": str(path)},
            ) from e


@dataclass(frozen=True)
class EnvironmentKeySource(CredentialSource):
    """Raw service-account key JSON held in an environment variable."""

    variable: str = "GOOGLE_SERVICE_ACCOUNT_KEY"

    name = "env"

    def load(self) -> str:
        # Used verbatim; well-formedness is checked when the client is built
        raw = os.environ.get(self.variable, "")
        if not raw.strip():
            msg = f"Environment variable {self.variable} is not set"
            raise CredentialResolutionError(msg, context={"variable": self.variable})
        return raw


@dataclass(frozen=True)
class IdentityPoolKeySource(CredentialSource):
    """
    Workload identity federation from AWS.

    Builds an external_account descriptor: Google STS exchanges a signed
    AWS GetCallerIdentity request (from the instance metadata service) for
    a token, which then impersonates the given service account.
    """

    project_number: str
    pool_id: str
    provider_id: str
    service_account: str
    aws_region: str = "eu-west-1"

    name = "identity_pool"

    def descriptor(self) -> dict[str, Any]:
        missing = [
            field
            for field in ("project_number", "pool_id", "provider_id", "service_account")
            if not getattr(self, field)
        ]
        if missing:
            msg = "Identity pool configuration is incomplete"
            raise CredentialResolutionError(msg, context={"missing": missing})

        return {
            "type": "external_account",
            "audience": (
                f"//iam.googleapis.com/projects/{self.project_number}/locations/global/"
                f"workloadIdentityPools/{self.pool_id}/providers/{self.provider_id}"
            ),
            "subject_token_type": AWS_SUBJECT_TOKEN_TYPE,
            "service_account_impersonation_url": (
                "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/"
                f"{self.service_account}:generateAccessToken"
            ),
            "token_url": STS_TOKEN_URL,
            "credential_source": {
                "environment_id": "aws1",
                "region_url": f"{AWS_METADATA_HOST}/latest/meta-data/placement/availability-zone",
                "url": f"{AWS_METADATA_HOST}/latest/meta-data/iam/security-credentials",
                "regional_cred_verification_url": (
                    f"https://sts.{self.aws_region}.amazonaws.com"
                    "?Action=GetCallerIdentity&Version=2011-06-15"
                ),
                "imdsv2_session_token_url": f"{AWS_METADATA_HOST}/latest/api/token",
            },
        }

    def load(self) -> str:
        descriptor = self.descriptor()
        try:
            return json.dumps(descriptor)
        except (TypeError, ValueError) as e:
            msg = "Cannot serialize identity pool descriptor"
            raise CredentialResolutionError(msg, context={"source": self.name}) from e


class _GoogleAuthCredential(fb_credentials.Base):
    """Adapts a google-auth credential to the firebase-admin credential interface."""

    def __init__(self, credential: google.auth.credentials.Credentials) -> None:
        self._g_credential = credential

    def get_credential(self) -> google.auth.credentials.Credentials:
        return self._g_credential


class MessagingClient:
    """A firebase-admin app bound to one credential, used for a single send."""

    def __init__(self, app: firebase_admin.App, source_name: str = "unknown") -> None:
        self.app = app
        self.source_name = source_name

    def send_each_for_multicast(
        self,
        message: messaging.MulticastMessage,
        dry_run: bool = False,
    ) -> messaging.BatchResponse:
        return messaging.send_each_for_multicast(message, dry_run=dry_run, app=self.app)

    def send(self, message: messaging.Message, dry_run: bool = False) -> str:
        return messaging.send(message, dry_run=dry_run, app=self.app)

    def close(self) -> None:
        """Delete the underlying app."""
        firebase_admin.delete_app(self.app)


def _build_credential(info: dict[str, Any]) -> fb_credentials.Base:
    if info.get("type") == "service_account":
        return fb_credentials.Certificate(info)
    credential, _ = google.auth.load_credentials_from_dict(info, scopes=FCM_SCOPES)
    return _GoogleAuthCredential(credential)


def client_from_credential_json(
    raw: str,
    *,
    project_id: str | None = None,
    source_name: str = "unknown",
) -> MessagingClient:
    """
    Build a messaging client from credential JSON text.

    Raises:
        CredentialResolutionError: Malformed JSON, unsupported credential
            type or firebase app initialization failure
    """
    try:
        info = json.loads(raw)
    except ValueError as e:
        msg = "Credential JSON is malformed"
        raise CredentialResolutionError(msg, context={"source": source_name}) from e

    if not isinstance(info, dict):
        msg = "Credential JSON must be an object"
        raise CredentialResolutionError(msg, context={"source": source_name})

    logger.debug(
        "Loaded credential",
        extra={"source": source_name, "credential": redact_dict(info)},
    )

    try:
        credential = _build_credential(info)
        options = {"projectId": project_id} if project_id else None
        app = firebase_admin.initialize_app(
            credential,
            options=options,
            name=f"fcmpush-{uuid.uuid4().hex}",
        )
    except (ValueError, GoogleAuthError) as e:
        msg = f"Cannot initialize messaging client: {e}"
        raise CredentialResolutionError(
            msg,
            context={"source": source_name, "credential_type": info.get("type")},
        ) from e

    logger.info(
        "Messaging client initialized",
        extra={"source": source_name, "app_name": app.name},
    )
    return MessagingClient(app, source_name=source_name)


@log_errors("resolve_credential")
def resolve(source: CredentialSource, project_id: str | None = None) -> MessagingClient:
    """
    Load a credential from the source and build a messaging client.

    Not cached: every call builds a fresh client.

    Raises:
        CredentialResolutionError: If loading or client construction fails
    """
    raw = source.load()
    return client_from_credential_json(raw, project_id=project_id, source_name=source.name)


def build_source(settings: Settings, kind: str | None = None) -> CredentialSource:
    """
    Map configuration onto a credential source.

    Args:
        settings: Current settings
        kind: "embedded", "env" or "identity_pool"; defaults to settings.credential_source

    Raises:
        ConfigurationError: For an unknown source kind
    """
    kind = kind or settings.credential_source
    if kind == "embedded":
        return EmbeddedKeySource(
            environment=settings.environment,
            credentials_dir=settings.credentials_dir,
        )
    if kind == "env":
        return EnvironmentKeySource(variable=settings.service_account_key_var)
    if kind == "identity_pool":
        return IdentityPoolKeySource(
            project_number=settings.identity_pool_project_number,
            pool_id=settings.identity_pool_id,
            provider_id=settings.identity_pool_provider_id,
            service_account=settings.identity_pool_service_account,
            aws_region=settings.aws_region,
        )
    msg = f"Unknown credential source: {kind}"
    raise ConfigurationError(msg, context={"credential_source": kind})


def default_fallback_sources(settings: Settings) -> list[CredentialSource]:
    """Sources tried in order for dry-run diagnostics: embedded key, then identity pool."""
    return [build_source(settings, "embedded"), build_source(settings, "identity_pool")]
