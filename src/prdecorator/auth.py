"""Credential acquisition for each hosting platform.

Two strategies exist. Stored personal access tokens are validated once with a
read-only call against the target repository. GitHub Apps go through the
installation-token exchange:

1. sign a short-lived JWT with the App's private key,
2. walk ``/app/installations`` and, per installation, exchange the JWT for an
   installation token,
3. walk that installation's repositories looking for ``owner/repo``,
4. stop at the first installation that exposes the repository.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol

import jwt
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from requests.auth import HTTPBasicAuth

from .config import HostBinding, Platform
from .errors import ApiError, AuthenticationError, ConfigurationError
from .models import AuthToken, RepositoryIdentity
from .pagination import PageTraverser
from .rest import Clock, RestClient, utc_now

logger = logging.getLogger(__name__)

GITHUB_ACCEPT_HEADER = "application/vnd.github+json"
BITBUCKET_CLOUD_TOKEN_URL = "https://bitbucket.org/site/oauth2/access_token"

_CLOCK_SKEW = timedelta(seconds=10)
_ASSERTION_LIFETIME = timedelta(minutes=2)


class CredentialProvider(Protocol):
    def acquire(self) -> AuthToken:
        ...


class StaticTokenProvider:
    """Stored token validated by a single read-only call."""

    def __init__(self, token: Optional[str], validate: Callable[[AuthToken], Any]) -> None:
        self._token = token
        self._validate = validate

    def acquire(self) -> AuthToken:
        """Return the stored token after confirming the host accepts it.

        Raises:
            AuthenticationError: If no token has been configured.
            ConfigurationError: If the validation call fails in any way.
        """
        if not self._token:
            raise AuthenticationError("No personal access token has been configured.")

        token = AuthToken(value=self._token)
        try:
            self._validate(token)
        except (ApiError, requests.RequestException, KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Could not validate the configured token against the host: {exc}") from exc
        return token


def normalize_github_api_url(api_url: str) -> str:
    """Strip a trailing slash and add ``/v3`` to GitHub Enterprise ``/api`` URLs."""
    api_url = api_url.rstrip("/")
    if api_url.endswith("/api"):
        api_url = f"{api_url}/v3"
    return api_url


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class GithubAppTokenProvider:
    """Exchanges a GitHub App's private key for a repository-scoped installation token."""

    def __init__(
        self,
        api_url: str,
        app_id: str,
        private_key: str,
        repository_path: str,
        client: Optional[RestClient] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._api_url = normalize_github_api_url(api_url)
        self._app_id = app_id
        self._private_key = private_key
        self._repository_path = repository_path
        self._clock = clock
        self._client = client or RestClient(self._api_url, clock=clock)
        self._traverser = PageTraverser(self._client)

    def _signing_key(self) -> Any:
        try:
            return serialization.load_pem_private_key(self._private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError("The GitHub App private key is not a valid unencrypted PEM key.") from exc

    def create_assertion(self) -> str:
        """Sign the JWT used to authenticate as the App itself."""
        key = self._signing_key()
        if isinstance(key, rsa.RSAPrivateKey):
            algorithm = "RS256"
        elif isinstance(key, ec.EllipticCurvePrivateKey):
            algorithm = "ES256"
        else:
            raise ConfigurationError("The GitHub App private key must be an RSA or EC key.")

        issued_at = self._clock() - _CLOCK_SKEW
        expires_at = issued_at + _ASSERTION_LIFETIME
        claims = {
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self._app_id,
        }
        return jwt.encode(claims, key, algorithm=algorithm)

    def acquire(self) -> AuthToken:
        """Find an installation with access to the repository and return its token.

        Raises:
            ConfigurationError: If the key is invalid or no installation has
                access to the requested repository.
            ApiError: If any GitHub call fails.
        """
        assertion = self.create_assertion()
        app_headers = {"Authorization": f"Bearer {assertion}", "Accept": GITHUB_ACCEPT_HEADER}

        token = self._traverser.traverse(
            f"{self._api_url}/app/installations",
            lambda installation: self._token_for_installation(installation, app_headers),
            headers=app_headers,
        )
        if token is None:
            raise ConfigurationError(
                "No installation token found with access to the requested repository "
                f"'{self._repository_path}' using the given application ID and key."
            )
        return token

    def _token_for_installation(self, installation: Dict[str, Any], app_headers: Dict[str, str]) -> Optional[AuthToken]:
        installation_id = installation.get("id")
        access_tokens_url = installation.get("access_tokens_url")
        repositories_url = installation.get("repositories_url")
        if not access_tokens_url or not repositories_url:
            raise ApiError(f"GitHub installation payload is missing URLs: installation_id={installation_id}")

        logger.debug("Requesting installation token", extra={"installation_id": installation_id})
        payload = self._client.post_json(access_tokens_url, headers=app_headers)
        installation_token = AuthToken(
            value=str(payload["token"]),
            expires_at=_parse_expiry(payload.get("expires_at")),
        )

        repository_headers = {
            "Authorization": f"Bearer {installation_token.value}",
            "Accept": GITHUB_ACCEPT_HEADER,
        }
        return self._traverser.traverse(
            repositories_url,
            lambda repository: self._match_repository(repository, installation_token),
            items=lambda body: body.get("repositories", []),
            headers=repository_headers,
        )

    def _match_repository(self, repository: Dict[str, Any], installation_token: AuthToken) -> Optional[AuthToken]:
        if repository.get("full_name") != self._repository_path:
            return None

        logger.info("Found installation with repository access", extra={"repository": self._repository_path})
        return AuthToken(
            value=installation_token.value,
            expires_at=installation_token.expires_at,
            repository=RepositoryIdentity(
                node_id=str(repository["node_id"]),
                html_url=str(repository["html_url"]),
                name=str(repository["name"]),
                owner_login=str(repository["owner"]["login"]),
            ),
        )


class BitbucketCloudOAuthProvider:
    """Client-credentials exchange for Bitbucket Cloud OAuth consumers."""

    def __init__(self, client_id: str, client_secret: str, client: Optional[RestClient] = None) -> None:
        # basic auth lives on its own session so it never leaks into bearer calls
        self._client = client or RestClient(
            BITBUCKET_CLOUD_TOKEN_URL,
            auth=HTTPBasicAuth(client_id, client_secret),
        )

    def acquire(self) -> AuthToken:
        try:
            payload = self._client.post_json(BITBUCKET_CLOUD_TOKEN_URL, data={"grant_type": "client_credentials"})
            return AuthToken(value=str(payload["access_token"]))
        except (ApiError, KeyError, TypeError) as exc:
            raise ConfigurationError(f"Could not retrieve a Bitbucket Cloud bearer token: {exc}") from exc


def create_credential_provider(
    binding: HostBinding,
    validate: Callable[[AuthToken], Any],
    session: Optional[requests.Session] = None,
    clock: Clock = utc_now,
) -> CredentialProvider:
    """Pick the credential strategy for ``binding``.

    Args:
        binding: Validated host binding.
        validate: Read-only call used to check a stored token, typically
            "get repository" on the platform client.
        session: Optional session shared with the platform client.
        clock: Source of the current time for JWT claims and expiry checks.

    Raises:
        ConfigurationError: If the binding's credential material does not
            match any supported strategy.
    """
    if binding.platform is Platform.GITHUB:
        if not binding.app_id or not binding.private_key:
            raise ConfigurationError("GitHub connections require an App ID and a private key.")
        api_url = normalize_github_api_url(binding.url)
        return GithubAppTokenProvider(
            api_url,
            binding.app_id,
            binding.private_key,
            binding.repository,
            client=RestClient(api_url, session=session, clock=clock),
            clock=clock,
        )

    if binding.platform is Platform.BITBUCKET and binding.is_cloud and not binding.personal_access_token:
        if not binding.client_id or not binding.client_secret:
            raise ConfigurationError("Bitbucket Cloud connections require an OAuth client ID and secret.")
        return BitbucketCloudOAuthProvider(binding.client_id, binding.client_secret)

    return StaticTokenProvider(binding.personal_access_token, validate)
