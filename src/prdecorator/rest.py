"""Thin ``requests`` wrapper shared by every platform client."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from requests.auth import AuthBase

from .errors import ApiError, AuthenticationError
from .models import AuthToken

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RestClient:
    """Session-backed JSON client with fixed timeouts and no retries."""

    _CONNECT_TIMEOUT_SECONDS = 10
    _READ_TIMEOUT_SECONDS = 30

    def __init__(
        self,
        base_url: str,
        token: Optional[AuthToken] = None,
        auth: Optional[AuthBase] = None,
        headers: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize a client rooted at ``base_url``.

        Args:
            base_url: API root that relative paths are resolved against.
            token: Bearer credential sent as ``Authorization: Bearer``.
            auth: Alternative ``requests`` auth handler (basic auth, private tokens).
            headers: Extra headers sent with every request.
            session: Optional pre-built session, mostly for tests.
            clock: Source of the current time, used to refuse expired tokens.
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._clock = clock
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if headers:
            self._session.headers.update(headers)
        if auth is not None:
            self._session.auth = auth

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> Optional[AuthToken]:
        return self._token

    def build_url(self, path: str) -> str:
        """Resolve ``path`` against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> Dict[str, str]:
        if self._token is None:
            return {}
        if self._token.is_expired(self._clock()):
            raise AuthenticationError("The access token for this run has expired and cannot be reused.")
        return {"Authorization": f"Bearer {self._token.value}"}

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        """Execute one HTTP call.

        Raises:
            ApiError: On I/O failure or any non-2xx response.
            AuthenticationError: If the run's token has already expired.
        """
        url = self.build_url(path)
        request_headers = self._auth_headers()
        if headers:
            request_headers.update(headers)

        logger.debug("Sending request", extra={"method": method, "url": url})
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=request_headers,
                timeout=(self._CONNECT_TIMEOUT_SECONDS, self._READ_TIMEOUT_SECONDS),
            )
        except requests.RequestException as exc:
            raise ApiError(f"Request failed: {method} {url}", method=method, url=url) from exc

        if not 200 <= response.status_code < 300:
            raise ApiError(
                f"API request failed: {method} {url} returned {response.status_code} - {response.text}",
                method=method,
                url=url,
                status_code=response.status_code,
            )

        return response

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Execute one HTTP call and decode its JSON body.

        Raises:
            ApiError: If the call fails or the body is not valid JSON.
        """
        response = self.request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                f"API returned invalid JSON: {method} {self.build_url(path)}",
                method=method,
                url=self.build_url(path),
                status_code=response.status_code,
            ) from exc

    def get_json(self, path: str, **kwargs: Any) -> Any:
        return self.request_json("GET", path, **kwargs)

    def post_json(self, path: str, **kwargs: Any) -> Any:
        return self.request_json("POST", path, **kwargs)

    def patch_json(self, path: str, **kwargs: Any) -> Any:
        return self.request_json("PATCH", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("DELETE", path, **kwargs)
