"""Base API connector with retry and session handling.

Provides common functionality for Salesforce API access including:
- HTTP client bound to the org's instance URL
- Exponential backoff retry logic
- OAuth2 session login and one-shot re-login on expired sessions
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any

import httpx

from ... import config as settings
from ...utils.sanitization import sanitize_error_message
from ..base import BaseConnector, ConnectionError, ConnectorError
from ..models import ConnectionTestResult
from .auth.oauth2 import OAuth2Error, OAuth2TokenManager

# Seconds to wait when a 429 carries no usable Retry-After
DEFAULT_RETRY_AFTER = 60


class SalesforceAPIError(ConnectorError):
    """Raised when a Salesforce API request fails."""

    def __init__(
        self,
        message: str,
        connector_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, connector_id)
        self.status_code = status_code


class RateLimitError(SalesforceAPIError):
    """Raised when the org's API request limit is exceeded."""

    def __init__(
        self,
        message: str,
        connector_id: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, connector_id, status_code=429)
        self.retry_after = retry_after


def parse_retry_after(value: str | None, default: int = DEFAULT_RETRY_AFTER) -> int:
    """Read a Retry-After header as whole seconds.

    Fractional values are rounded up. HTTP-date and other values fall back
    to ``default``.
    """
    if not value:
        return default
    try:
        seconds = math.ceil(float(value))
    except (ValueError, OverflowError):
        return default
    return seconds if seconds >= 0 else default


class BaseAPIConnector(BaseConnector):
    """Base class for Salesforce REST connectors.

    Provides:
    - Login against the production, sandbox or custom login host
    - HTTP client with configurable timeout
    - Exponential backoff retry on server and network errors
    - Versioned data API paths (standard or Tooling API)
    """

    def __init__(
        self,
        connector_id: str,
        name: str,
        config: dict[str, Any],
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize API connector.

        Args:
            connector_id: Unique identifier
            name: Human-readable name
            config: Client options with keys:
                - client_id, client_secret: Connected app credentials
                - username, password, security_token: User credentials
                - host: Login host or URL override (optional)
                - sandbox: Log in through the sandbox host (optional)
                - api_version: REST API version (default: SFDC_API_VERSION)
                - use_tooling_api: Route data calls through the Tooling API
                - timeout: Request timeout in seconds
                - max_retries: Maximum retry attempts (default: 3)
                - retry_delay: Initial retry delay in seconds (default: 1)
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(connector_id, name, config)
        self._client: httpx.Client | None = None
        self._transport = transport
        self._timeout = config.get("timeout") or settings.SFDC_DEFAULT_TIMEOUT
        self._api_version = config.get("api_version") or settings.SFDC_API_VERSION

        # Retry settings
        self._max_retries = config.get("max_retries", settings.SFDC_MAX_RETRIES)
        self._retry_delay = config.get("retry_delay", settings.SFDC_RETRY_DELAY)

        self._tokens = OAuth2TokenManager(
            {
                "token_url": self.token_url,
                "client_id": config.get("client_id"),
                "client_secret": config.get("client_secret"),
                "username": config.get("username"),
                "password": config.get("password"),
                "security_token": config.get("security_token"),
            },
            timeout=self._timeout,
            transport=transport,
        )

    @property
    def login_url(self) -> str:
        """Base URL of the login host for this configuration."""
        host = self.config.get("host")
        if not host:
            host = (
                settings.SFDC_SANDBOX_HOST
                if self.config.get("sandbox")
                else settings.SFDC_LOGIN_HOST
            )
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        return host.rstrip("/")

    @property
    def token_url(self) -> str:
        return f"{self.login_url}/services/oauth2/token"

    @property
    def data_path(self) -> str:
        """Versioned path prefix for data calls."""
        path = f"/services/data/v{self._api_version}"
        if self.config.get("use_tooling_api"):
            path += "/tooling"
        return path

    def _secrets(self) -> list[str]:
        return [
            self.config.get("client_secret") or "",
            self.config.get("password") or "",
            self.config.get("security_token") or "",
        ]

    def connect(self) -> None:
        """Log in and bind the HTTP client to the instance URL."""
        if self._connected:
            return

        try:
            token = self._tokens.get_token()
        except OAuth2Error as e:
            raise ConnectionError(
                f"Salesforce login failed: "
                f"{sanitize_error_message(str(e), self._secrets())}",
                self.connector_id,
            ) from e

        self._client = httpx.Client(
            base_url=token.instance_url,
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
            follow_redirects=True,
        )
        self._connected = True
        self._log("info", f"Connected to {token.instance_url}")

    def disconnect(self) -> None:
        """Disconnect from API."""
        if self._client:
            self._client.close()
            self._client = None
        self._connected = False

    def test_connection(self) -> ConnectionTestResult:
        """Test API connection by logging in and listing API limits."""
        start_time = time.time()

        try:
            self.connect()
            response = self._get(f"/services/data/v{self._api_version}/limits")
            latency_ms = (time.time() - start_time) * 1000
            limits = response.json().get("DailyApiRequests", {})
            return ConnectionTestResult(
                success=True,
                message=f"Successfully connected to {self._client.base_url}",
                latency_ms=round(latency_ms, 2),
                details={
                    "api_version": self._api_version,
                    "tooling_api": bool(self.config.get("use_tooling_api")),
                    "daily_api_requests_remaining": limits.get("Remaining"),
                },
            )
        except ConnectorError as e:
            latency_ms = (time.time() - start_time) * 1000
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: "
                f"{sanitize_error_message(str(e), self._secrets())[:200]}",
                latency_ms=round(latency_ms, 2),
                details={"error_type": type(e).__name__},
            )
        finally:
            self.disconnect()

    def _auth_headers(self) -> dict[str, str]:
        token = self._tokens.get_token()
        return {
            "Authorization": f"{token.token_type} {token.access_token}",
            "Accept": "application/json",
        }

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path relative to the instance URL
            params: Query parameters

        Returns:
            HTTP response

        Raises:
            SalesforceAPIError: If request fails after retries
            RateLimitError: If the org's request limit is exceeded
        """
        if not self._client:
            self.connect()

        assert self._client is not None

        last_error: Exception | None = None
        relogged = False
        attempt = 0

        while attempt <= self._max_retries:
            try:
                response = self._client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    headers=self._auth_headers(),
                )

                # Expired session: log in again once, without using a retry
                if response.status_code == 401 and not relogged:
                    self._log("info", "Session expired, logging in again")
                    self._tokens.invalidate()
                    relogged = True
                    continue

                if response.status_code == 429:
                    retry_seconds = parse_retry_after(response.headers.get("Retry-After"))
                    raise RateLimitError(
                        f"Rate limit exceeded, retry after {retry_seconds}s",
                        self.connector_id,
                        retry_after=retry_seconds,
                    )

                # Server errors are retried
                if response.status_code >= 500:
                    raise SalesforceAPIError(
                        f"Server error: {response.status_code}",
                        self.connector_id,
                        status_code=response.status_code,
                    )

                # Client errors are not
                if response.status_code >= 400:
                    raise SalesforceAPIError(
                        f"Client error: {response.status_code} - "
                        f"{self._error_detail(response)}",
                        self.connector_id,
                        status_code=response.status_code,
                    )

                return response

            except RateLimitError:
                raise
            except SalesforceAPIError as e:
                last_error = e
                if e.status_code and e.status_code < 500:
                    raise

            except httpx.TransportError as e:
                last_error = e

            except OAuth2Error as e:
                raise ConnectionError(
                    f"Salesforce login failed: "
                    f"{sanitize_error_message(str(e), self._secrets())}",
                    self.connector_id,
                ) from e

            # Exponential backoff
            if attempt < self._max_retries:
                delay = self._retry_delay * (2**attempt)
                self._log(
                    "warning", f"Request failed, retrying in {delay}s: {last_error}"
                )
                time.sleep(delay)
            attempt += 1

        raise SalesforceAPIError(
            f"Request failed after {self._max_retries + 1} attempts: {last_error}",
            self.connector_id,
        )

    def _error_detail(self, response: httpx.Response) -> str:
        """Summarize a Salesforce error body ([{message, errorCode}, ...])."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, list) and body and isinstance(body[0], dict):
            first = body[0]
            return f"{first.get('errorCode', 'UNKNOWN')}: {first.get('message', '')}"[:200]
        return str(body)[:200]

    def _get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make a GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters

        Returns:
            HTTP response
        """
        return self._request("GET", endpoint, params=params)
