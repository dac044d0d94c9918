"""OAuth2 authentication for the Salesforce REST API.

Supports the username-password flow used by connected apps, where the
password sent to the token endpoint is the account password followed
by the user's security token.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ....utils.sanitization import sanitize_error_message

logger = logging.getLogger(__name__)


@dataclass
class OAuth2Token:
    """Access token issued by the Salesforce token endpoint."""

    access_token: str
    instance_url: str
    issued_at: float
    token_type: str = "Bearer"


class OAuth2Error(Exception):
    """Raised when OAuth2 authentication fails."""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


def get_oauth2_token(
    config: dict[str, Any],
    timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> OAuth2Token:
    """Get an OAuth2 access token with the password grant.

    Args:
        config: OAuth2 configuration dictionary with keys:
            - token_url: Token endpoint URL
            - client_id: Connected app consumer key
            - client_secret: Connected app consumer secret
            - username: Salesforce username
            - password: Salesforce password
            - security_token: Security token appended to the password
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)

    Returns:
        OAuth2Token with the access token and the org's instance URL

    Raises:
        OAuth2Error: If token request fails
    """
    token_url = config.get("token_url")
    client_id = config.get("client_id")
    client_secret = config.get("client_secret")
    username = config.get("username")
    password = config.get("password")

    if not token_url or not client_id or not client_secret:
        raise OAuth2Error("token_url, client_id, and client_secret are required")
    if not username or not password:
        raise OAuth2Error("username and password are required for password grant")

    data = {
        "grant_type": "password",
        "client_id": client_id,
        "client_secret": client_secret,
        "username": username,
        "password": f"{password}{config.get('security_token') or ''}",
    }
    headers = {
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }
    secrets = [client_secret, password, config.get("security_token") or ""]

    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(token_url, data=data, headers=headers)

            if response.status_code == 200:
                try:
                    token_data = response.json()
                except ValueError as e:
                    raise OAuth2Error("Token response was not valid JSON") from e
                if not isinstance(token_data, dict):
                    raise OAuth2Error("Token response was not a JSON object")
                instance_url = token_data.get("instance_url")
                if not token_data.get("access_token") or not instance_url:
                    raise OAuth2Error("Token response missing access_token or instance_url")
                logger.info(f"OAuth2 token obtained for instance {instance_url}")
                return OAuth2Token(
                    access_token=token_data["access_token"],
                    instance_url=instance_url.rstrip("/"),
                    issued_at=time.time(),
                    token_type=token_data.get("token_type", "Bearer"),
                )

            # Handle error response
            try:
                error_data = response.json()
                error_code = error_data.get("error", "unknown")
                error_desc = error_data.get(
                    "error_description", f"Status {response.status_code}"
                )
            except ValueError:
                raise OAuth2Error(
                    f"Token request failed: {response.status_code} - "
                    f"{sanitize_error_message(response.text[:200], secrets)}"
                )
            raise OAuth2Error(f"{error_code}: {error_desc}", error_code)

    except httpx.ConnectError as e:
        raise OAuth2Error(f"Failed to connect to token endpoint: {e}") from e
    except httpx.TimeoutException as e:
        raise OAuth2Error(f"Token request timed out: {e}") from e
    except httpx.TransportError as e:
        raise OAuth2Error(f"Token request failed: {e}") from e


class OAuth2TokenManager:
    """Caches the session token and re-authenticates on demand.

    Salesforce does not return ``expires_in`` for the password flow, so
    the token is kept until the API rejects it and ``invalidate`` is
    called.
    """

    def __init__(
        self,
        config: dict[str, Any],
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config
        self.timeout = timeout
        self.transport = transport
        self._token: OAuth2Token | None = None

    def get_token(self) -> OAuth2Token:
        """Get a valid token, logging in if needed.

        Raises:
            OAuth2Error: If unable to get a token
        """
        if self._token is None:
            self._token = get_oauth2_token(
                self.config, timeout=self.timeout, transport=self.transport
            )
        return self._token

    def invalidate(self) -> None:
        """Invalidate current token."""
        self._token = None
