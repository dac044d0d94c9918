"""Authentication for the Salesforce REST API.

Supports:
- OAuth2 username-password flow (connected app + security token)
"""

from .oauth2 import OAuth2Error, OAuth2Token, OAuth2TokenManager, get_oauth2_token

__all__ = [
    "OAuth2Error",
    "OAuth2Token",
    "OAuth2TokenManager",
    "get_oauth2_token",
]
