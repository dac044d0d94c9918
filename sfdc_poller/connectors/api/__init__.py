"""API connectors for Salesforce.

Provides login, describe and SOQL query access through the REST API.
"""

from .base_api import BaseAPIConnector, RateLimitError, SalesforceAPIError
from .salesforce import SalesforceConnector

__all__ = [
    "BaseAPIConnector",
    "RateLimitError",
    "SalesforceAPIError",
    "SalesforceConnector",
]
