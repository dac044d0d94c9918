"""Salesforce data source connector.

Provides login, object description and SOQL queries against the
Salesforce REST API, plus the validated extraction configuration.

Example usage:
    from sfdc_poller.connectors import SalesforceConnector, load_config

    config = load_config("config/salesforce.yaml")
    connector = SalesforceConnector(
        connector_id="sfdc-leads",
        name="Salesforce Leads",
        config=config.client_options(),
    )

    with connector:
        for row in connector.query("SELECT Id FROM Lead"):
            process(row)
"""

from .api import RateLimitError, SalesforceAPIError, SalesforceConnector
from .api.auth import OAuth2Error
from .base import (
    BaseConnector,
    ConnectionError,
    ConnectorError,
    ExtractionError,
    SchemaDiscoveryError,
)
from .config_loader import ConfigLoader, ConfigValidationError, load_config
from .models import (
    TRACKING_PLACEHOLDER,
    ConnectionTestResult,
    ExtractionConfig,
    KeyCasing,
    SchemaDiscoveryResult,
    SourceShape,
)

__all__ = [
    # Base
    "BaseConnector",
    "ConnectorError",
    "ConnectionError",
    "ExtractionError",
    "SchemaDiscoveryError",
    # Salesforce
    "SalesforceConnector",
    "SalesforceAPIError",
    "RateLimitError",
    "OAuth2Error",
    # Configuration
    "ConfigLoader",
    "ConfigValidationError",
    "load_config",
    "ExtractionConfig",
    "KeyCasing",
    "SourceShape",
    "TRACKING_PLACEHOLDER",
    # Results
    "ConnectionTestResult",
    "SchemaDiscoveryResult",
]
