"""Shared configuration for the Salesforce poller.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Salesforce endpoints
SFDC_API_VERSION = os.getenv("SFDC_API_VERSION", "59.0")
SFDC_LOGIN_HOST = os.getenv("SFDC_LOGIN_HOST", "login.salesforce.com")
SFDC_SANDBOX_HOST = os.getenv("SFDC_SANDBOX_HOST", "test.salesforce.com")

# HTTP behaviour
SFDC_DEFAULT_TIMEOUT = float(os.getenv("SFDC_DEFAULT_TIMEOUT", "30"))
SFDC_MAX_RETRIES = int(os.getenv("SFDC_MAX_RETRIES", "3"))
SFDC_RETRY_DELAY = float(os.getenv("SFDC_RETRY_DELAY", "1"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
