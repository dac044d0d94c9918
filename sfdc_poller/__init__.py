"""Salesforce SOQL polling connector.

This package extracts Salesforce records with SOQL, converts each row
into a normalized event and optionally repeats on a fixed interval,
resuming from a persisted watermark.

Usage:
    # One-shot extraction to stdout:
    sfdc-poller run --config config/salesforce.yaml

    # Print the SOQL the next cycle would issue:
    sfdc-poller query --config config/salesforce.yaml

Modules:
    cli: Command-line entry point
    config: Environment defaults
    connectors: Salesforce REST client, OAuth2 login and config models
    etl: Query builder, watermark store, extract/transform/load stages
    scheduler: Interval poll loop with cooperative cancellation
    utils: Date parsing and log sanitization helpers
"""

__version__ = "0.2.0"
