"""Shared utility functions for the Salesforce poller."""

from .date_parser import parse_flexible_datetime
from .sanitization import sanitize_error_message

__all__ = ["parse_flexible_datetime", "sanitize_error_message"]
