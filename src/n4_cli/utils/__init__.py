"""Utility modules."""

from n4_cli.utils.validation import (
    ensure_url_protocol,
    validate_bucket_name,
    validate_domain,
    validate_project_name,
)

__all__ = [
    "ensure_url_protocol",
    "validate_bucket_name",
    "validate_domain",
    "validate_project_name",
]
