"""Input validation utilities."""

import re

# Pages project names: lowercase alphanumerics and hyphens, no leading/trailing hyphen
PROJECT_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")

# R2 bucket names: lowercase alphanumerics and hyphens, 3-63 characters
BUCKET_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")

# Hostname made of dot-separated labels
DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,63}$"
)

PROTOCOL_RE = re.compile(r"^[a-zA-Z]+://")


def validate_project_name(value: str, max_length: int = 58) -> str:
    """Validate a Pages project name.

    Args:
        value: The project name to validate
        max_length: Maximum allowed length

    Returns:
        The validated name

    Raises:
        ValueError: If the name is invalid
    """
    if not value:
        raise ValueError("Project name cannot be empty")

    if len(value) > max_length:
        raise ValueError(f"Project name exceeds maximum length of {max_length}")

    if not PROJECT_NAME_RE.match(value):
        raise ValueError(
            "Invalid project name: use lowercase letters, numbers and hyphens, "
            "starting and ending with a letter or number"
        )

    return value


def validate_bucket_name(value: str) -> str:
    """Validate an R2 bucket name.

    Raises:
        ValueError: If the name is invalid
    """
    if not BUCKET_NAME_RE.match(value or ""):
        raise ValueError(
            "Invalid bucket name: 3-63 lowercase letters, numbers and hyphens"
        )
    return value


def validate_domain(value: str) -> str:
    """Validate and normalize (lowercase, no trailing dot) a domain name."""
    domain = (value or "").strip().rstrip(".").lower()
    if not DOMAIN_RE.match(domain):
        raise ValueError(f"Invalid domain: {value!r}")
    return domain


def ensure_url_protocol(url: str) -> str:
    """Prefix ``https://`` when the URL has no scheme."""
    url = url.strip()
    if not url or PROTOCOL_RE.match(url):
        return url
    return f"https://{url}"
