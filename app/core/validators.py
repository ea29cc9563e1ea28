"""
Input Validators and Sanitizers

Checks applied before anything reaches the database:
- Short codes: base62 only, bounded length
- Target URLs: http(s), real host, bounded length, no script-like schemes
"""

import re
from typing import Optional
from urllib.parse import urlparse

MAX_URL_LENGTH = 2048


def sanitize_short_code(short_code: str) -> Optional[str]:
    """
    Normalize a short code taken from a path or request body.

    Args:
        short_code: The short code to sanitize

    Returns:
        Sanitized short code if valid, None otherwise
    """
    if not short_code or not isinstance(short_code, str):
        return None

    short_code = short_code.strip()

    if len(short_code) > 20:
        return None

    if not re.match(r'^[0-9a-zA-Z]+$', short_code):
        return None

    return short_code


def validate_url_length(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """
    Validate URL length to prevent DoS attacks.

    Args:
        url: The URL to validate
        max_length: Maximum allowed length (default: 2048 per RFC 7230)

    Returns:
        True if URL length is valid, False otherwise
    """
    return bool(url) and len(url) <= max_length


def url_rejection_reason(url: str) -> Optional[str]:
    """
    Explain why a URL cannot be shortened.

    Checks that URL is non-empty, within the length limit, uses http/https,
    has a valid domain, and doesn't contain malicious patterns.

    Returns:
        None when the URL is acceptable, otherwise a human-readable reason
    """
    if not url or not isinstance(url, str) or not url.strip():
        return "URL cannot be empty"

    if not validate_url_length(url):
        return f"URL is too long (max {MAX_URL_LENGTH} characters)"

    if not url.startswith(("http://", "https://")):
        return "URL must start with http:// or https://"

    try:
        result = urlparse(url)
    except ValueError:
        return "Invalid URL format"

    if not result.netloc:
        return "Invalid URL format: missing domain"

    domain = result.netloc.split(':')[0]
    if domain != 'localhost' and '.' not in domain:
        return "Invalid URL format: invalid domain"

    malicious_patterns = ['javascript:', 'data:', 'file:', 'vbscript:']
    url_lower = url.lower()
    if any(pattern in url_lower for pattern in malicious_patterns):
        return "URL contains a forbidden scheme"

    return None


def is_valid_url(url: str) -> bool:
    """True if the URL may be shortened."""
    return url_rejection_reason(url) is None
