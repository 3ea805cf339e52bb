"""
Small input-hygiene helpers: HTML escaping for notification bodies,
email-shape validation, and constant-time secret comparison.
"""

import hmac
import html
import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def escape_html(value: str) -> str:
    """Escape &, <, >, double and single quotes."""
    return html.escape(value, quote=True)


def is_valid_email(value: str) -> bool:
    return len(value) <= 254 and bool(_EMAIL_RE.match(value))


def timing_safe_compare(provided: str, expected: str) -> bool:
    """Compare two secrets without leaking their content through timing."""
    return hmac.compare_digest(provided.encode(), expected.encode())
