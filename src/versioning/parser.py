"""Token parsing utilities for package requests."""

from typing import Optional, Tuple

from constants import Constants


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, range or None) using the rightmost-'@' rule.

    A leading '@' belongs to a scoped name (``@scope/pkg``) and never starts
    the range.
    """
    s = s.strip()
    at = s.rfind('@')
    if at <= 0:
        return s, None
    name = s[:at].strip()
    range_part = s[at + 1:].strip()
    return name, range_part or None


def parse_package_token(token: str) -> Tuple[str, str]:
    """Parse a CLI token such as ``lodash@^4`` into (name, range).

    A missing range means the ``latest`` dist-tag.

    Raises:
        ValueError: if the token has no package name.
    """
    name, range_ = tokenize_rightmost_at(token)
    if not name or name == '@':
        raise ValueError(f"Invalid package token: {token!r}")
    return name, range_ or Constants.DEFAULT_RANGE
