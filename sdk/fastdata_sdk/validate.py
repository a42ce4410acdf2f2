"""
Input validation for FastData SDK.

This module provides validation utilities:
- Required-argument checks for action builders
- NEAR account id validation
- Upload path validation

Invariants:
    - Validation errors are deterministic
    - Error messages name the offending argument
"""

from __future__ import annotations

import re
from typing import Any, Optional

from .config import MAX_RELATIVE_PATH_LENGTH
from .errors import PathError, ValidationError

_IMPLICIT_ACCOUNT = re.compile(r"^[0-9a-f]{64}$")
_ETH_IMPLICIT_ACCOUNT = re.compile(r"^0x[0-9a-f]{40}$")
_DETERMINISTIC_ACCOUNT = re.compile(r"^0s[0-9a-f]{40}$")
_NAMED_ACCOUNT = re.compile(r"^(([a-z\d]+[-_])*[a-z\d]+\.)*([a-z\d]+[-_])*[a-z\d]+$")


def require_non_empty(value: Any, name: str) -> str:
    """Return value as a string, raising if it is missing or blank.

    Args:
        value: Argument value (str or int)
        name: Argument name for the error message

    Raises:
        ValidationError: If value is None or blank
    """
    text = "" if value is None or isinstance(value, bool) else str(value)
    if not text.strip():
        raise ValidationError(f"{name} must be a non-empty string", field_name=name)
    return text


def is_valid_account_id(account_id: Optional[str]) -> bool:
    """Check a NEAR account id.

    Accepts implicit (64 hex), ETH-implicit (0x + 40 hex), deterministic
    (0s + 40 hex) and named accounts of 2-64 characters. The 'system'
    account is reserved.
    """
    if not account_id:
        return False
    if account_id == "system":
        return False
    if (
        _IMPLICIT_ACCOUNT.match(account_id)
        or _ETH_IMPLICIT_ACCOUNT.match(account_id)
        or _DETERMINISTIC_ACCOUNT.match(account_id)
    ):
        return True
    if len(account_id) < 2 or len(account_id) > 64:
        return False
    return _NAMED_ACCOUNT.match(account_id) is not None


def require_account_id(value: Any, name: str) -> str:
    """Like require_non_empty, but also checks account id syntax."""
    account_id = require_non_empty(value, name)
    if not is_valid_account_id(account_id):
        raise ValidationError(f"{name} is not a valid account id: '{account_id}'", field_name=name)
    return account_id


def format_account_id(account_id: str) -> str:
    """Shorten implicit accounts for display."""
    if not account_id:
        return ""
    if len(account_id) == 64:
        return f"{account_id[:8]}...{account_id[-8:]}"
    return account_id


def normalize_relative_path(path: str) -> str:
    """Validate an upload path and strip its leading slash.

    Raises:
        PathError: On '..' segments, empty paths or paths over the length limit
    """
    normalized = path.lstrip("/")
    segments = normalized.replace("\\", "/").split("/")
    if ".." in segments:
        raise PathError("Invalid path: '..' segments not allowed", path)
    if not normalized or normalized.endswith("/"):
        raise PathError(f"Invalid path: missing file name in '{path}'", path)
    if len(normalized) > MAX_RELATIVE_PATH_LENGTH:
        raise PathError(
            f"Path too long ({len(normalized)} chars, max {MAX_RELATIVE_PATH_LENGTH}): {normalized}",
            path,
        )
    return normalized
