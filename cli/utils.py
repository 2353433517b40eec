"""Shared CLI utility functions for vault commands.

Updates:
  v0.1.0 - 2025-12-15 - Extract JSON output, error output, masking, and path helpers.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any


def print_json(payload: Any) -> None:
    """Write *payload* to stdout as indented JSON."""
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def print_error(code: str, message: str) -> None:
    print(f"{code}: {message}", file=sys.stderr)


def mask_secret(value: str | None) -> str:
    """Return an obfuscated representation of secret configuration values."""
    if not value:
        return "not set"
    secret = value.strip()
    if len(secret) <= 6:
        return "set (****)"
    return f"set ({secret[:4]}...{secret[-4:]})"


def describe_path(path_value: object, *, expect_directory: bool) -> str:
    """Return a human-friendly description of *path_value* suitability."""
    if path_value is None:
        return "not set"
    resolved = Path(str(path_value)).expanduser()
    if resolved.exists():
        if expect_directory and not resolved.is_dir():
            return f"{resolved} (exists but is not a directory)"
        if not expect_directory and resolved.is_dir():
            return f"{resolved} (exists but is a directory)"
        return f"{resolved} (exists)"
    parent = resolved.parent
    if parent.exists():
        return f"{resolved} (missing; will be created)"
    return f"{resolved} (missing; parent {parent} will be created)"


__all__ = ["describe_path", "mask_secret", "print_error", "print_json"]
