"""Argument parser for the LLM profile vault CLI.

Updates:
  v0.2.0 - 2025-12-18 - Add test prompt and encryption status commands.
  v0.1.0 - 2025-12-15 - Add profile list/create/update/delete/activate commands.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

from models.llm_profile import PROVIDER_TYPES

if TYPE_CHECKING:
    from collections.abc import Sequence


def _add_profile_fields(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required, help="Display name for the profile.")
    parser.add_argument(
        "--provider",
        dest="provider_type",
        choices=PROVIDER_TYPES,
        required=required,
        help="Provider type.",
    )
    parser.add_argument(
        "--endpoint",
        dest="endpoint_url",
        required=required,
        help="Base endpoint URL (e.g. http://localhost:8080).",
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        default=None,
        help="API key; required for remote providers.",
    )
    parser.add_argument(
        "--model",
        dest="model_id",
        default=None,
        help="Model or deployment identifier.",
    )
    parser.add_argument(
        "--consent",
        action="store_true",
        help="Record consent to send prompts to a remote provider (timestamped now).",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed CLI arguments for the profile vault tool."""
    parser = argparse.ArgumentParser(description="LLM profile vault and test prompt runner")
    parser.add_argument(
        "--logging-config",
        type=Path,
        default=None,
        help="Path to logging configuration file (INI format)",
    )
    parser.add_argument(
        "--print-settings",
        action="store_true",
        help="Print resolved settings and exit",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("list", help="List stored profiles with credentials redacted.")

    create_parser = subparsers.add_parser("create", help="Create a new LLM profile.")
    _add_profile_fields(create_parser, required=True)

    update_parser = subparsers.add_parser("update", help="Update fields of an existing profile.")
    update_parser.add_argument("id", help="Profile UUID.")
    _add_profile_fields(update_parser, required=False)
    update_parser.add_argument(
        "--clear-model",
        action="store_true",
        help="Remove the stored model identifier.",
    )

    delete_parser = subparsers.add_parser("delete", help="Delete a profile.")
    delete_parser.add_argument("id", help="Profile UUID.")
    delete_parser.add_argument(
        "--activate-alternate",
        dest="activate_alternate_id",
        default=None,
        help="Profile UUID to activate when deleting the active profile.",
    )

    activate_parser = subparsers.add_parser("activate", help="Mark a profile as active.")
    activate_parser.add_argument("id", help="Profile UUID.")

    test_parser = subparsers.add_parser(
        "test",
        help="Send a single test prompt to the active (or given) profile.",
    )
    test_parser.add_argument(
        "--profile",
        dest="profile_id",
        default=None,
        help="Profile UUID (defaults to the active profile).",
    )
    test_parser.add_argument(
        "--prompt",
        dest="prompt_text",
        default=None,
        help='Prompt text (defaults to "Hello, can you respond?").',
    )

    subparsers.add_parser("status", help="Show encryption availability and the active profile.")

    return parser.parse_args(argv)


__all__ = ["parse_args"]
