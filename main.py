"""Application entry point for the LLM profile vault CLI.

Updates:
  v0.2.0 - 2025-12-18 - Run async command handlers through asyncio and map domain errors.
  v0.1.0 - 2025-12-15 - Wire settings, logging, and profile services.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from cli.commands import COMMAND_SPECS
from cli.parser import parse_args
from cli.runtime import setup_logging
from cli.settings_summary import print_settings_summary
from cli.utils import print_error
from config import SettingsError, load_settings
from core import LLMVaultError, build_profile_services

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_SETTINGS_ERROR = 2
EXIT_DOMAIN_ERROR = 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint that wires settings, services, and CLI commands."""
    args = parse_args(argv)
    setup_logging(args.logging_config)

    logger = logging.getLogger("llm_vault.cli")
    try:
        settings = load_settings()
    except SettingsError as exc:
        logger.error("Failed to load settings: %s", exc)
        return EXIT_SETTINGS_ERROR

    if args.print_settings:
        print_settings_summary(settings)
        return 0

    spec = COMMAND_SPECS.get(getattr(args, "command", None) or "")
    if spec is None:
        print_error("USAGE", "a command is required; run with --help for the list")
        return EXIT_SETTINGS_ERROR

    services = build_profile_services(settings)
    try:
        return asyncio.run(spec.handler(services, args, logger))
    except LLMVaultError as exc:
        logger.debug("Command failed", extra={"code": exc.code}, exc_info=True)
        print_error(exc.code, str(exc))
        return EXIT_DOMAIN_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
