"""Runtime boot helpers for the LLM profile vault CLI.

Updates:
  v0.1.1 - 2025-12-16 - Quieten httpx request logs unless debugging.
  v0.1.0 - 2025-12-15 - Extract logging configuration helpers.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path


def setup_logging(logging_conf_path: Path | None) -> None:
    """Configure logging using *logging_conf_path* when available."""
    path = logging_conf_path or Path("config/logging.conf")
    if path.exists():
        try:
            logging.config.fileConfig(path, disable_existing_loggers=False)
            return
        except Exception:  # noqa: BLE001 - fall back to basicConfig below
            logging.getLogger("llm_vault.cli").warning(
                "Ignoring unusable logging configuration %s", path, exc_info=True
            )
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    configure_http_logging(debug=False)


def configure_http_logging(*, debug: bool) -> None:
    """Show or hide per-request logs from httpx and httpcore."""
    level = logging.DEBUG if debug else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)


__all__ = ["configure_http_logging", "setup_logging"]
