"""CLI command handlers for the LLM profile vault.

Handlers are coroutines returning a process exit code. Domain failures
(:class:`core.exceptions.LLMVaultError`) propagate to :func:`main.main`, which
renders them as ``code: message``.

Updates:
  v0.2.0 - 2025-12-18 - Add test prompt and status commands.
  v0.1.0 - 2025-12-15 - Add profile CRUD command handlers.
"""

from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from core.factory import ProfileServices

from .utils import print_json

CommandHandler = Callable[[ProfileServices, argparse.Namespace, logging.Logger], Awaitable[int]]

EXIT_TEST_PROMPT_FAILED = 4


@dataclass(frozen=True)
class CommandSpec:
    """Metadata for dispatching CLI command handlers."""

    handler: CommandHandler


def _consent_timestamp(args: argparse.Namespace) -> int | None:
    return int(time.time() * 1000) if getattr(args, "consent", False) else None


async def run_list(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    result = await services.profile_service.list_profiles()
    logger.debug("Listed profiles", extra={"profile_count": len(result.profiles)})
    print_json(result.to_dict())
    return 0


async def run_create(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    payload: dict[str, Any] = {
        "name": args.name,
        "providerType": args.provider_type,
        "endpointUrl": args.endpoint_url,
        "apiKey": args.api_key or "",
        "modelId": args.model_id,
        "consentTimestamp": _consent_timestamp(args),
    }
    result = await services.profile_service.create_profile(payload)
    if result.warning:
        logger.warning(result.warning)
    print_json(result.to_dict())
    return 0


async def run_update(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    payload: dict[str, Any] = {"id": args.id}
    for option, key in (
        ("name", "name"),
        ("provider_type", "providerType"),
        ("endpoint_url", "endpointUrl"),
        ("api_key", "apiKey"),
        ("model_id", "modelId"),
    ):
        value = getattr(args, option, None)
        if value is not None:
            payload[key] = value
    if getattr(args, "clear_model", False):
        payload["modelId"] = None
    consent = _consent_timestamp(args)
    if consent is not None:
        payload["consentTimestamp"] = consent
    result = await services.profile_service.update_profile(payload)
    if result.warning:
        logger.warning(result.warning)
    print_json(result.to_dict())
    return 0


async def run_delete(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    payload: dict[str, Any] = {"id": args.id}
    if args.activate_alternate_id:
        payload["activateAlternateId"] = args.activate_alternate_id
    result = await services.profile_service.delete_profile(payload)
    if result.requires_user_selection:
        logger.warning("No profile is active; run 'activate' to choose one.")
    print_json(result.to_dict())
    return 0


async def run_activate(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    result = await services.profile_service.activate_profile({"id": args.id})
    print_json(result.to_dict())
    return 0


async def run_test_prompt(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    request: dict[str, Any] = {}
    if args.profile_id:
        request["profileId"] = args.profile_id
    if args.prompt_text:
        request["promptText"] = args.prompt_text
    result = await services.test_prompt_service.test_prompt(request)
    print_json(result.to_dict())
    if not result.success:
        logger.warning(
            "Test prompt failed: %s",
            result.transcript.remediation or result.error_message,
        )
        return EXIT_TEST_PROMPT_FAILED
    return 0


async def run_status(
    services: ProfileServices,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> int:
    status = services.encryption_service.get_status()
    listing = await services.profile_service.list_profiles()
    last_event = status.last_fallback_event
    print_json(
        {
            "encryptionAvailable": status.encryption_available,
            "lastFallbackEvent": last_event.to_dict() if last_event is not None else None,
            "activeProfileId": listing.active_profile_id,
            "profileCount": len(listing.profiles),
        }
    )
    return 0


COMMAND_SPECS: dict[str, CommandSpec] = {
    "list": CommandSpec(run_list),
    "create": CommandSpec(run_create),
    "update": CommandSpec(run_update),
    "delete": CommandSpec(run_delete),
    "activate": CommandSpec(run_activate),
    "test": CommandSpec(run_test_prompt),
    "status": CommandSpec(run_status),
}


__all__ = ["COMMAND_SPECS", "CommandSpec", "EXIT_TEST_PROMPT_FAILED"]
