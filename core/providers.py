"""Provider strategies for test prompt requests.

Each provider type maps to a :class:`ProviderStrategy` bundling how to build
the HTTP request, how to read a successful payload, and how to translate an
error response into a ``(error_code, error_message)`` pair. Adding a provider
means adding one entry to :data:`PROVIDER_STRATEGIES`.

Updates:
  v0.2.1 - 2025-12-19 - Clip provider-reported model names; drop unused strategy lookup helper.
  v0.2.0 - 2025-12-17 - Classify transport failures from httpx and OSError chains.
  v0.1.1 - 2025-12-16 - Recurse through content parts and skip echoed input text.
  v0.1.0 - 2025-12-15 - Introduce llama.cpp, Azure OpenAI, and custom strategies.
"""

from __future__ import annotations

import errno
import json
import re
import socket
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import httpx

if TYPE_CHECKING:
    from models.llm_profile import LLMProfile, ProviderType

DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
TEST_PROMPT_MAX_TOKENS = 100
TEST_PROMPT_TEMPERATURE = 0.7

NETWORK_ERROR_CODE = "NETWORK_ERROR"
TIMEOUT_ERROR_CODE = "TIMEOUT"
INVALID_RESPONSE_CODE = "INVALID_RESPONSE"
MAX_MODEL_NAME_LENGTH = 200

_ERRNO_PATTERN = re.compile(r"\[Errno (-?\d+)\]")


@dataclass(frozen=True, slots=True)
class ProviderOptions:
    """Request knobs shared by every provider strategy."""

    azure_api_version: str = DEFAULT_AZURE_API_VERSION
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ProviderSuccess:
    response_text: str | None
    model_name: str | None


@dataclass(frozen=True, slots=True)
class ProviderError:
    error_code: str
    error_message: str


@dataclass(frozen=True, slots=True)
class ProviderStrategy:
    """Build/parse/map-error triple for a single provider type."""

    build_request: Callable[[LLMProfile, str, str, ProviderOptions], ProviderRequest]
    parse_success: Callable[[str], ProviderSuccess]
    map_error: Callable[[int, str, str], ProviderError]


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _safe_json(raw_body: str) -> object:
    try:
        return json.loads(raw_body)
    except (json.JSONDecodeError, ValueError):
        return None


def _join_endpoint(endpoint_url: str, path: str) -> str:
    return f"{endpoint_url.strip().rstrip('/')}{path}"


def _chat_body(messages: list[dict[str, str]]) -> dict[str, Any]:
    return {
        "messages": messages,
        "max_tokens": TEST_PROMPT_MAX_TOKENS,
        "temperature": TEST_PROMPT_TEMPERATURE,
    }


def extract_text(node: object) -> str | None:
    """Return the first non-empty text found in a content node.

    Strings are returned as-is, lists are joined, and mappings are searched
    through their ``text``/``content``/``output_text``/``value`` keys. Nodes
    tagged ``type: "input_text"`` echo the prompt and are skipped.
    """
    if isinstance(node, str):
        return node if node.strip() else None
    if isinstance(node, list):
        parts = [text for item in cast("list[object]", node) if (text := extract_text(item))]
        joined = "".join(parts)
        return joined if joined.strip() else None
    if isinstance(node, Mapping):
        mapping = cast("Mapping[str, object]", node)
        if mapping.get("type") == "input_text":
            return None
        for key in ("text", "content", "output_text", "value"):
            text = extract_text(mapping.get(key))
            if text:
                return text
    return None


def extract_response_text(payload: Mapping[str, Any]) -> str | None:
    """Locate assistant text across OpenAI, Responses-style, and llama.cpp payloads."""
    candidates: list[object] = []
    choices = payload.get("choices")
    if isinstance(choices, list):
        for choice in cast("list[object]", choices):
            if not isinstance(choice, Mapping):
                continue
            choice_map = cast("Mapping[str, Any]", choice)
            message = choice_map.get("message")
            if isinstance(message, Mapping):
                candidates.append(cast("Mapping[str, Any]", message).get("content"))
            delta = choice_map.get("delta")
            if isinstance(delta, Mapping):
                candidates.append(cast("Mapping[str, Any]", delta).get("content"))
            candidates.append(choice_map.get("text"))
    candidates.append(payload.get("output_text"))
    output = payload.get("output")
    if isinstance(output, list):
        for item in cast("list[object]", output):
            if isinstance(item, Mapping):
                candidates.append(cast("Mapping[str, Any]", item).get("content"))
            else:
                candidates.append(item)
    candidates.append(payload.get("text"))

    for candidate in candidates:
        text = extract_text(candidate)
        if text:
            return text
    return None


def parse_chat_completion(raw_body: str) -> ProviderSuccess:
    """Extract response text and model name from a successful provider body."""
    parsed = _safe_json(raw_body)
    if not isinstance(parsed, Mapping):
        return ProviderSuccess(response_text=None, model_name=None)
    payload = cast("Mapping[str, Any]", parsed)
    model = payload.get("model")
    model_name: str | None = None
    if isinstance(model, str):
        # Clipped to the result schema bound.
        model_name = model.strip()[:MAX_MODEL_NAME_LENGTH].rstrip() or None
    return ProviderSuccess(response_text=extract_response_text(payload), model_name=model_name)


@dataclass(frozen=True, slots=True)
class _ErrorDetails:
    code: str | None
    message: str | None
    type: str | None


def _error_details(raw_body: str) -> _ErrorDetails:
    parsed = _safe_json(raw_body)
    if not isinstance(parsed, Mapping):
        return _ErrorDetails(None, None, None)
    payload = cast("Mapping[str, Any]", parsed)
    source = payload.get("error")
    details = cast("Mapping[str, Any]", source) if isinstance(source, Mapping) else payload
    code, message, kind = details.get("code"), details.get("message"), details.get("type")
    return _ErrorDetails(
        code=code.strip() if isinstance(code, str) and code.strip() else None,
        message=message.strip() if isinstance(message, str) and message.strip() else None,
        type=kind.strip() if isinstance(kind, str) and kind.strip() else None,
    )


# ---------------------------------------------------------------------------
# llama.cpp
# ---------------------------------------------------------------------------

_LLAMA_ERROR_MESSAGES = {
    "invalid_request": "Invalid request format. Check prompt syntax.",
    "server_error": "llama.cpp server error. Check server logs.",
}


def _build_llama_request(
    profile: LLMProfile, prompt_text: str, _api_key: str, options: ProviderOptions
) -> ProviderRequest:
    return ProviderRequest(
        url=_join_endpoint(profile.endpoint_url, "/v1/chat/completions"),
        headers={"content-type": "application/json"},
        body=_chat_body(
            [
                {"role": "system", "content": options.system_prompt},
                {"role": "user", "content": prompt_text},
            ]
        ),
    )


def _map_llama_error(status: int, raw_body: str, url: str) -> ProviderError:
    details = _error_details(raw_body)
    # llama.cpp reports a numeric code and puts the category in ``type``.
    code = details.code or details.type or str(status)
    message = _LLAMA_ERROR_MESSAGES.get(code, f"Request to {url} failed with status {code}")
    return ProviderError(error_code=code, error_message=message)


# ---------------------------------------------------------------------------
# Azure OpenAI
# ---------------------------------------------------------------------------

_AZURE_ERROR_MESSAGES = {
    "401": "Invalid API key. Check your credentials.",
    "DEPLOYMENTNOTFOUND": "Model deployment not found. Verify deployment name.",
    "429": "Rate limit exceeded. Try again in a few minutes.",
    "INTERNALSERVERERROR": "Azure service error. Check Azure status page.",
    "503": "Service temporarily unavailable. Retry later.",
}
_AZURE_CREDENTIAL_HINTS = ("subscription key", "credential")


def _build_azure_request(
    profile: LLMProfile, prompt_text: str, api_key: str, options: ProviderOptions
) -> ProviderRequest:
    path = f"/chat/completions?api-version={options.azure_api_version}"
    return ProviderRequest(
        url=_join_endpoint(profile.endpoint_url, path),
        headers={"content-type": "application/json", "api-key": api_key},
        body=_chat_body([{"role": "user", "content": prompt_text}]),
    )


def _map_azure_error(status: int, raw_body: str, _url: str) -> ProviderError:
    details = _error_details(raw_body)
    code = details.code or str(status)
    lookup = code.upper()
    if lookup not in _AZURE_ERROR_MESSAGES and str(status) in _AZURE_ERROR_MESSAGES:
        lookup = str(status)
    message = _AZURE_ERROR_MESSAGES.get(lookup)
    if lookup == "401" and details.message:
        lowered = details.message.lower()
        if any(hint in lowered for hint in _AZURE_CREDENTIAL_HINTS):
            message = details.message
    if message is None:
        message = details.message or f"Azure OpenAI request failed with status {status}"
    return ProviderError(error_code=code, error_message=message)


# ---------------------------------------------------------------------------
# OpenAI-compatible custom endpoints
# ---------------------------------------------------------------------------


def _build_custom_request(
    profile: LLMProfile, prompt_text: str, api_key: str, _options: ProviderOptions
) -> ProviderRequest:
    headers = {"content-type": "application/json"}
    trimmed_key = api_key.strip()
    if trimmed_key:
        headers["Authorization"] = (
            trimmed_key if trimmed_key.startswith("Bearer ") else f"Bearer {trimmed_key}"
        )
    body = _chat_body([{"role": "user", "content": prompt_text}])
    if profile.model_id:
        body["model"] = profile.model_id
    return ProviderRequest(
        url=_join_endpoint(profile.endpoint_url, "/chat/completions"),
        headers=headers,
        body=body,
    )


def _map_generic_error(status: int, raw_body: str, _url: str) -> ProviderError:
    details = _error_details(raw_body)
    return ProviderError(
        error_code=details.code or str(status),
        error_message=details.message or f"Request failed with status {status}",
    )


PROVIDER_STRATEGIES: dict[ProviderType, ProviderStrategy] = {
    "llama.cpp": ProviderStrategy(
        build_request=_build_llama_request,
        parse_success=parse_chat_completion,
        map_error=_map_llama_error,
    ),
    "azure": ProviderStrategy(
        build_request=_build_azure_request,
        parse_success=parse_chat_completion,
        map_error=_map_azure_error,
    ),
    "custom": ProviderStrategy(
        build_request=_build_custom_request,
        parse_success=parse_chat_completion,
        map_error=_map_generic_error,
    ),
}


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def _code_for(exc: BaseException) -> str | None:
    explicit = getattr(exc, "code", None)
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(exc, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(exc, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(exc, OSError) and isinstance(exc.errno, int):
        return errno.errorcode.get(exc.errno)
    match = _ERRNO_PATTERN.search(str(exc))
    if match is not None:
        number = int(match.group(1))
        # getaddrinfo failures carry negative EAI_* numbers.
        return "ENOTFOUND" if number < 0 else errno.errorcode.get(number)
    return None


def derive_network_error_code(exc: BaseException) -> tuple[str, str]:
    """Return ``(code, message)`` for the first recognisable error in *exc*'s chain."""
    for candidate in _exception_chain(exc):
        code = _code_for(candidate)
        if code:
            message = str(candidate).strip() or code
            return code, message
    return NETWORK_ERROR_CODE, str(exc).strip() or "Network request failed"


def classify_network_error(exc: BaseException, url: str, timeout_ms: int) -> ProviderError:
    """Translate a transport exception into a friendly :class:`ProviderError`."""
    code, message = derive_network_error_code(exc)
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.netloc.decode('ascii')}"
    seconds = f"{timeout_ms / 1000:g}"
    match code:
        case "ECONNREFUSED":
            return ProviderError(code, f"Unable to connect to {origin}. Is the server running?")
        case "ETIMEDOUT":
            return ProviderError(
                TIMEOUT_ERROR_CODE,
                f"Request timed out after {seconds} seconds. Server may be slow.",
            )
        case "ENOTFOUND":
            return ProviderError(code, f"Could not resolve hostname {parsed.host}. Check the URL.")
        case "ECONNRESET":
            return ProviderError(code, "Connection reset by server. Check server logs.")
        case _:
            return ProviderError(NETWORK_ERROR_CODE, message)


__all__ = [
    "DEFAULT_AZURE_API_VERSION",
    "INVALID_RESPONSE_CODE",
    "MAX_MODEL_NAME_LENGTH",
    "NETWORK_ERROR_CODE",
    "PROVIDER_STRATEGIES",
    "ProviderError",
    "ProviderOptions",
    "ProviderRequest",
    "ProviderStrategy",
    "ProviderSuccess",
    "TIMEOUT_ERROR_CODE",
    "classify_network_error",
    "derive_network_error_code",
    "extract_response_text",
    "extract_text",
    "parse_chat_completion",
]
