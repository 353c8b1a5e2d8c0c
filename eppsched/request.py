"""Extraction of prompts, headers and metadata from incoming requests."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eppsched.errors import BAD_REQUEST, SchedulingError

REQUEST_ID_HEADER_KEY = "x-request-id"


def extract_prompt_from_request_body(body: Mapping[str, Any]) -> str:
    """Return the prompt of a completions or chat-completions request body.

    Raises SchedulingError with a bad-request code when no usable prompt is present.
    """
    if "messages" in body:
        return _extract_prompt_from_messages(body)
    return _extract_prompt_field(body)


def _extract_prompt_field(body: Mapping[str, Any]) -> str:
    if "prompt" not in body:
        raise SchedulingError(BAD_REQUEST, "prompt not found in request")
    prompt = body["prompt"]
    if not isinstance(prompt, str):
        raise SchedulingError(BAD_REQUEST, "prompt is not a string")
    return prompt


def _extract_prompt_from_messages(body: Mapping[str, Any]) -> str:
    if "messages" not in body:
        raise SchedulingError(BAD_REQUEST, "messages not found in request")
    messages = body["messages"]
    if not isinstance(messages, list):
        raise SchedulingError(BAD_REQUEST, "messages is not a list")
    if not messages:
        raise SchedulingError(BAD_REQUEST, "messages is empty")

    parts = []
    for message in messages:
        if not isinstance(message, Mapping):
            continue
        content = message.get("content")
        role = message.get("role")
        if isinstance(content, str) and isinstance(role, str):
            parts.append(construct_chat_message(role, content))
    return "".join(parts)


def construct_chat_message(role: str, content: str) -> str:
    """Render one chat message in the chat-template form used for prefix matching."""
    return f"<|im_start|>{role}\n{content}<|im_end|>\n"


def extract_header_value(
    headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None, header_key: str
) -> str:
    """Return the value of ``header_key`` (case-insensitive), or ``""`` if absent."""
    if not headers:
        return ""
    wanted = header_key.lower()
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    for key, raw_value in pairs:
        if key.lower() == wanted:
            if isinstance(raw_value, (bytes, bytearray)):
                return bytes(raw_value).decode("utf-8", errors="replace")
            return str(raw_value)
    return ""


def _to_plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value


def extract_metadata_values(filter_metadata: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return filter metadata as plain nested dicts and lists, keyed by filter name."""
    if not filter_metadata:
        return {}
    return {key: _to_plain(value) for key, value in filter_metadata.items()}