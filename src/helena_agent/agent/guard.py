"""Best-effort repair and detection of malformed tool calls.

Local models occasionally emit tool-call arguments that are almost JSON
(trailing commas, single quotes, bare keys) or print a tool call into their
plain-text answer instead of using the native tool-call channel. The repair
path is applied to invalid tool calls before they are dropped; the content
scan is advisory only and never feeds calls back into the loop.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
_TRAILING_COMMA_ARRAY = re.compile(r",\s*]")
_BARE_KEY = re.compile(r"(\{|,)\s*([a-zA-Z_]\w*)\s*:")

_EMBEDDED_PATTERNS = (
    re.compile(r'\{\s*"name"\s*:\s*"([^"]+)"\s*,\s*"arguments"\s*:\s*(\{[^}]*\})\s*\}'),
    re.compile(
        r'\[\s*\{\s*"name"\s*:\s*"([^"]+)"\s*,\s*"arguments"\s*:\s*(\{[^}]*\})\s*\}\s*\]'
    ),
    re.compile(r'\{\s*"tool"\s*:\s*"([^"]+)"\s*,\s*"input"\s*:\s*(\{[^}]*\})\s*\}'),
)


@dataclass(slots=True)
class EmbeddedToolCall:
    name: str
    arguments: dict[str, Any]


@dataclass(slots=True)
class ContentScanResult:
    detected: bool
    tool_calls: list[EmbeddedToolCall] = field(default_factory=list)


def repair_tool_call(raw_args: str | None) -> dict[str, Any] | None:
    """Return parsed arguments after progressively aggressive repair, or None."""
    if raw_args is None:
        return None
    text = raw_args.strip()
    if not text:
        return {}

    light = _strip_trailing_commas(text)
    if '"' not in light:
        light = light.replace("'", '"')
    parsed = _loads_object(light)
    if parsed is not None:
        return parsed

    aggressive = _strip_trailing_commas(text).replace("'", '"')
    aggressive = _BARE_KEY.sub(r'\1"\2":', aggressive)
    return _loads_object(aggressive)


def scan_for_embedded_tool_calls(text: str) -> ContentScanResult:
    if not text or len(text) < 10:
        return ContentScanResult(detected=False)

    found: list[EmbeddedToolCall] = []
    seen: set[tuple[str, str]] = set()
    for pattern in _EMBEDDED_PATTERNS:
        for match in pattern.finditer(text):
            name, raw_arguments = match.group(1), match.group(2)
            if (name, raw_arguments) in seen:
                continue
            seen.add((name, raw_arguments))
            arguments = repair_tool_call(raw_arguments) or {}
            found.append(EmbeddedToolCall(name=name, arguments=arguments))

    if found:
        logger.warning(
            "Tool-call-shaped JSON found in model text output: %s",
            ", ".join(call.name for call in found),
        )
    return ContentScanResult(detected=bool(found), tool_calls=found)


def _strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_ARRAY.sub("]", _TRAILING_COMMA_OBJECT.sub("}", text))


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None
