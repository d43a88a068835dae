"""Detect tool-call markers in raw LLM output.

Parameters are parsed as data only (JSON, a quoted-key rewrite of object
literals, or ``key=value`` / ``key: value`` lines). Anything else falls back
to ``{"input": <raw text>}``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

MAX_FALLBACK_INPUT = 1000

# Ordered by priority; the earliest match in the text wins within a pattern.
XML_TOOL_PATTERNS = [
    re.compile(r"<tool_use\s+name=\"([^\"]+)\"[^>]*>(.*?)</tool_use>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<function_call\s+name=\"([^\"]+)\"[^>]*>(.*?)</function_call>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<invoke\s+name=\"([^\"]+)\"[^>]*>(.*?)</invoke>", re.IGNORECASE | re.DOTALL),
]
JSON_BLOCK_PATTERN = re.compile(r"```json\s*(\{.*?\})\s*```", re.DOTALL)
TOOL_BLOCK_PATTERN = re.compile(r"\[TOOL:([^\]]+)\](.*?)\[/TOOL\]", re.DOTALL)

DANGEROUS_PATTERNS = [
    re.compile(r"require\s*\("),
    re.compile(r"process\s*\."),
    re.compile(r"eval\s*\("),
    re.compile(r"\bFunction\s*\("),
    re.compile(r"constructor"),
    re.compile(r"\bglobal\s*\."),
    re.compile(r"__dirname|__filename"),
    re.compile(r"__import__|__class__|__globals__"),
]

_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)\s*:")
_KEY_VALUE_LINE = re.compile(r"^([A-Za-z_][\w-]*)\s*[=:]\s*(.*)$")


@dataclass
class ToolCallMatch:
    """Result of scanning a response for a tool call."""

    found: bool = False
    tool_id: str | None = None
    parameters: dict[str, Any] | None = None
    original_text: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def match_tool_calling(text: str) -> ToolCallMatch:
    """Return the first tool call found in ``text``."""
    if not text:
        return ToolCallMatch()

    for pattern in XML_TOOL_PATTERNS:
        m = pattern.search(text)
        if m:
            return ToolCallMatch(
                found=True,
                tool_id=m.group(1).strip(),
                parameters=parse_tool_parameters(m.group(2)),
                original_text=m.group(0),
            )

    m = JSON_BLOCK_PATTERN.search(text)
    if m:
        try:
            payload = json.loads(m.group(1))
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("function"), str):
            params = payload.get("parameters")
            return ToolCallMatch(
                found=True,
                tool_id=payload["function"],
                parameters=params if isinstance(params, dict) else {},
                original_text=m.group(0),
            )

    m = TOOL_BLOCK_PATTERN.search(text)
    if m:
        return ToolCallMatch(
            found=True,
            tool_id=m.group(1).strip(),
            parameters=parse_tool_parameters(m.group(2)),
            original_text=m.group(0),
        )

    return ToolCallMatch()


def match_custom_pattern(text: str, pattern: str) -> ToolCallMatch:
    """
    Match a user-configured regex against ``text``.

    ``pattern`` is either a bare regex or ``/regex/flags``. Capture group 1
    is parsed as a nested tool call when it contains one, otherwise as the
    parameter body of a tool named by a ``name`` group (or ``"custom"``).
    """
    regex = compile_match_pattern(pattern)
    if regex is None:
        return ToolCallMatch()
    m = regex.search(text or "")
    if not m:
        return ToolCallMatch()
    captured = m.group(1) if regex.groups >= 1 else m.group(0)
    inner = match_tool_calling(captured or "")
    if inner.found:
        inner.original_text = m.group(0)
        return inner
    tool_id = m.groupdict().get("name") or "custom"
    return ToolCallMatch(
        found=True,
        tool_id=tool_id,
        parameters=parse_tool_parameters(captured or ""),
        original_text=m.group(0),
    )


def compile_match_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile ``/regex/flags`` or a bare regex; invalid patterns give None."""
    flags = 0
    body = pattern
    if len(pattern) >= 2 and pattern.startswith("/") and pattern.rfind("/") > 0:
        end = pattern.rfind("/")
        body = pattern[1:end]
        for flag in pattern[end + 1:]:
            if flag == "i":
                flags |= re.IGNORECASE
            elif flag == "m":
                flags |= re.MULTILINE
            elif flag == "s":
                flags |= re.DOTALL
    try:
        return re.compile(body, flags)
    except re.error as e:
        logger.warning(f"Invalid tool match pattern {pattern!r}: {e}")
        return None


def parse_tool_parameters(raw: str) -> dict[str, Any]:
    """Parse a tool-call body into a parameter dict without evaluating it."""
    body = (raw or "").strip()
    if not body:
        return {}

    parsed = _loads_dict(body)
    if parsed is not None:
        return parsed

    if any(p.search(body) for p in DANGEROUS_PATTERNS):
        logger.warning("Tool parameters contain executable-looking content; keeping raw input")
        return {"input": body[:MAX_FALLBACK_INPUT]}

    if body.startswith("{") and body.endswith("}"):
        parsed = _loads_dict(_UNQUOTED_KEY.sub(r'\1"\2":', body))
        if parsed is not None:
            return parsed

    pairs = _parse_key_value_lines(body)
    if pairs is not None:
        return pairs

    return {"input": body[:MAX_FALLBACK_INPUT]}


def _loads_dict(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _parse_key_value_lines(body: str) -> dict[str, Any] | None:
    out: dict[str, Any] = {}
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        m = _KEY_VALUE_LINE.match(stripped)
        if not m:
            return None
        out[m.group(1)] = _parse_scalar(m.group(2).strip())
    return out or None


def _parse_scalar(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value
