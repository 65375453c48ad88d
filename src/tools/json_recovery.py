"""
Structured output recovery: extract a JSON value from free-form model text.

Models wrap JSON in markdown fences, prefix it with chatter, append prose, or
get cut off mid-structure when they hit their token limit. recover() tries a
fixed sequence of strategies, cheapest first, and returns the first value that
parses. It is deterministic and never touches the network.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, Optional, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError

logger = structlog.get_logger()
T = TypeVar("T")

PREVIEW_CHARS = 200

_OPEN_FENCE = re.compile(r"^```[a-zA-Z]*[ \t]*\n?", re.MULTILINE)
_CLOSE_FENCE = re.compile(r"\n?```[ \t]*$", re.MULTILINE)
_ANY_FENCE = re.compile(r"```[a-zA-Z]*")
_PREFIXES = (
    re.compile(r"^here(?:'s| is) (?:the )?(?:json|response|data)[:\s]*", re.IGNORECASE),
    re.compile(r"^(?:json|response|data)[:\s]*", re.IGNORECASE),
    re.compile(r"^sure[,!]?\s*", re.IGNORECASE),
    re.compile(r"^okay[,!]?\s*", re.IGNORECASE),
)
_INLINE_CODE = re.compile(r"`([\[{][\s\S]*?[\]}])`")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_TRAILING_SCALAR = re.compile(r"[-+0-9.eEtruefalsn]+$")
_PARTIAL_UNICODE_ESCAPE = re.compile(r"(?<!\\)\\u[0-9a-fA-F]{0,3}$")

_CLOSERS = {"{": "}", "[": "]"}


class RecoveryError(ValueError):
    """No JSON value could be recovered from the model output."""

    def __init__(self, raw: str, reason: str = "") -> None:
        self.preview = raw[:PREVIEW_CHARS]
        message = "Failed to parse AI response as JSON"
        if reason:
            message += f" ({reason})"
        super().__init__(f"{message}. Preview: {self.preview}")


def _loads(text: str) -> Any:
    return json.loads(text)


def strip_fences(raw: str) -> str:
    """Remove markdown fences (with or without a language tag) and chatty prefixes."""
    cleaned = raw.strip()
    cleaned = _OPEN_FENCE.sub("", cleaned)
    cleaned = _CLOSE_FENCE.sub("", cleaned)
    cleaned = _ANY_FENCE.sub("", cleaned).strip()
    for pattern in _PREFIXES:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def _first_opener(text: str) -> int:
    """Index of the first '[' or '{', whichever comes first; -1 if neither."""
    positions = [i for i in (text.find("["), text.find("{")) if i >= 0]
    return min(positions) if positions else -1


def _from_inline_code(text: str) -> Any:
    match = _INLINE_CODE.search(text)
    if not match:
        raise ValueError("no inline code span")
    return _loads(match.group(1).strip())


def _scan(text: str) -> tuple[int, list[str], bool, bool]:
    """String/escape-aware bracket scan of text, which must start with an opener.

    Returns the end index (exclusive) of the balanced value, or -1 if the text
    ends first, together with the pending closers, whether a string is open
    and whether the text stops on an unfinished escape.
    """
    stack: list[str] = []
    in_string = False
    escape = False
    for i, c in enumerate(text):
        if escape:
            escape = False
            continue
        if c == "\\" and in_string:
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c in _CLOSERS:
            stack.append(_CLOSERS[c])
        elif c in ("}", "]") and stack and stack[-1] == c:
            stack.pop()
            if not stack:
                return i + 1, stack, False, False
    return -1, stack, in_string, escape


def _boundary_scan(text: str) -> Any:
    """Parse the balanced value that starts at the first opener, ignoring trailing prose."""
    start = _first_opener(text)
    if start < 0:
        raise ValueError("no opener")
    end, _, _, _ = _scan(text[start:])
    if end < 0:
        raise ValueError("unbalanced")
    return _loads(text[start : start + end])


def _trim_partial_scalar(text: str) -> str:
    """Drop a number or literal the cut left unfinished, such as '2.', '-' or 'tru'."""
    match = _TRAILING_SCALAR.search(text)
    if not match:
        return text
    try:
        _loads(match.group(0))
    except json.JSONDecodeError:
        return text[: match.start()].rstrip()
    return text


def _repair_truncated(text: str) -> Any:
    """Close whatever a truncated reply left open and parse the result."""
    start = _first_opener(text)
    if start < 0:
        raise ValueError("no opener")
    fixed = text[start:].rstrip()
    end, stack, in_string, escape = _scan(fixed)
    if end >= 0:
        # Balanced but unparseable (e.g. trailing commas): repair the value alone
        fixed = fixed[:end]
    if in_string:
        if escape:
            fixed = fixed[:-1]
        fixed = _PARTIAL_UNICODE_ESCAPE.sub("", fixed) + '"'
    elif end < 0:
        fixed = _trim_partial_scalar(fixed)
    fixed = fixed.rstrip()
    if fixed.endswith(","):
        fixed = fixed[:-1].rstrip()
    if fixed.endswith(":"):
        fixed += " null"
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    suffix = "".join(reversed(stack))

    last_error: Optional[json.JSONDecodeError] = None
    # A string cut off in key position needs a value before the object can close
    for candidate in (fixed + suffix, fixed + ": null" + suffix):
        try:
            return _loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
    raise ValueError(f"repair failed: {last_error}")


_STRATEGIES: tuple[tuple[str, Callable[[str], Any]], ...] = (
    ("direct", _loads),
    ("inline_code", _from_inline_code),
    ("boundary_scan", _boundary_scan),
    ("truncation_repair", _repair_truncated),
)


def recover(raw: str) -> Any:
    """
    Recover a JSON value from raw model text.

    Strategies, in order: fence/prefix stripping followed by a direct parse,
    inline-code extraction, a progressive boundary scan from the first
    opener, truncation repair, and finally a parse of the untouched input.

    Raises:
        RecoveryError: if every strategy fails. Carries the first 200 characters.
    """
    cleaned = strip_fences(raw or "")
    for name, strategy in _STRATEGIES:
        try:
            value = strategy(cleaned)
        except ValueError:
            # json.JSONDecodeError is a ValueError subclass
            continue
        logger.debug("json_recovered", strategy=name, chars=len(raw))
        return value

    try:
        value = _loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("json_recovery_failed", preview=(raw or "")[:PREVIEW_CHARS])
        raise RecoveryError(raw or "") from None
    logger.debug("json_recovered", strategy="original", chars=len(raw))
    return value


def recover_as(raw: str, model_type: type[T]) -> T:
    """Recover JSON and validate it as model_type (a Pydantic model or e.g. list[FAQ]).

    Raises:
        RecoveryError: if nothing parses or the value fails validation.
    """
    value = recover(raw)
    try:
        return TypeAdapter(model_type).validate_python(value)
    except ValidationError as e:
        logger.warning(
            "json_recovery_invalid",
            target=getattr(model_type, "__name__", str(model_type)),
            errors=e.error_count(),
            preview=raw[:PREVIEW_CHARS],
        )
        raise RecoveryError(raw, reason=f"does not match {getattr(model_type, '__name__', model_type)}") from e
