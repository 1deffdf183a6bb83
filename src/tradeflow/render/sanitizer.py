"""Value sanitizer for placeholder substitution.

Templates are JSON documents and every placeholder sits inside a JSON
string literal, so a resolved value must be made safe for that position
exactly once, here. Two modes:

- DISPLAY: human-visible single-line values (business name, label names).
  Control and format characters are removed, whitespace runs become one
  space, and only '"' and '\\' are escaped. No newline or tab escape
  sequences can appear, so names never show visible escape artifacts.
- EMBEDDED: multi-line structured values (prompts, JSON blobs). Line
  breaks and tabs are kept, every other control or format character is
  removed, and the result gets full JSON string escaping.

The clean_* helpers are idempotent.
"""

from __future__ import annotations

import json
from enum import Enum

import regex

from tradeflow.schemas.models import REGEX_TIMEOUT

# Unicode categories Cc (control) and Cf (format)
CONTROL_CHARS = regex.compile(r"[\p{Cc}\p{Cf}]")
CONTROL_CHARS_EXCEPT_LAYOUT = regex.compile(r"(?![\n\t])[\p{Cc}\p{Cf}]")
WHITESPACE_RUN = regex.compile(r"\s+")
SPACE_RUN = regex.compile(r"\p{Zs}+")
LINE_ENDINGS = regex.compile(r"\r\n?|[\x85\u2028\u2029]")


class SanitizeMode(str, Enum):
    """How a placeholder value is cleaned before injection."""

    DISPLAY = "display"
    EMBEDDED = "embedded"


def strip_control_chars(text: str) -> str:
    """Remove every Cc/Cf character."""
    return CONTROL_CHARS.sub("", text, timeout=REGEX_TIMEOUT)


def clean_display_text(text: str) -> str:
    """Single-line clean: strip Cc/Cf, collapse whitespace, trim."""
    # Whitespace controls become spaces first so words stay separated
    text = WHITESPACE_RUN.sub(" ", text, timeout=REGEX_TIMEOUT)
    text = strip_control_chars(text)
    return WHITESPACE_RUN.sub(" ", text, timeout=REGEX_TIMEOUT).strip()


def clean_embedded_text(text: str) -> str:
    """Multi-line clean: keep newlines and tabs, strip other Cc/Cf, tidy spaces."""
    text = LINE_ENDINGS.sub("\n", text, timeout=REGEX_TIMEOUT)
    text = CONTROL_CHARS_EXCEPT_LAYOUT.sub("", text, timeout=REGEX_TIMEOUT)
    lines = [SPACE_RUN.sub(" ", line, timeout=REGEX_TIMEOUT).rstrip(" ") for line in text.split("\n")]
    return "\n".join(lines).strip()


def escape_for_json_string(text: str) -> str:
    """Escape text for placement between the quotes of a JSON string literal."""
    return json.dumps(text, ensure_ascii=False)[1:-1]


def sanitize_value(text: str, mode: SanitizeMode) -> str:
    """Clean and escape one value for injection."""
    if mode is SanitizeMode.DISPLAY:
        return escape_for_json_string(clean_display_text(text))
    return escape_for_json_string(clean_embedded_text(text))
