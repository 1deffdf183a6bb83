"""Template injector.

Templates are JSON documents holding tokens of the form <<<UPPER_SNAKE>>>,
each inside a JSON string literal. A template is tokenized once into
literal text and token references; injection then substitutes every
reference from a sanitized PlaceholderMap in a single pass. A value that
happens to contain token-like text is never rescanned.

Text that looks like a token but is not one (lower-case name, unclosed
delimiter) is kept literally.

Usage:
    from tradeflow.render.injector import Template, inject

    template = Template.from_file(Path("templates/deployment.json"))
    deployable = inject(template, placeholder_map)
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tradeflow.core.errors import InvalidArgument, MalformedOutput, MissingTemplateToken
from tradeflow.core.logging import get_logger
from tradeflow.render.placeholders import (
    TOKEN_CLOSE,
    TOKEN_NAME_PATTERN,
    TOKEN_OPEN,
    token,
)
from tradeflow.schemas.models import REGEX_TIMEOUT

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TokenRef:
    """A token reference inside a template."""

    name: str

    @property
    def key(self) -> str:
        return token(self.name)


Segment = str | TokenRef


def tokenize(text: str) -> tuple[Segment, ...]:
    """Split template text into literal strings and token references."""
    segments: list[Segment] = []
    literal_start = 0
    pos = 0

    while True:
        start = text.find(TOKEN_OPEN, pos)
        if start == -1:
            break
        end = text.find(TOKEN_CLOSE, start + len(TOKEN_OPEN))
        if end == -1:
            break

        name = text[start + len(TOKEN_OPEN) : end]
        if TOKEN_NAME_PATTERN.fullmatch(name, timeout=REGEX_TIMEOUT):
            if start > literal_start:
                segments.append(text[literal_start:start])
            segments.append(TokenRef(name))
            pos = literal_start = end + len(TOKEN_CLOSE)
        else:
            # "<<<<NAME>>>" must still find the token one character later
            pos = start + 1

    if literal_start < len(text):
        segments.append(text[literal_start:])
    return tuple(segments)


@dataclass(frozen=True, slots=True)
class Template:
    """A tokenized deployment template.

    Attributes:
        name: Template name used in logs and errors
        text: Raw template text
        segments: Literal text and token references, in document order
    """

    name: str
    text: str
    segments: tuple[Segment, ...]

    @classmethod
    def from_text(cls, text: str, name: str = "<inline>") -> Template:
        return cls(name=name, text=text, segments=tokenize(text))

    @classmethod
    def from_file(cls, path: Path) -> Template:
        """Read and tokenize a template file.

        Raises:
            InvalidArgument: If the file cannot be read
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise InvalidArgument(f"Cannot read template {path}: {e}") from e
        return cls.from_text(text, name=Path(path).name)

    def token_names(self) -> list[str]:
        """Distinct token names in first-seen order."""
        return list(dict.fromkeys(s.name for s in self.segments if isinstance(s, TokenRef)))


@dataclass(frozen=True, slots=True)
class DeployableConfig:
    """A fully substituted, parsed deployment document.

    Attributes:
        document: Parsed JSON document
        text: Substituted JSON text
        template_name: Template the document was rendered from
        tokens_used: Distinct token names the template referenced
    """

    document: Any
    text: str
    template_name: str
    tokens_used: tuple[str, ...]


def inject(template: Template, placeholders: Mapping[str, str]) -> DeployableConfig:
    """Substitute every token in the template.

    Args:
        template: Tokenized template
        placeholders: Sanitized map of '<<<NAME>>>' -> value

    Returns:
        The deployable document

    Raises:
        MissingTemplateToken: If any referenced token has no value. Nothing
            is substituted in that case.
        MalformedOutput: If the substituted text is not valid JSON
    """
    used = template.token_names()
    missing = [name for name in used if token(name) not in placeholders]
    if missing:
        raise MissingTemplateToken(
            f"Template '{template.name}' references {len(missing)} token(s) the engine "
            f"did not resolve: {', '.join(missing)}. The template was written for a "
            "different engine version; update the template or the engine",
            tokens=missing,
        )

    text = "".join(
        placeholders[segment.key] if isinstance(segment, TokenRef) else segment
        for segment in template.segments
    )

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedOutput(
            f"Template '{template.name}' did not produce valid JSON after substitution "
            f"(line {e.lineno}, column {e.colno}): {e.msg}. Check that every token "
            "sits inside a JSON string literal",
            line=e.lineno,
            column=e.colno,
        ) from e

    logger.info(
        "template_injected",
        template=template.name,
        tokens=len(used),
        unused_placeholders=len(placeholders) - len(used),
    )
    return DeployableConfig(
        document=document,
        text=text,
        template_name=template.name,
        tokens_used=tuple(used),
    )
