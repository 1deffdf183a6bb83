"""Placeholder resolution and template injection.

This package provides:
- RuntimeContext: per-request business identity, roster and folder ids
- Prompt builders for the deployed classifier and reply drafter
- The placeholder resolver and the two-mode sanitizer
- The single-pass template injector producing a DeployableConfig
"""

from tradeflow.render.context import BusinessIdentity, RuntimeContext, TeamMember
from tradeflow.render.injector import DeployableConfig, Template, inject, tokenize
from tradeflow.render.placeholders import (
    PlaceholderMap,
    PlaceholderValue,
    ResolvedLabel,
    ResolvedPlaceholders,
    resolve_placeholders,
    sanitize_placeholders,
    token,
)
from tradeflow.render.sanitizer import SanitizeMode, sanitize_value

__all__ = [
    # Context
    "BusinessIdentity",
    "RuntimeContext",
    "TeamMember",
    # Placeholders
    "PlaceholderMap",
    "PlaceholderValue",
    "ResolvedLabel",
    "ResolvedPlaceholders",
    "resolve_placeholders",
    "sanitize_placeholders",
    "token",
    # Sanitizer
    "SanitizeMode",
    "sanitize_value",
    # Injector
    "DeployableConfig",
    "Template",
    "inject",
    "tokenize",
]
