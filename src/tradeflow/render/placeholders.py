"""Placeholder resolver.

Flattens a MergedConfig plus a RuntimeContext into one token -> value map
for the template injector. Token names are layer-prefixed UPPER_SNAKE
(BUSINESS_*, TEAM_*, AI_*, BEHAVIOR_*, AUTO_REPLY_*, LABEL_*), so tokens
from different layers cannot collide.

Label tokens:
- LABEL_<TOP>_ID for each top-level label
- LABEL_<TOP>__<CHILD>_ID for each child path (segments joined with '__')
- LABEL_<...>_NAME for labels whose name holds a dynamic variable
- LABEL_MAP, a JSON object of resolved path -> folder identifier

Token names come from fragment-level names, so templates stay stable when
the team roster changes. Folder identifiers are looked up by the resolved
path first, then by the fragment-level path. A child never inherits its
parent's identifier.

Dynamic variables in label names and the signature:
- {{BusinessName}}, {{BusinessPhone}}, {{BusinessDomain}}, {{BusinessCurrency}}
- {{<Role><N>}}, e.g. {{Manager1}}: the N-th roster entry with that role

A label whose team slot has no roster entry collapses: its name and
identifier resolve to "", it is left out of LABEL_MAP, and so are its
children.

Usage:
    from tradeflow.render.placeholders import resolve_placeholders, sanitize_placeholders

    resolved = resolve_placeholders(merged, context)
    placeholder_map = sanitize_placeholders(resolved.values)
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import regex

from tradeflow.core.errors import ConsistencyViolation
from tradeflow.core.logging import get_logger
from tradeflow.merge.merged import MergedConfig
from tradeflow.render.context import RuntimeContext
from tradeflow.render.prompts import build_behavior_prompt, build_classification_prompt
from tradeflow.render.sanitizer import SanitizeMode, sanitize_value
from tradeflow.schemas.models import REGEX_TIMEOUT, Label

logger = get_logger(__name__)

TOKEN_OPEN = "<<<"
TOKEN_CLOSE = ">>>"
TOKEN_NAME_PATTERN = regex.compile(r"[A-Z][A-Z0-9_]*")

VARIABLE_PATTERN = regex.compile(r"\{\{\s*([A-Za-z]+?)(\d*)\s*\}\}")
NON_ALNUM_RUN = regex.compile(r"[^A-Z0-9]+")

BUSINESS_VARIABLES = ("name", "phone", "domain", "currency")

DISPLAY = SanitizeMode.DISPLAY
EMBEDDED = SanitizeMode.EMBEDDED


def token(name: str) -> str:
    """Wrap a token name in template delimiters: 'BUSINESS_NAME' -> '<<<BUSINESS_NAME>>>'."""
    return f"{TOKEN_OPEN}{name}{TOKEN_CLOSE}"


def normalize_segment(name: str) -> str:
    """Turn one label name into a token segment: 'e-Transfer' -> 'E_TRANSFER'."""
    return NON_ALNUM_RUN.sub("_", name.upper(), timeout=REGEX_TIMEOUT).strip("_")


@dataclass(frozen=True, slots=True)
class PlaceholderValue:
    """A raw resolved value and how it must be sanitized."""

    text: str
    mode: SanitizeMode = DISPLAY


class PlaceholderMap(Mapping[str, str]):
    """Read-only map of '<<<NAME>>>' -> sanitized value."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, str]):
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        # Values may carry client data; keep them out of reprs and logs
        return f"PlaceholderMap({len(self)} tokens)"

    def names(self) -> list[str]:
        """Token names without delimiters."""
        return [key[len(TOKEN_OPEN) : -len(TOKEN_CLOSE)] for key in self._values]


@dataclass(frozen=True, slots=True)
class ResolvedLabel:
    """One label after dynamic-variable resolution.

    Attributes:
        path: Fragment-level names from the top-level label down
        resolved_path: Display names after variable resolution
        token_base: Token name stem, e.g. 'LABEL_URGENT__BURST_PIPE'
        folder_id: External folder identifier, "" if unknown or collapsed
        dynamic: Whether the fragment name holds a dynamic variable
        collapsed: Whether an unfilled team slot emptied this label
    """

    path: tuple[str, ...]
    resolved_path: tuple[str, ...]
    token_base: str
    folder_id: str = ""
    dynamic: bool = False
    collapsed: bool = False

    @property
    def display_name(self) -> str:
        return "" if self.collapsed else self.resolved_path[-1]


@dataclass(frozen=True, slots=True)
class ResolvedPlaceholders:
    """Raw (unsanitized) resolver output.

    Attributes:
        values: Token name (no delimiters) -> raw value
        labels: Every label in the merged taxonomy, depth-first
    """

    values: dict[str, PlaceholderValue] = field(default_factory=dict)
    labels: tuple[ResolvedLabel, ...] = ()

    def resolved_paths(self) -> list[tuple[str, ...]]:
        """Resolved paths of labels that did not collapse."""
        return [label.resolved_path for label in self.labels if not label.collapsed]


# =============================================================================
# Dynamic variables
# =============================================================================


def resolve_variables(text: str, context: RuntimeContext) -> tuple[str, bool]:
    """Substitute {{...}} variables in text.

    Returns:
        (resolved text, whether every variable found a value)
    """
    filled = True

    def replace(match: regex.Match[str]) -> str:
        nonlocal filled
        name, index = match.group(1), match.group(2)
        value = _variable_value(name, index, context)
        if value is None:
            filled = False
            return ""
        return value

    resolved = VARIABLE_PATTERN.sub(replace, text, timeout=REGEX_TIMEOUT)
    return resolved, filled


def has_variables(text: str) -> bool:
    return VARIABLE_PATTERN.search(text, timeout=REGEX_TIMEOUT) is not None


def _variable_value(name: str, index: str, context: RuntimeContext) -> str | None:
    if not index:
        lowered = name.lower()
        if lowered.startswith("business") and lowered[len("business") :] in BUSINESS_VARIABLES:
            return getattr(context.business, lowered[len("business") :]) or None
        logger.debug("unknown_dynamic_variable", variable=name)
        return None

    slot = int(index)
    members = context.members(name)
    if slot < 1 or slot > len(members):
        return None
    return members[slot - 1].name


# =============================================================================
# Labels
# =============================================================================


def resolve_labels(labels: tuple[Label, ...], context: RuntimeContext) -> tuple[ResolvedLabel, ...]:
    """Resolve every label in the taxonomy, depth-first.

    Raises:
        ConsistencyViolation: If a name normalizes to an empty token segment
            or two labels normalize to the same token
    """
    resolved: list[ResolvedLabel] = []
    for label in labels:
        _resolve_label(label, (), (), "LABEL", False, context, resolved)

    by_token: dict[str, tuple[str, ...]] = {}
    collisions: list[str] = []
    for item in resolved:
        other = by_token.setdefault(item.token_base, item.path)
        if other != item.path:
            collisions.append(f"{'/'.join(other)} and {'/'.join(item.path)} -> {item.token_base}")
    if collisions:
        raise ConsistencyViolation(
            "Label names collide after token normalization: "
            + "; ".join(collisions)
            + ". Rename one of the labels in its category fragment",
            duplicate_paths=collisions,
        )

    _log_unknown_folder_keys(resolved, context)
    return tuple(resolved)


def _resolve_label(
    label: Label,
    parent_path: tuple[str, ...],
    parent_resolved: tuple[str, ...],
    parent_token: str,
    parent_collapsed: bool,
    context: RuntimeContext,
    out: list[ResolvedLabel],
) -> None:
    segment = normalize_segment(label.name)
    if not segment:
        raise ConsistencyViolation(
            f"Label '{'/'.join((*parent_path, label.name))}' has no letters or digits "
            "to build a template token from. Rename it in its category fragment",
            duplicate_paths=["/".join((*parent_path, label.name))],
        )

    name, filled = resolve_variables(label.name, context)
    name = " ".join(name.split())
    collapsed = parent_collapsed or not filled or not name

    path = (*parent_path, label.name)
    resolved_path = (*parent_resolved, name)
    token_base = f"{parent_token}{'_' if not parent_path else '__'}{segment}"

    folder_id = ""
    if not collapsed:
        folder_id = context.folder_id(resolved_path) or context.folder_id(path) or ""

    out.append(
        ResolvedLabel(
            path=path,
            resolved_path=resolved_path,
            token_base=token_base,
            folder_id=folder_id,
            dynamic=has_variables(label.name),
            collapsed=collapsed,
        )
    )

    for child in label.children:
        _resolve_label(child, path, resolved_path, token_base, collapsed, context, out)


def _log_unknown_folder_keys(resolved: list[ResolvedLabel], context: RuntimeContext) -> None:
    known: set[str] = set()
    for item in resolved:
        known.add("/".join(item.path))
        if not item.collapsed:
            known.add("/".join(item.resolved_path))
    unknown = [key for key in context.folder_ids if key not in known]
    if unknown:
        logger.debug("folder_id_keys_ignored", keys=unknown)


# =============================================================================
# Resolver
# =============================================================================


def resolve_placeholders(merged: MergedConfig, context: RuntimeContext) -> ResolvedPlaceholders:
    """Build the raw token map for one deployment.

    Raises:
        ConsistencyViolation: If label tokens collide
    """
    business = context.business
    classification = merged.classification
    behavior = merged.behavior
    label_fragment = merged.labels

    values: dict[str, PlaceholderValue] = {}

    def put(name: str, text: str, mode: SanitizeMode = DISPLAY) -> None:
        values[name] = PlaceholderValue(text=text, mode=mode)

    # Business identity
    put("BUSINESS_NAME", business.name)
    put("BUSINESS_DOMAIN", business.domain)
    put("BUSINESS_PHONE", business.phone)
    put("BUSINESS_CURRENCY", business.currency)
    put("BUSINESS_CATEGORIES", ", ".join(merged.display_names))
    put("TEAM_ROSTER_TEXT", _roster_text(context))

    # Classification
    put("AI_CLASSIFICATION_PROMPT", build_classification_prompt(merged, business.name), EMBEDDED)
    put("AI_KEYWORDS", _json(classification.keyword_groups), EMBEDDED)
    put("AI_INTENT_MAPPING", _json(classification.intent_map), EMBEDDED)
    put(
        "AI_ESCALATION_RULES",
        _json({name: rule.model_dump() for name, rule in classification.escalation_rules.items()}),
        EMBEDDED,
    )
    put("AI_CATEGORIES", ", ".join(label_fragment.top_level_names()))
    put("AI_CONFIDENCE_THRESHOLD", f"{classification.confidence_threshold:.2f}")

    # Behavior
    signature, _ = resolve_variables(behavior.signature.signature_block, context)
    put("BEHAVIOR_REPLY_PROMPT", build_behavior_prompt(merged, business.name), EMBEDDED)
    put("BEHAVIOR_GOALS", "\n".join(f"- {goal}" for goal in behavior.behavior_goals), EMBEDDED)
    put("BEHAVIOR_UPSELL_TEXT", behavior.upsell.text if behavior.upsell.enabled else "", EMBEDDED)
    put(
        "BEHAVIOR_FOLLOWUP_TEXT",
        behavior.follow_up.text if behavior.follow_up.enabled else "",
        EMBEDDED,
    )
    put("BEHAVIOR_SIGNATURE", f"{behavior.signature.closing_text}\n\n{signature}", EMBEDDED)
    put(
        "BEHAVIOR_CATEGORY_OVERRIDES",
        _json({name: o.model_dump() for name, o in behavior.category_overrides.items()}),
        EMBEDDED,
    )
    put("BEHAVIOR_VOICE_TONE", behavior.voice.tone)
    put("BEHAVIOR_FORMALITY", behavior.voice.formality)
    put("BEHAVIOR_ALLOW_PRICING", _bool(behavior.voice.allow_pricing))
    put("BEHAVIOR_UPSELL_ENABLED", _bool(behavior.upsell.enabled))
    put("BEHAVIOR_FOLLOWUP_ENABLED", _bool(behavior.follow_up.enabled))

    # Auto-reply gating
    auto_reply = label_fragment.auto_reply
    put("AUTO_REPLY_ENABLED", _bool(auto_reply.enabled))
    put("AUTO_REPLY_MIN_CONFIDENCE", f"{auto_reply.min_confidence:.2f}")
    put("AUTO_REPLY_CATEGORIES", ", ".join(auto_reply.enabled_categories))
    put("EXCLUDED_DOMAINS", ", ".join(_excluded_domains(merged, context)))

    # Labels
    labels = resolve_labels(label_fragment.labels, context)
    label_map: dict[str, str] = {}
    for label in labels:
        put(f"{label.token_base}_ID", label.folder_id)
        if label.dynamic:
            put(f"{label.token_base}_NAME", label.display_name)
        if label.folder_id:
            label_map["/".join(label.resolved_path)] = label.folder_id
    put("LABEL_MAP", _json(label_map), EMBEDDED)

    logger.info(
        "placeholders_resolved",
        tokens=len(values),
        label_tokens=len(labels),
        mapped_folders=len(label_map),
        collapsed_labels=sum(1 for label in labels if label.collapsed),
    )
    return ResolvedPlaceholders(values=values, labels=labels)


def sanitize_placeholders(raw: Mapping[str, PlaceholderValue]) -> PlaceholderMap:
    """Sanitize every raw value for its mode and key it by delimited token."""
    return PlaceholderMap({token(name): sanitize_value(v.text, v.mode) for name, v in raw.items()})


def _roster_text(context: RuntimeContext) -> str:
    parts = []
    for role, members in context.roster_by_role().items():
        parts.append(f"{role.title()}: {', '.join(m.name for m in members)}")
    return "; ".join(parts)


def _excluded_domains(merged: MergedConfig, context: RuntimeContext) -> list[str]:
    """Domains whose mail never gets an automatic reply."""
    detection = merged.labels.domain_detection
    domains: list[str] = []
    if context.business.domain:
        domains.append(context.business.domain)
    domains.extend(detection.internal_domains)
    for supplier in detection.suppliers:
        domains.extend(supplier.domains)
    for provider in detection.phone_providers:
        domains.append(provider.email.rpartition("@")[2].lower())
    return list(dict.fromkeys(d for d in domains if d))


def _json(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def _bool(value: bool) -> str:
    return "true" if value else "false"
