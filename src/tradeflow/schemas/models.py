"""Pydantic models for business-category schema fragments.

Each business category ships three fragments, one per layer:
- ClassificationFragment: keyword groups, intent routing, escalation rules
- BehaviorFragment: reply voice, goals, upsell/follow-up guidance, overrides
- LabelFragment: mailbox folder taxonomy plus domain/auto-reply gating rules

All models are frozen. Ordered collections are tuples so a loaded fragment
can be shared between concurrent deployment requests without copying.
Optional fields fall back to layer defaults; a missing field is never an
error.

Usage:
    from tradeflow.schemas.models import ClassificationFragment

    fragment = ClassificationFragment.model_validate(json_data)
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Literal

import regex
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LAYERS = ("classification", "behavior", "labels")

REGEX_TIMEOUT = 1.0

DEFAULT_CONFIDENCE_THRESHOLD = 0.75

# "15 minutes", "2 hours", "1 day"
SLA_PATTERN = regex.compile(
    r"^\s*(\d+)\s*(minute|min|hour|hr|day)s?\s*$",
    regex.IGNORECASE,
)
SLA_UNIT_MINUTES = {"minute": 1, "min": 1, "hour": 60, "hr": 60, "day": 1440}

UrgencyTier = Literal["critical", "high", "normal", "low"]

Formality = Literal["casual", "medium", "formal"]


def dedupe(values: Iterable[str]) -> tuple[str, ...]:
    """Exact-match dedup preserving first-seen order."""
    return tuple(dict.fromkeys(values))


def parse_sla_minutes(sla: str) -> int:
    """Convert an SLA string like '2 hours' into minutes.

    Raises:
        ValueError: If the string is not '<number> <minute|hour|day>'
    """
    match = SLA_PATTERN.match(sla, timeout=REGEX_TIMEOUT)
    if not match:
        raise ValueError(f"SLA must look like '15 minutes' or '2 hours', got {sla!r}")
    value = int(match.group(1))
    unit = match.group(2).lower()
    return value * SLA_UNIT_MINUTES[unit]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# =============================================================================
# Classification layer
# =============================================================================


class EscalationRule(_Frozen):
    """Escalation rule for one category."""

    urgency: UrgencyTier = Field(default="normal", description="Urgency tier")
    response_time_minutes: int = Field(
        ge=1,
        description="Response-time budget in minutes (shorter = more urgent)",
    )
    notify: tuple[str, ...] = Field(
        default=(),
        description="Roles or addresses notified on escalation",
    )

    @model_validator(mode="before")
    @classmethod
    def accept_sla_string(cls, data: Any) -> Any:
        """Allow 'sla: "2 hours"' in place of response_time_minutes."""
        if isinstance(data, dict) and "response_time_minutes" not in data and "sla" in data:
            data = dict(data)
            data["response_time_minutes"] = parse_sla_minutes(str(data.pop("sla")))
        return data

    @field_validator("notify")
    @classmethod
    def dedupe_notify(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)


class ClassificationFragment(_Frozen):
    """Classification rules for one category (or a merged set of categories).

    intent_map values are tuples: a merged fragment may route one intent to
    several categories, and single-category fragments use the same shape.
    """

    keyword_groups: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Group name -> ordered keywords (e.g. 'emergency', 'service')",
    )
    intent_map: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Intent -> category names",
    )
    escalation_rules: dict[str, EscalationRule] = Field(
        default_factory=dict,
        description="Category -> escalation rule",
    )
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Minimum classifier confidence to act on a label",
    )
    classification_rules: tuple[str, ...] = Field(
        default=(),
        description="Free-text rules appended to the classifier prompt",
    )

    @field_validator("keyword_groups")
    @classmethod
    def dedupe_keywords(cls, v: dict[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
        return {group: dedupe(words) for group, words in v.items()}

    @field_validator("intent_map", mode="before")
    @classmethod
    def accept_single_category(cls, v: Any) -> Any:
        """A bare string value is shorthand for a one-element category tuple."""
        if isinstance(v, dict):
            return {intent: [cat] if isinstance(cat, str) else cat for intent, cat in v.items()}
        return v

    @field_validator("intent_map")
    @classmethod
    def dedupe_intent_categories(
        cls, v: dict[str, tuple[str, ...]]
    ) -> dict[str, tuple[str, ...]]:
        return {intent: dedupe(cats) for intent, cats in v.items()}

    @field_validator("classification_rules")
    @classmethod
    def dedupe_rules(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)

    def category_names(self) -> tuple[str, ...]:
        """Categories referenced by intent routing or escalation, first-seen order."""
        names: list[str] = []
        for cats in self.intent_map.values():
            names.extend(cats)
        names.extend(self.escalation_rules)
        return dedupe(names)


# =============================================================================
# Behavior layer
# =============================================================================


class VoiceProfile(_Frozen):
    """Reply voice descriptor."""

    tone: str = Field(default="professional", description="Tone label")
    formality: Formality = Field(default="medium", description="Formality level")
    empathy: float = Field(default=0.5, ge=0.0, le=1.0)
    directness: float = Field(default=0.5, ge=0.0, le=1.0)
    allow_pricing: bool = Field(
        default=False,
        description="Whether replies may disclose prices",
    )


class Guidance(_Frozen):
    """Upsell or follow-up guidance block."""

    enabled: bool = False
    text: str = ""


class LanguageOverride(_Frozen):
    """Per-category reply language override."""

    priority: int = Field(default=3, ge=1, le=5, description="1 = highest priority")
    phrases: tuple[str, ...] = Field(default=(), description="Preferred phrases")

    @field_validator("phrases")
    @classmethod
    def dedupe_phrases(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)


class Signature(_Frozen):
    """Reply signature. signature_block may contain {{BusinessName}} style variables."""

    closing_text: str = "Thanks for reaching out!"
    signature_block: str = "Best regards,\n{{BusinessName}} Team\n{{BusinessPhone}}"


class BehaviorFragment(_Frozen):
    """Reply behavior rules for one category (or a merged set)."""

    voice: VoiceProfile = Field(default_factory=VoiceProfile)
    behavior_goals: tuple[str, ...] = Field(default=())
    upsell: Guidance = Field(default_factory=Guidance)
    follow_up: Guidance = Field(default_factory=Guidance)
    category_overrides: dict[str, LanguageOverride] = Field(default_factory=dict)
    signature: Signature = Field(default_factory=Signature)

    @field_validator("behavior_goals")
    @classmethod
    def dedupe_goals(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)


# =============================================================================
# Label layer
# =============================================================================


class LabelColor(_Frozen):
    """Folder display color."""

    background: str = "#999999"
    text: str = "#ffffff"


class Label(_Frozen):
    """A mailbox folder node. Names may hold dynamic variables like {{Manager1}}."""

    name: str = Field(min_length=1)
    intent: str = ""
    critical: bool = False
    color: LabelColor = Field(default_factory=LabelColor)
    children: tuple[Label, ...] = ()

    @field_validator("children")
    @classmethod
    def unique_child_names(cls, v: tuple[Label, ...]) -> tuple[Label, ...]:
        _ensure_unique_names(v)
        return v


class KnownSupplier(_Frozen):
    """A known external supplier identified by its mail domains."""

    name: str
    domains: tuple[str, ...] = ()


class PhoneProvider(_Frozen):
    """A phone/voicemail service identified by its sender address."""

    name: str
    email: str


class DomainDetection(_Frozen):
    """Known external domains used to pre-route mail."""

    suppliers: tuple[KnownSupplier, ...] = ()
    phone_providers: tuple[PhoneProvider, ...] = ()
    internal_domains: tuple[str, ...] = ()


class AutoReplyCondition(_Frozen):
    """Extra precondition for an automatic reply, keyed by rule name."""

    rule: str
    description: str = ""


class AutoReplyPolicy(_Frozen):
    """Gating rules for automatic replies."""

    enabled: bool = True
    min_confidence: float = Field(default=DEFAULT_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0)
    enabled_categories: tuple[str, ...] = ()
    conditions: tuple[AutoReplyCondition, ...] = ()

    @field_validator("enabled_categories")
    @classmethod
    def dedupe_categories(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)


class SpecialRule(_Frozen):
    """Keyword-triggered routing shortcut into a label."""

    name: str
    target_label: str
    keywords: tuple[str, ...] = ()
    description: str = ""

    @field_validator("keywords")
    @classmethod
    def dedupe_keywords(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe(v)


class LabelFragment(_Frozen):
    """Folder taxonomy for one category (or a merged set)."""

    labels: tuple[Label, ...] = ()
    domain_detection: DomainDetection = Field(default_factory=DomainDetection)
    auto_reply: AutoReplyPolicy = Field(default_factory=AutoReplyPolicy)
    special_rules: tuple[SpecialRule, ...] = ()

    @field_validator("labels")
    @classmethod
    def unique_top_level_names(cls, v: tuple[Label, ...]) -> tuple[Label, ...]:
        _ensure_unique_names(v)
        return v

    def top_level_names(self) -> tuple[str, ...]:
        return tuple(label.name for label in self.labels)


def _ensure_unique_names(labels: tuple[Label, ...]) -> None:
    seen: set[str] = set()
    for label in labels:
        if label.name in seen:
            raise ValueError(f"Duplicate label name '{label.name}'")
        seen.add(label.name)


# =============================================================================
# Category schema
# =============================================================================


class BusinessCategorySchema(_Frozen):
    """The three fragments for one business category at one version."""

    category: str = Field(description="Category identifier (e.g. 'electrician')")
    display_name: str = Field(description="Client-facing name (e.g. 'Electrician')")
    version: str = Field(description="Fragment set version")
    classification: ClassificationFragment
    behavior: BehaviorFragment
    labels: LabelFragment
