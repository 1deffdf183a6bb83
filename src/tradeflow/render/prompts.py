"""Prompt builders for the deployed classifier and reply drafter.

Both prompts are rendered deterministically from the merged fragments:
the same merged configuration and business always produce the same text,
so a redeploy with unchanged inputs yields a byte-identical document.

Usage:
    from tradeflow.render.prompts import build_classification_prompt

    prompt = build_classification_prompt(merged, business_name="Bright Spark Electric")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tradeflow.merge.merged import MergedConfig

FORMALITY_GUIDANCE = {
    "casual": "Write in a relaxed, friendly way. Contractions are fine.",
    "medium": "Write in a warm but businesslike way.",
    "formal": "Write formally. Avoid slang and contractions.",
}


def build_classification_prompt(merged: MergedConfig, business_name: str) -> str:
    """Assemble the system prompt for the email classifier.

    Args:
        merged: Merged configuration
        business_name: Resolved business display name

    Returns:
        Complete system prompt string
    """
    classification = merged.classification
    return _CLASSIFICATION_PROMPT_TEMPLATE.format(
        business_name=business_name,
        services=", ".join(merged.display_names),
        categories=_build_category_list(merged),
        escalation=_build_escalation_list(merged),
        keywords=_build_keyword_list(merged),
        rules=_bullets(classification.classification_rules, empty="None."),
        threshold=f"{classification.confidence_threshold:.2f}",
    )


def build_behavior_prompt(merged: MergedConfig, business_name: str) -> str:
    """Assemble the system prompt for the reply drafter.

    Args:
        merged: Merged configuration
        business_name: Resolved business display name

    Returns:
        Complete system prompt string
    """
    behavior = merged.behavior
    voice = behavior.voice

    pricing = (
        "You may quote prices from the published price list."
        if voice.allow_pricing
        else "Never quote prices or estimates; offer a site visit or a call instead."
    )

    return _BEHAVIOR_PROMPT_TEMPLATE.format(
        business_name=business_name,
        tone=voice.tone,
        formality=voice.formality,
        formality_guidance=FORMALITY_GUIDANCE[voice.formality],
        empathy=f"{voice.empathy:.2f}",
        directness=f"{voice.directness:.2f}",
        pricing=pricing,
        goals=_bullets(behavior.behavior_goals, empty="None."),
        upsell=behavior.upsell.text if behavior.upsell.enabled and behavior.upsell.text else "None.",
        follow_up=(
            behavior.follow_up.text
            if behavior.follow_up.enabled and behavior.follow_up.text
            else "None."
        ),
        overrides=build_override_text(merged),
    )


def build_override_text(merged: MergedConfig) -> str:
    """Per-category language overrides, highest priority first."""
    overrides = merged.behavior.category_overrides
    if not overrides:
        return "None."

    lines: list[str] = []
    # Stable sort keeps merge order within one priority level
    for category, override in sorted(overrides.items(), key=lambda item: item[1].priority):
        lines.append(f"- {category} (priority {override.priority}):")
        for phrase in override.phrases:
            lines.append(f'    "{phrase}"')
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_category_list(merged: MergedConfig) -> str:
    lines: list[str] = []
    for label in merged.labels.labels:
        flag = " [critical]" if label.critical else ""
        lines.append(f"- {label.name}{flag}")
        intents = [
            intent
            for intent, categories in merged.classification.intent_map.items()
            if label.name in categories
        ]
        if intents:
            lines.append(f"    intents: {', '.join(intents)}")
    return "\n".join(lines) if lines else "None."


def _build_escalation_list(merged: MergedConfig) -> str:
    rules = merged.classification.escalation_rules
    if not rules:
        return "None."

    lines: list[str] = []
    for category, rule in rules.items():
        notify = f", notify {', '.join(rule.notify)}" if rule.notify else ""
        lines.append(
            f"- {category}: {rule.urgency}, respond within "
            f"{_format_minutes(rule.response_time_minutes)}{notify}"
        )
    return "\n".join(lines)


def _build_keyword_list(merged: MergedConfig) -> str:
    groups = merged.classification.keyword_groups
    if not groups:
        return "None."
    return "\n".join(f"- {group}: {', '.join(words)}" for group, words in groups.items())


def _format_minutes(minutes: int) -> str:
    if minutes % 1440 == 0:
        days = minutes // 1440
        return f"{days} day{'s' if days > 1 else ''}"
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours > 1 else ''}"
    return f"{minutes} minute{'s' if minutes > 1 else ''}"


def _bullets(items: tuple[str, ...], empty: str) -> str:
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_CLASSIFICATION_PROMPT_TEMPLATE = """\
You classify incoming email for {business_name} ({services}).
Assign exactly one top-level category from the list below. Use the most \
specific matching category when an intent maps to more than one.

CATEGORIES:
{categories}

ESCALATION:
{escalation}

KEY TERMS:
{keywords}

RULES:
{rules}

Only act on a classification with confidence of at least {threshold}. Below \
that, use MISC and flag the message for review.\
"""

_BEHAVIOR_PROMPT_TEMPLATE = """\
You draft email replies on behalf of {business_name}.

VOICE:
- Tone: {tone}
- Formality: {formality}. {formality_guidance}
- Empathy: {empathy} (0 = matter-of-fact, 1 = very warm)
- Directness: {directness} (0 = gentle, 1 = get straight to the point)

PRICING:
{pricing}

GOALS:
{goals}

UPSELL:
{upsell}

FOLLOW-UP:
{follow_up}

CATEGORY LANGUAGE:
{overrides}\
"""
