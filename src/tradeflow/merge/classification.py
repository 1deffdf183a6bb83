"""Classification merger.

Unions keyword groups, intent routing, escalation rules and free-text rules
across the selected categories. The merged confidence threshold is the
maximum of the inputs (most restrictive wins).

Usage:
    from tradeflow.merge.classification import merge_classification

    merged = merge_classification([electrician.classification, plumber.classification])
"""

from __future__ import annotations

from collections.abc import Sequence

from tradeflow.core.errors import InvalidArgument
from tradeflow.schemas.models import ClassificationFragment, EscalationRule, dedupe


def merge_classification(fragments: Sequence[ClassificationFragment]) -> ClassificationFragment:
    """Merge classification fragments in selection order.

    Args:
        fragments: One fragment per selected category (at least one)

    Returns:
        The merged fragment. A single input is returned unchanged.

    Raises:
        InvalidArgument: If fragments is empty
    """
    if not fragments:
        raise InvalidArgument("Cannot merge an empty list of classification fragments")
    if len(fragments) == 1:
        return fragments[0]

    keyword_groups: dict[str, list[str]] = {}
    intent_map: dict[str, list[str]] = {}
    escalation_rules: dict[str, EscalationRule] = {}
    rules: list[str] = []

    for fragment in fragments:
        for group, words in fragment.keyword_groups.items():
            keyword_groups.setdefault(group, []).extend(words)

        # Conflicting targets are all kept; consumers pick the most specific one
        for intent, categories in fragment.intent_map.items():
            intent_map.setdefault(intent, []).extend(categories)

        for category, rule in fragment.escalation_rules.items():
            existing = escalation_rules.get(category)
            escalation_rules[category] = rule if existing is None else _merge_escalation(existing, rule)

        rules.extend(fragment.classification_rules)

    return ClassificationFragment(
        keyword_groups={group: dedupe(words) for group, words in keyword_groups.items()},
        intent_map={intent: dedupe(cats) for intent, cats in intent_map.items()},
        escalation_rules=escalation_rules,
        confidence_threshold=max(f.confidence_threshold for f in fragments),
        classification_rules=dedupe(rules),
    )


def _merge_escalation(first: EscalationRule, second: EscalationRule) -> EscalationRule:
    """Shortest response-time budget wins; notify lists are unioned.

    Ties keep the earlier rule's urgency tier.
    """
    winner = second if second.response_time_minutes < first.response_time_minutes else first
    return EscalationRule(
        urgency=winner.urgency,
        response_time_minutes=winner.response_time_minutes,
        notify=dedupe((*first.notify, *second.notify)),
    )
