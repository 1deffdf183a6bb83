"""Label taxonomy merger.

Merges folder trees across the selected categories. Labels are grouped by
exact name at every level: a name defined once is copied unchanged, a name
defined several times keeps the first definition's intent, critical flag
and color and unions the child lists by the same rule.

Auxiliary rule sets are merged most-restrictive-wins:
- Known suppliers deduped by name (domains unioned), phone providers by
  address, internal domains by domain string
- Auto-reply: enabled only if every input enables it, the highest
  min_confidence, the union of enabled categories
- Special routing rules merged by rule name, keyword lists unioned

Names holding dynamic variables ({{Manager1}}) are compared and copied
verbatim; they are resolved later by the placeholder resolver.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from tradeflow.core.errors import InvalidArgument
from tradeflow.schemas.models import (
    AutoReplyCondition,
    AutoReplyPolicy,
    DomainDetection,
    KnownSupplier,
    Label,
    LabelFragment,
    PhoneProvider,
    SpecialRule,
    dedupe,
)


def merge_labels(fragments: Sequence[LabelFragment]) -> LabelFragment:
    """Merge label fragments in selection order.

    Args:
        fragments: One fragment per selected category (at least one)

    Returns:
        The merged fragment. A single input is returned unchanged.

    Raises:
        InvalidArgument: If fragments is empty
    """
    if not fragments:
        raise InvalidArgument("Cannot merge an empty list of label fragments")
    if len(fragments) == 1:
        return fragments[0]

    return LabelFragment(
        labels=merge_label_lists(f.labels for f in fragments),
        domain_detection=_merge_domain_detection([f.domain_detection for f in fragments]),
        auto_reply=_merge_auto_reply([f.auto_reply for f in fragments]),
        special_rules=_merge_special_rules(f.special_rules for f in fragments),
    )


def merge_label_lists(label_lists: Iterable[Sequence[Label]]) -> tuple[Label, ...]:
    """Union sibling label lists by name, first-seen order."""
    grouped: dict[str, list[Label]] = {}
    for labels in label_lists:
        for label in labels:
            grouped.setdefault(label.name, []).append(label)
    return tuple(_merge_same_name(group) for group in grouped.values())


def _merge_same_name(definitions: list[Label]) -> Label:
    first = definitions[0]
    if len(definitions) == 1:
        return first
    # Scalar fields: first selected category wins
    return first.model_copy(
        update={"children": merge_label_lists(d.children for d in definitions)}
    )


def _merge_domain_detection(blocks: Sequence[DomainDetection]) -> DomainDetection:
    suppliers: dict[str, list[str]] = {}
    supplier_names: dict[str, str] = {}
    providers: dict[str, PhoneProvider] = {}
    internal: list[str] = []

    for block in blocks:
        for supplier in block.suppliers:
            key = supplier.name.strip().casefold()
            supplier_names.setdefault(key, supplier.name)
            suppliers.setdefault(key, []).extend(d.lower() for d in supplier.domains)
        for provider in block.phone_providers:
            providers.setdefault(provider.email.strip().lower(), provider)
        internal.extend(d.strip().lower() for d in block.internal_domains)

    return DomainDetection(
        suppliers=tuple(
            KnownSupplier(name=supplier_names[key], domains=dedupe(domains))
            for key, domains in suppliers.items()
        ),
        phone_providers=tuple(providers.values()),
        internal_domains=dedupe(internal),
    )


def _merge_auto_reply(policies: Sequence[AutoReplyPolicy]) -> AutoReplyPolicy:
    categories: list[str] = []
    # First condition seen for a rule wins
    conditions: dict[str, AutoReplyCondition] = {}
    for policy in policies:
        categories.extend(policy.enabled_categories)
        for condition in policy.conditions:
            conditions.setdefault(condition.rule, condition)
    return AutoReplyPolicy(
        enabled=all(p.enabled for p in policies),
        min_confidence=max(p.min_confidence for p in policies),
        enabled_categories=dedupe(categories),
        conditions=tuple(conditions.values()),
    )


def _merge_special_rules(rule_lists: Iterable[Sequence[SpecialRule]]) -> tuple[SpecialRule, ...]:
    merged: dict[str, SpecialRule] = {}
    for rules in rule_lists:
        for rule in rules:
            existing = merged.get(rule.name)
            if existing is None:
                merged[rule.name] = rule
            else:
                merged[rule.name] = existing.model_copy(
                    update={"keywords": dedupe((*existing.keywords, *rule.keywords))}
                )
    return tuple(merged.values())
