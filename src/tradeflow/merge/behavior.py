"""Behavior merger.

Blends reply voice across the selected categories:
- Tone: kept when every input agrees, otherwise a composite label naming
  each contributing category
- Formality, empathy, directness: arithmetic mean
- Price disclosure: allowed only if every input allows it
- Goals: concatenated, exact duplicates dropped
- Upsell and follow-up: enabled if any input enables; texts concatenated
- Category overrides: union by key, higher priority (lower number) wins,
  phrase lists unioned
- Signature: first input wins
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from tradeflow.core.errors import InvalidArgument
from tradeflow.schemas.models import (
    BehaviorFragment,
    Guidance,
    LanguageOverride,
    VoiceProfile,
    dedupe,
)

FORMALITY_LEVELS = {"casual": 1, "medium": 2, "formal": 3}
FORMALITY_NAMES = {value: name for name, value in FORMALITY_LEVELS.items()}

GUIDANCE_SEPARATOR = "\n\n"

# Same precision as the bundled fragments
SCALAR_PRECISION = 2


def merge_behavior(
    fragments: Sequence[BehaviorFragment],
    sources: Sequence[str] | None = None,
) -> BehaviorFragment:
    """Merge behavior fragments in selection order.

    Args:
        fragments: One fragment per selected category (at least one)
        sources: Display names of the categories, parallel to fragments.
            Used to label a composite tone.

    Returns:
        The merged fragment. A single input is returned unchanged.

    Raises:
        InvalidArgument: If fragments is empty or sources has the wrong length
    """
    if not fragments:
        raise InvalidArgument("Cannot merge an empty list of behavior fragments")
    if sources is not None and len(sources) != len(fragments):
        raise InvalidArgument(
            f"Got {len(sources)} source names for {len(fragments)} behavior fragments"
        )
    if len(fragments) == 1:
        return fragments[0]

    voices = [f.voice for f in fragments]
    voice = VoiceProfile(
        tone=blend_tone([v.tone for v in voices], sources),
        formality=mean_formality([v.formality for v in voices]),
        empathy=_mean([v.empathy for v in voices]),
        directness=_mean([v.directness for v in voices]),
        allow_pricing=all(v.allow_pricing for v in voices),
    )

    goals: list[str] = []
    for fragment in fragments:
        goals.extend(fragment.behavior_goals)

    return BehaviorFragment(
        voice=voice,
        behavior_goals=dedupe(goals),
        upsell=_merge_guidance([f.upsell for f in fragments]),
        follow_up=_merge_guidance([f.follow_up for f in fragments]),
        category_overrides=_merge_overrides(fragments),
        signature=fragments[0].signature,
    )


def blend_tone(tones: Sequence[str], sources: Sequence[str] | None = None) -> str:
    """Combine tone labels deterministically.

    A single distinct tone is kept as-is. Otherwise the distinct tones are
    listed in input order followed by the contributing categories, e.g.
    "safety-focused, reassuring (multi-service: Electrician + Plumber)".
    """
    distinct = dedupe(tones)
    if len(distinct) == 1:
        return distinct[0]

    label = ", ".join(distinct)
    if sources:
        return f"{label} (multi-service: {' + '.join(dedupe(sources))})"
    return f"{label}, multi-service"


def mean_formality(levels: Sequence[str]) -> str:
    """Mean of formality levels on a casual=1..formal=3 scale.

    Halves round toward the more formal level.
    """
    total = Decimal(sum(FORMALITY_LEVELS[level] for level in levels))
    score = int((total / len(levels)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return FORMALITY_NAMES[score]


def _mean(values: Sequence[float]) -> float:
    mean = sum(Decimal(str(v)) for v in values) / len(values)
    return float(mean.quantize(Decimal(1).scaleb(-SCALAR_PRECISION), rounding=ROUND_HALF_UP))


def _merge_guidance(blocks: Sequence[Guidance]) -> Guidance:
    texts = dedupe(b.text.strip() for b in blocks if b.text.strip())
    return Guidance(
        enabled=any(b.enabled for b in blocks),
        text=GUIDANCE_SEPARATOR.join(texts),
    )


def _merge_overrides(fragments: Sequence[BehaviorFragment]) -> dict[str, LanguageOverride]:
    merged: dict[str, LanguageOverride] = {}
    for fragment in fragments:
        for category, override in fragment.category_overrides.items():
            existing = merged.get(category)
            if existing is None:
                merged[category] = override
                continue
            # Higher-priority block's phrases lead
            first, second = (
                (override, existing) if override.priority < existing.priority else (existing, override)
            )
            merged[category] = LanguageOverride(
                priority=first.priority,
                phrases=dedupe((*first.phrases, *second.phrases)),
            )
    return merged
