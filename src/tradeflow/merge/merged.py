"""MergedConfig and the top-level merge over whole category schemas."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from tradeflow.core.errors import InvalidArgument
from tradeflow.core.logging import get_logger
from tradeflow.merge.behavior import merge_behavior
from tradeflow.merge.classification import merge_classification
from tradeflow.merge.labels import merge_labels
from tradeflow.schemas.models import (
    BehaviorFragment,
    BusinessCategorySchema,
    ClassificationFragment,
    LabelFragment,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class MergedConfig:
    """Request-scoped result of merging the selected category schemas.

    Attributes:
        category_ids: Selected category identifiers, selection order
        display_names: Client-facing category names, selection order
        classification: Merged classification fragment
        behavior: Merged behavior fragment
        labels: Merged label taxonomy
    """

    category_ids: tuple[str, ...]
    display_names: tuple[str, ...]
    classification: ClassificationFragment
    behavior: BehaviorFragment
    labels: LabelFragment


def merge_schemas(schemas: Sequence[BusinessCategorySchema]) -> MergedConfig:
    """Merge every layer of the selected schemas.

    Selection order is significant: it decides first-wins scalar fields
    and the order of unioned lists.

    Raises:
        InvalidArgument: If schemas is empty
    """
    if not schemas:
        raise InvalidArgument("At least one business category schema is required to merge")

    display_names = tuple(s.display_name for s in schemas)
    merged = MergedConfig(
        category_ids=tuple(s.category for s in schemas),
        display_names=display_names,
        classification=merge_classification([s.classification for s in schemas]),
        behavior=merge_behavior([s.behavior for s in schemas], sources=display_names),
        labels=merge_labels([s.labels for s in schemas]),
    )

    logger.info(
        "schemas_merged",
        categories=list(merged.category_ids),
        labels=len(merged.labels.labels),
        intents=len(merged.classification.intent_map),
        confidence_threshold=merged.classification.confidence_threshold,
    )
    return merged
