"""Schema merging and consistency validation.

This package provides:
- Per-layer mergers (classification, behavior, label taxonomy)
- merge_schemas() producing a MergedConfig from selected category schemas
- The consistency validator run before and after placeholder resolution
"""

from tradeflow.merge.behavior import blend_tone, mean_formality, merge_behavior
from tradeflow.merge.classification import merge_classification
from tradeflow.merge.labels import merge_label_lists, merge_labels
from tradeflow.merge.merged import MergedConfig, merge_schemas
from tradeflow.merge.validator import (
    ConsistencyReport,
    apply_duplicate_policy,
    apply_orphan_policy,
    check_consistency,
    find_duplicate_paths,
)

__all__ = [
    # Mergers
    "blend_tone",
    "mean_formality",
    "merge_behavior",
    "merge_classification",
    "merge_label_lists",
    "merge_labels",
    "MergedConfig",
    "merge_schemas",
    # Validation
    "ConsistencyReport",
    "apply_duplicate_policy",
    "apply_orphan_policy",
    "check_consistency",
    "find_duplicate_paths",
]
