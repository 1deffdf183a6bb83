"""Consistency validator.

Checks that the merged classification layer and the merged label taxonomy
agree on their category sets. The checks are pure; apply_orphan_policy()
turns a failed report into an error or a warning according to config.

A second check runs after dynamic variables are resolved: two children of
one parent that resolve to the same name would create the same folder
twice.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from tradeflow.core.errors import ConsistencyViolation
from tradeflow.core.logging import get_logger
from tradeflow.merge.merged import MergedConfig

logger = get_logger(__name__)

OrphanPolicy = Literal["fail", "warn"]


@dataclass(frozen=True, slots=True)
class ConsistencyReport:
    """Result of the pre-resolution consistency check.

    Attributes:
        classification_orphans: Categories routed or escalated by
            classification but missing from the top-level labels
        label_orphans: Top-level labels no classification rule targets
        override_orphans: Behavior override keys with no matching label.
            Informational only; never fails the check.
    """

    classification_orphans: tuple[str, ...] = ()
    label_orphans: tuple[str, ...] = ()
    override_orphans: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return not self.classification_orphans and not self.label_orphans

    @property
    def orphans(self) -> tuple[str, ...]:
        return self.classification_orphans + self.label_orphans


def check_consistency(merged: MergedConfig) -> ConsistencyReport:
    """Compare the classification category set with the top-level label names."""
    categories = merged.classification.category_names()
    label_names = merged.labels.top_level_names()
    label_set = set(label_names)
    category_set = set(categories)

    return ConsistencyReport(
        classification_orphans=tuple(c for c in categories if c not in label_set),
        label_orphans=tuple(n for n in label_names if n not in category_set),
        override_orphans=tuple(
            c for c in merged.behavior.category_overrides if c not in label_set
        ),
    )


def find_duplicate_paths(paths: Iterable[tuple[str, ...]]) -> tuple[str, ...]:
    """Return '/'-joined label paths that occur more than once.

    Args:
        paths: Resolved label paths (top-level name first). Collapsed labels
            should already be left out.
    """
    seen: set[tuple[str, ...]] = set()
    duplicates: list[str] = []
    for path in paths:
        if path in seen:
            joined = "/".join(path)
            if joined not in duplicates:
                duplicates.append(joined)
        seen.add(path)
    return tuple(duplicates)


def apply_orphan_policy(report: ConsistencyReport, policy: OrphanPolicy = "fail") -> None:
    """Raise or warn on a failed report.

    Raises:
        ConsistencyViolation: If the report failed and policy is 'fail'
    """
    if report.override_orphans:
        logger.debug("behavior_override_orphans", categories=list(report.override_orphans))

    if report.passed:
        return

    logger.warning(
        "consistency_orphans_detected",
        classification_orphans=list(report.classification_orphans),
        label_orphans=list(report.label_orphans),
        policy=policy,
    )
    if policy == "warn":
        return

    parts = []
    if report.classification_orphans:
        parts.append(
            "classification references categories with no top-level label: "
            + ", ".join(report.classification_orphans)
        )
    if report.label_orphans:
        parts.append(
            "top-level labels with no classification category: "
            + ", ".join(report.label_orphans)
        )
    raise ConsistencyViolation(
        "Merged configuration is inconsistent; "
        + "; ".join(parts)
        + ". Fix the category fragments or set validation.orphan_policy to 'warn'",
        classification_orphans=list(report.classification_orphans),
        label_orphans=list(report.label_orphans),
    )


def apply_duplicate_policy(duplicates: tuple[str, ...], policy: OrphanPolicy = "fail") -> None:
    """Raise or warn on label paths that collide after variable resolution.

    Raises:
        ConsistencyViolation: If duplicates exist and policy is 'fail'
    """
    if not duplicates:
        return

    logger.warning("resolved_label_duplicates_detected", paths=list(duplicates), policy=policy)
    if policy == "warn":
        return

    raise ConsistencyViolation(
        "Resolved label names collide: "
        + ", ".join(duplicates)
        + ". Check the team roster for repeated names",
        duplicate_paths=list(duplicates),
    )
