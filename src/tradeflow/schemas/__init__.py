"""Business-category schema fragments.

This package provides the fragment data model and the loader:
- Frozen pydantic models for the classification, behavior and label layers
- Fragment stores (files on disk, in memory)
- SchemaLoader with a version-aware read-through cache
"""

from tradeflow.schemas.loader import (
    CategoryEntry,
    FileFragmentStore,
    FragmentStore,
    InMemoryFragmentStore,
    SchemaLoader,
)
from tradeflow.schemas.models import (
    BehaviorFragment,
    BusinessCategorySchema,
    ClassificationFragment,
    Label,
    LabelFragment,
)

__all__ = [
    # Loader
    "CategoryEntry",
    "FileFragmentStore",
    "FragmentStore",
    "InMemoryFragmentStore",
    "SchemaLoader",
    # Models
    "BehaviorFragment",
    "BusinessCategorySchema",
    "ClassificationFragment",
    "Label",
    "LabelFragment",
]
