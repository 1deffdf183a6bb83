"""Schema loader: resolves business categories to their fragment triples.

Fragments live in a versioned store. The file store layout is:

    <root>/registry.yaml              # ids, display names, aliases, versions
    <root>/<category>/classification.json
    <root>/<category>/behavior.json
    <root>/<category>/labels.json

The loader keeps a read-through cache keyed by (category, version). Every
lookup resolves the category's current version first, so a version bump in
the registry is never served from a stale cache entry. Concurrent misses for
the same key may load twice; the second write is a no-op.

Usage:
    from tradeflow.schemas.loader import FileFragmentStore, SchemaLoader

    loader = SchemaLoader(FileFragmentStore(Path("schemas")))
    schemas = loader.load_many(["Electrician", "Plumbing"])
"""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from tradeflow.config import format_validation_errors
from tradeflow.core.errors import InvalidArgument, SchemaLoadFailure
from tradeflow.core.logging import get_logger
from tradeflow.schemas.models import (
    LAYERS,
    BehaviorFragment,
    BusinessCategorySchema,
    ClassificationFragment,
    LabelFragment,
)

logger = get_logger(__name__)

REGISTRY_FILE = "registry.yaml"


@dataclass(frozen=True, slots=True)
class CategoryEntry:
    """One registry entry.

    Attributes:
        category: Category identifier (directory name in the file store)
        display_name: Client-facing name
        version: Fragment set version
        aliases: Extra names clients may select the category by
    """

    category: str
    display_name: str
    version: str
    aliases: tuple[str, ...] = ()

    def names(self) -> tuple[str, ...]:
        return (self.category, self.display_name, *self.aliases)


class FragmentStore(Protocol):
    """Source of raw fragment documents."""

    def entries(self) -> list[CategoryEntry]:
        """Return the current registry (reflecting any version bumps)."""
        ...

    def fetch(self, category: str, layer: str) -> dict[str, Any]:
        """Return the raw JSON document for one category layer."""
        ...


class FileFragmentStore:
    """Fragment store backed by a directory of YAML/JSON files.

    The registry is re-read whenever registry.yaml's mtime changes, so
    version bumps on disk take effect without a restart.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = threading.Lock()
        self._entries: list[CategoryEntry] | None = None
        self._registry_mtime: float = 0.0

    def entries(self) -> list[CategoryEntry]:
        registry_path = self.root / REGISTRY_FILE
        try:
            mtime = registry_path.stat().st_mtime
        except OSError as e:
            raise SchemaLoadFailure(
                f"Fragment registry not found at {registry_path}: {e}\n"
                "Check the schemas.path setting in config.yaml"
            ) from e

        with self._lock:
            if self._entries is None or mtime > self._registry_mtime:
                self._entries = self._read_registry(registry_path)
                self._registry_mtime = mtime
                logger.debug(
                    "fragment_registry_loaded",
                    path=str(registry_path),
                    categories=len(self._entries),
                )
            return self._entries

    def _read_registry(self, path: Path) -> list[CategoryEntry]:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise SchemaLoadFailure(f"Failed to read fragment registry {path}:\n{e}") from e

        raw_entries = data.get("categories") if isinstance(data, dict) else None
        if not isinstance(raw_entries, list):
            raise SchemaLoadFailure(
                f"Fragment registry {path} must contain a 'categories' list"
            )

        entries = []
        for index, raw in enumerate(raw_entries):
            try:
                entries.append(
                    CategoryEntry(
                        category=str(raw["id"]),
                        display_name=str(raw.get("display_name", raw["id"])),
                        version=str(raw["version"]),
                        aliases=tuple(str(a) for a in raw.get("aliases", [])),
                    )
                )
            except (KeyError, TypeError, AttributeError) as e:
                raise SchemaLoadFailure(
                    f"Registry entry {index} in {path} is malformed ({e!r}); "
                    "each entry needs 'id' and 'version'"
                ) from e
        return entries

    def fetch(self, category: str, layer: str) -> dict[str, Any]:
        path = self.root / category / f"{layer}.json"
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise SchemaLoadFailure(
                f"Cannot read {layer} fragment for '{category}' at {path}: {e}",
                category=category,
                layer=layer,
            ) from e
        except json.JSONDecodeError as e:
            raise SchemaLoadFailure(
                f"Malformed JSON in {layer} fragment for '{category}' "
                f"({path}, line {e.lineno} column {e.colno}): {e.msg}",
                category=category,
                layer=layer,
            ) from e

        if not isinstance(data, dict):
            raise SchemaLoadFailure(
                f"{layer} fragment for '{category}' must be a JSON object, "
                f"got {type(data).__name__}",
                category=category,
                layer=layer,
            )
        return data


class InMemoryFragmentStore:
    """Fragment store held in memory. Used by tests and embedding callers."""

    def __init__(self) -> None:
        self._entries: dict[str, CategoryEntry] = {}
        self._documents: dict[tuple[str, str], dict[str, Any]] = {}

    def add(
        self,
        category: str,
        version: str,
        classification: dict[str, Any],
        behavior: dict[str, Any],
        labels: dict[str, Any],
        display_name: str | None = None,
        aliases: Sequence[str] = (),
    ) -> None:
        """Register (or replace) a category's fragments."""
        self._entries[category] = CategoryEntry(
            category=category,
            display_name=display_name or category,
            version=version,
            aliases=tuple(aliases),
        )
        self._documents[(category, "classification")] = classification
        self._documents[(category, "behavior")] = behavior
        self._documents[(category, "labels")] = labels

    def entries(self) -> list[CategoryEntry]:
        return list(self._entries.values())

    def fetch(self, category: str, layer: str) -> dict[str, Any]:
        try:
            return self._documents[(category, layer)]
        except KeyError as e:
            raise SchemaLoadFailure(
                f"No {layer} fragment stored for '{category}'",
                category=category,
                layer=layer,
            ) from e


_FRAGMENT_MODELS = {
    "classification": ClassificationFragment,
    "behavior": BehaviorFragment,
    "labels": LabelFragment,
}


class SchemaLoader:
    """Loads BusinessCategorySchema values with a version-aware cache.

    Attributes:
        store: Fragment store to read from
        cache_enabled: Whether loaded schemas are cached
    """

    def __init__(self, store: FragmentStore, cache_enabled: bool = True):
        self.store = store
        self.cache_enabled = cache_enabled
        self._cache: dict[tuple[str, str], BusinessCategorySchema] = {}
        self._cache_lock = threading.Lock()

    def available(self) -> list[CategoryEntry]:
        """List every category the store knows about."""
        return list(self.store.entries())

    def resolve(self, identifier: str) -> CategoryEntry:
        """Map an id, display name, or alias (case-insensitive) to its entry.

        Raises:
            InvalidArgument: If no category matches
        """
        wanted = identifier.strip().casefold()
        for entry in self.store.entries():
            if any(name.casefold() == wanted for name in entry.names()):
                return entry

        known = ", ".join(sorted(e.display_name for e in self.store.entries()))
        raise InvalidArgument(
            f"Unknown business category '{identifier}'. Known categories: {known}"
        )

    def load(self, identifier: str) -> BusinessCategorySchema:
        """Load one category's fragments at its current version.

        Raises:
            InvalidArgument: If the category is unknown
            SchemaLoadFailure: If a fragment cannot be read or is malformed
        """
        entry = self.resolve(identifier)
        key = (entry.category, entry.version)

        if self.cache_enabled:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None:
                logger.debug("schema_cache_hit", category=entry.category, version=entry.version)
                return cached

        schema = self._build(entry)

        if self.cache_enabled:
            with self._cache_lock:
                # Drop other versions of this category; keep whichever copy landed first
                for stale in [k for k in self._cache if k[0] == entry.category and k != key]:
                    del self._cache[stale]
                schema = self._cache.setdefault(key, schema)

        return schema

    def load_many(self, identifiers: Sequence[str]) -> list[BusinessCategorySchema]:
        """Load the selected categories, in selection order.

        Selecting the same category twice (by any of its names) keeps the
        first occurrence.

        Raises:
            InvalidArgument: If the selection is empty or names an unknown category
            SchemaLoadFailure: If a fragment cannot be loaded
        """
        if not identifiers:
            raise InvalidArgument(
                "At least one business category must be selected to build a deployment"
            )

        schemas: list[BusinessCategorySchema] = []
        seen: set[str] = set()
        for identifier in identifiers:
            schema = self.load(identifier)
            if schema.category in seen:
                logger.debug("duplicate_category_selection_ignored", category=identifier)
                continue
            seen.add(schema.category)
            schemas.append(schema)
        return schemas

    def invalidate(self, category: str | None = None) -> None:
        """Drop cached fragments for one category (any name), or all of them."""
        with self._cache_lock:
            if category is None:
                self._cache.clear()
                return
        entry = self.resolve(category)
        with self._cache_lock:
            for key in [k for k in self._cache if k[0] == entry.category]:
                del self._cache[key]

    def refresh(self) -> None:
        """Evict cache entries whose version no longer matches the registry."""
        current = {(e.category, e.version) for e in self.store.entries()}
        with self._cache_lock:
            stale = [key for key in self._cache if key not in current]
            for key in stale:
                del self._cache[key]
        if stale:
            logger.info("schema_cache_refreshed", evicted=[f"{c}@{v}" for c, v in stale])

    def _build(self, entry: CategoryEntry) -> BusinessCategorySchema:
        fragments: dict[str, Any] = {}
        for layer in LAYERS:
            document = self.store.fetch(entry.category, layer)
            try:
                fragments[layer] = _FRAGMENT_MODELS[layer].model_validate(document)
            except ValidationError as e:
                raise SchemaLoadFailure(
                    f"Invalid {layer} fragment for '{entry.category}' "
                    f"(version {entry.version}):\n{format_validation_errors(e)}",
                    category=entry.category,
                    layer=layer,
                ) from e

        schema = BusinessCategorySchema(
            category=entry.category,
            display_name=entry.display_name,
            version=entry.version,
            **fragments,
        )
        logger.info(
            "schema_loaded",
            category=entry.category,
            version=entry.version,
            labels=len(schema.labels.labels),
            intents=len(schema.classification.intent_map),
        )
        return schema
