"""Tests for the schema loader and fragment stores.

Tests cover:
- Resolving ids, display names and aliases case-insensitively
- Selection order and duplicate collapsing
- Defaults for absent optional fields, SLA strings
- Version-aware cache, invalidate() and refresh()
- File store: bundled data, registry reload, malformed fragments
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

import pytest
import yaml

from tradeflow.config_schema import BUNDLED_SCHEMA_DIR
from tradeflow.core.errors import InvalidArgument, SchemaLoadFailure
from tradeflow.schemas.loader import FileFragmentStore, InMemoryFragmentStore, SchemaLoader
from tradeflow.schemas.models import LAYERS


class CountingStore(InMemoryFragmentStore):
    """In-memory store that counts fetches."""

    def __init__(self) -> None:
        super().__init__()
        self.fetches = 0

    def fetch(self, category: str, layer: str) -> dict[str, Any]:
        self.fetches += 1
        return super().fetch(category, layer)


def _write_store(root: Path, categories: dict[str, str]) -> None:
    """Write a minimal file store with one URGENT label per category."""
    root.mkdir(parents=True, exist_ok=True)
    registry = {
        "categories": [{"id": cid, "version": version} for cid, version in categories.items()]
    }
    (root / "registry.yaml").write_text(yaml.safe_dump(registry))
    for cid in categories:
        (root / cid).mkdir(exist_ok=True)
        (root / cid / "classification.json").write_text(
            json.dumps({"intent_map": {"ai.emergency_request": "URGENT"}})
        )
        (root / cid / "behavior.json").write_text("{}")
        (root / cid / "labels.json").write_text(json.dumps({"labels": [{"name": "URGENT"}]}))


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("identifier", ["plumber", "Plumber", "PLUMBING", "  plumbing "])
def test_resolve_by_any_name(loader: SchemaLoader, identifier: str):
    assert loader.resolve(identifier).category == "plumber"


def test_resolve_unknown_lists_known_categories(loader: SchemaLoader):
    with pytest.raises(InvalidArgument) as exc_info:
        loader.resolve("Roofer")

    assert "Roofer" in str(exc_info.value)
    assert "Electrician" in str(exc_info.value)


def test_load_many_keeps_selection_order(loader: SchemaLoader):
    schemas = loader.load_many(["Plumber", "Electrician"])

    assert [s.category for s in schemas] == ["plumber", "electrician"]


def test_load_many_collapses_duplicate_selection(loader: SchemaLoader):
    """The same category selected by id and alias is loaded once."""
    schemas = loader.load_many(["Electrician", "plumber", "electrical"])

    assert [s.category for s in schemas] == ["electrician", "plumber"]


def test_load_many_empty_raises(loader: SchemaLoader):
    with pytest.raises(InvalidArgument, match="At least one"):
        loader.load_many([])


# ---------------------------------------------------------------------------
# Fragment parsing
# ---------------------------------------------------------------------------


def test_absent_optional_fields_use_defaults():
    store = InMemoryFragmentStore()
    store.add("bare", "1", classification={}, behavior={}, labels={})

    schema = SchemaLoader(store).load("bare")

    assert schema.classification.confidence_threshold == 0.75
    assert schema.behavior.voice.formality == "medium"
    assert schema.behavior.voice.allow_pricing is False
    assert schema.labels.labels == ()
    assert schema.labels.auto_reply.enabled is True


def test_sla_string_parsed_to_minutes(loader: SchemaLoader):
    schema = loader.load("electrician")

    assert schema.classification.escalation_rules["URGENT"].response_time_minutes == 15


def test_bare_intent_value_becomes_tuple(loader: SchemaLoader):
    schema = loader.load("electrician")

    assert schema.classification.intent_map["ai.emergency_request"] == ("URGENT",)


def test_malformed_fragment_raises_schema_load_failure(electrician_fragments: dict[str, Any]):
    electrician_fragments["classification"]["confidence_threshold"] = 1.5
    store = InMemoryFragmentStore()
    store.add("electrician", "1", **electrician_fragments)

    with pytest.raises(SchemaLoadFailure) as exc_info:
        SchemaLoader(store).load("electrician")

    assert exc_info.value.category == "electrician"
    assert exc_info.value.layer == "classification"
    assert "confidence_threshold" in str(exc_info.value)


def test_duplicate_child_names_rejected(electrician_fragments: dict[str, Any]):
    electrician_fragments["labels"]["labels"][0]["children"].append({"name": "No Power"})
    store = InMemoryFragmentStore()
    store.add("electrician", "1", **electrician_fragments)

    with pytest.raises(SchemaLoadFailure, match="Duplicate label name 'No Power'"):
        SchemaLoader(store).load("electrician")


def test_bad_sla_string_rejected(electrician_fragments: dict[str, Any]):
    electrician_fragments["classification"]["escalation_rules"]["URGENT"]["sla"] = "soon"
    store = InMemoryFragmentStore()
    store.add("electrician", "1", **electrician_fragments)

    with pytest.raises(SchemaLoadFailure, match="SLA must look like"):
        SchemaLoader(store).load("electrician")


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.fixture
def counting_store(electrician_fragments: dict[str, Any]) -> CountingStore:
    store = CountingStore()
    store.add("electrician", "1.0.0", display_name="Electrician", **electrician_fragments)
    return store


def test_cache_hit_skips_fetch(counting_store: CountingStore):
    loader = SchemaLoader(counting_store)

    first = loader.load("electrician")
    second = loader.load("Electrician")

    assert first is second
    assert counting_store.fetches == len(LAYERS)


def test_cache_disabled_always_fetches(counting_store: CountingStore):
    loader = SchemaLoader(counting_store, cache_enabled=False)

    loader.load("electrician")
    loader.load("electrician")

    assert counting_store.fetches == 2 * len(LAYERS)


def test_version_bump_is_never_served_stale(
    counting_store: CountingStore, electrician_fragments: dict[str, Any]
):
    loader = SchemaLoader(counting_store)
    old = loader.load("electrician")

    electrician_fragments["classification"]["confidence_threshold"] = 0.9
    counting_store.add("electrician", "1.1.0", display_name="Electrician", **electrician_fragments)
    new = loader.load("electrician")

    assert old.version == "1.0.0"
    assert new.version == "1.1.0"
    assert new.classification.confidence_threshold == 0.9


def test_invalidate_one_category(counting_store: CountingStore):
    loader = SchemaLoader(counting_store)
    loader.load("electrician")

    loader.invalidate("Electrician")
    loader.load("electrician")

    assert counting_store.fetches == 2 * len(LAYERS)


def test_invalidate_all(counting_store: CountingStore):
    loader = SchemaLoader(counting_store)
    loader.load("electrician")

    loader.invalidate()
    loader.load("electrician")

    assert counting_store.fetches == 2 * len(LAYERS)


def test_refresh_evicts_changed_versions(
    counting_store: CountingStore, electrician_fragments: dict[str, Any]
):
    loader = SchemaLoader(counting_store)
    loader.load("electrician")

    counting_store.add("electrician", "2.0.0", **electrician_fragments)
    loader.refresh()

    assert loader._cache == {}


def test_concurrent_misses_return_one_cached_copy(counting_store: CountingStore):
    """Concurrent loads may fetch twice, but everyone ends up with valid schemas."""
    loader = SchemaLoader(counting_store)
    results = []

    def load() -> None:
        results.append(loader.load("electrician"))

    threads = [threading.Thread(target=load) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 8
    assert all(r == results[0] for r in results)
    assert loader.load("electrician") in results


# ---------------------------------------------------------------------------
# File store
# ---------------------------------------------------------------------------


def test_bundled_fragments_all_load():
    loader = SchemaLoader(FileFragmentStore(BUNDLED_SCHEMA_DIR))

    schemas = loader.load_many([entry.category for entry in loader.available()])

    assert {s.category for s in schemas} == {"electrician", "plumber", "hvac", "pools_spas"}
    assert loader.resolve("Heating & Cooling").category == "hvac"


def test_file_store_picks_up_registry_changes(tmp_path: Path):
    root = tmp_path / "schemas"
    _write_store(root, {"roofer": "1"})
    store = FileFragmentStore(root)
    loader = SchemaLoader(store)
    assert loader.load("roofer").version == "1"

    _write_store(root, {"roofer": "2"})
    registry = root / "registry.yaml"
    stat = registry.stat()
    os.utime(registry, (stat.st_atime, stat.st_mtime + 10))

    assert loader.load("roofer").version == "2"


def test_file_store_missing_registry(tmp_path: Path):
    loader = SchemaLoader(FileFragmentStore(tmp_path))

    with pytest.raises(SchemaLoadFailure, match="registry not found"):
        loader.load("anything")


def test_file_store_missing_layer(tmp_path: Path):
    root = tmp_path / "schemas"
    _write_store(root, {"roofer": "1"})
    (root / "roofer" / "behavior.json").unlink()

    with pytest.raises(SchemaLoadFailure) as exc_info:
        SchemaLoader(FileFragmentStore(root)).load("roofer")

    assert exc_info.value.layer == "behavior"


def test_file_store_malformed_json_reports_position(tmp_path: Path):
    root = tmp_path / "schemas"
    _write_store(root, {"roofer": "1"})
    (root / "roofer" / "labels.json").write_text('{"labels": [\n  {"name": }\n]}')

    with pytest.raises(SchemaLoadFailure, match="line 2"):
        SchemaLoader(FileFragmentStore(root)).load("roofer")


def test_file_store_registry_entry_without_version(tmp_path: Path):
    root = tmp_path / "schemas"
    root.mkdir()
    (root / "registry.yaml").write_text("categories:\n  - id: roofer\n")

    with pytest.raises(SchemaLoadFailure, match="needs 'id' and 'version'"):
        SchemaLoader(FileFragmentStore(root)).available()
