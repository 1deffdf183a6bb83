"""Pytest fixtures and configuration for Tradeflow tests.

Provides common fixtures for configuration, an in-memory fragment store
with Electrician and Plumber categories, and a runtime context.
"""

import copy
import os
from pathlib import Path
from typing import Any, Generator

import pytest

from tradeflow.config import reset_config
from tradeflow.config_schema import AppConfig
from tradeflow.engine.deployment import DeploymentEngine
from tradeflow.render.context import RuntimeContext
from tradeflow.schemas.loader import InMemoryFragmentStore, SchemaLoader


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

team:
  default_slot_limit: 3
  slot_limits:
    supplier: 8

validation:
  orphan_policy: "warn"
"""


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the TRADEFLOW_CONFIG_PATH environment variable."""
    old_value = os.environ.get("TRADEFLOW_CONFIG_PATH")
    os.environ["TRADEFLOW_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["TRADEFLOW_CONFIG_PATH"]
    else:
        os.environ["TRADEFLOW_CONFIG_PATH"] = old_value


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


@pytest.fixture
def electrician_fragments() -> dict[str, dict[str, Any]]:
    """Electrician fragments: URGENT has No Power and Electrical Hazard, threshold 0.70."""
    return {
        "classification": {
            "keyword_groups": {
                "emergency": ["no power", "sparking", "shock"],
                "service": ["panel upgrade", "outlet"],
            },
            "intent_map": {
                "ai.emergency_request": "URGENT",
                "ai.support_ticket": "SUPPORT",
                "ai.internal_routing": "MANAGER",
                "ai.inspection_request": "SUPPORT",
                "ai.general": "MISC",
            },
            "escalation_rules": {
                "URGENT": {"urgency": "critical", "sla": "15 minutes", "notify": ["owner"]},
            },
            "confidence_threshold": 0.70,
            "classification_rules": ["Sparks or burning smell is always URGENT."],
        },
        "behavior": {
            "voice": {
                "tone": "safety-focused",
                "formality": "medium",
                "empathy": 0.7,
                "directness": 0.8,
                "allow_pricing": False,
            },
            "behavior_goals": ["Put safety first", "Confirm the service address"],
            "upsell": {"enabled": True, "text": "Mention surge protection."},
            "follow_up": {"enabled": False, "text": ""},
            "category_overrides": {
                "URGENT": {"priority": 1, "phrases": ["Switch off the main breaker."]},
            },
        },
        "labels": {
            "labels": [
                {
                    "name": "URGENT",
                    "intent": "ai.emergency_request",
                    "critical": True,
                    "color": {"background": "#fb4c2f", "text": "#ffffff"},
                    "children": [{"name": "No Power"}, {"name": "Electrical Hazard"}],
                },
                {"name": "SUPPORT", "intent": "ai.support_ticket", "children": [{"name": "General"}]},
                {
                    "name": "MANAGER",
                    "intent": "ai.internal_routing",
                    "children": [
                        {"name": "Unassigned"},
                        {"name": "{{Manager1}}"},
                        {"name": "{{Manager2}}"},
                    ],
                },
                {"name": "MISC", "intent": "ai.general"},
            ],
            "domain_detection": {
                "suppliers": [{"name": "Nedco", "domains": ["nedco.ca"]}],
                "phone_providers": [{"name": "RingCentral", "email": "service@ringcentral.com"}],
            },
            "auto_reply": {"enabled": True, "min_confidence": 0.80, "enabled_categories": ["SUPPORT"]},
        },
    }


@pytest.fixture
def plumber_fragments() -> dict[str, dict[str, Any]]:
    """Plumber fragments: URGENT has Burst Pipe and Flooding, threshold 0.75."""
    return {
        "classification": {
            "keyword_groups": {
                "emergency": ["burst pipe", "flooding", "no power"],
                "drains": ["clog", "backup"],
            },
            "intent_map": {
                "ai.emergency_request": "URGENT",
                "ai.support_ticket": "SUPPORT",
                "ai.internal_routing": "MANAGER",
                "ai.general": "MISC",
            },
            "escalation_rules": {
                "URGENT": {"urgency": "high", "response_time_minutes": 10, "notify": ["on-call"]},
            },
            "confidence_threshold": 0.75,
        },
        "behavior": {
            "voice": {
                "tone": "reassuring",
                "formality": "casual",
                "empathy": 0.9,
                "directness": 0.6,
                "allow_pricing": True,
            },
            "behavior_goals": ["Confirm the service address", "Ask where the water is coming from"],
            "upsell": {"enabled": False, "text": "Offer a drain inspection."},
            "follow_up": {"enabled": True, "text": "Check in the next day."},
            "category_overrides": {
                "URGENT": {"priority": 2, "phrases": ["Shut off the main water valve."]},
            },
        },
        "labels": {
            "labels": [
                {
                    "name": "URGENT",
                    "intent": "ai.emergency_request",
                    "critical": False,
                    "color": {"background": "#e07798", "text": "#ffffff"},
                    "children": [{"name": "Burst Pipe"}, {"name": "Flooding"}],
                },
                {"name": "SUPPORT", "intent": "ai.support_ticket", "children": [{"name": "General"}]},
                {
                    "name": "MANAGER",
                    "intent": "ai.internal_routing",
                    "children": [{"name": "Unassigned"}, {"name": "{{Manager1}}"}],
                },
                {"name": "MISC", "intent": "ai.general"},
            ],
            "domain_detection": {
                "suppliers": [{"name": "Nedco", "domains": ["nedco.com"]}],
                "internal_domains": ["plumbco.com"],
            },
            "auto_reply": {"enabled": True, "min_confidence": 0.85, "enabled_categories": ["MISC"]},
        },
    }


@pytest.fixture
def memory_store(
    electrician_fragments: dict[str, dict[str, Any]],
    plumber_fragments: dict[str, dict[str, Any]],
) -> InMemoryFragmentStore:
    """In-memory store holding Electrician and Plumber."""
    store = InMemoryFragmentStore()
    store.add(
        "electrician",
        "1.0.0",
        display_name="Electrician",
        aliases=["Electrical"],
        **copy.deepcopy(electrician_fragments),
    )
    store.add(
        "plumber",
        "1.0.0",
        display_name="Plumber",
        aliases=["Plumbing"],
        **copy.deepcopy(plumber_fragments),
    )
    return store


@pytest.fixture
def loader(memory_store: InMemoryFragmentStore) -> SchemaLoader:
    return SchemaLoader(memory_store)


@pytest.fixture
def app_config() -> AppConfig:
    """Default config (bundled template directory, fail-closed validation)."""
    return AppConfig()


@pytest.fixture
def engine(app_config: AppConfig, loader: SchemaLoader) -> DeploymentEngine:
    return DeploymentEngine(app_config, loader=loader)


@pytest.fixture
def context_dict() -> dict[str, Any]:
    return {
        "business": {
            "name": "Bright Spark Services",
            "domain": "BrightSpark.ca",
            "phone": "555-0100",
            "currency": "cad",
        },
        "team": [
            {"role": "manager", "name": "Dana Lee"},
            {"role": "Supplier", "name": "Nedco"},
        ],
        "folder_ids": {"URGENT": "F123"},
    }


@pytest.fixture
def runtime_context(context_dict: dict[str, Any]) -> RuntimeContext:
    return RuntimeContext.model_validate(context_dict)
