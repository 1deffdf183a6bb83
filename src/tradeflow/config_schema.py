"""Pydantic configuration schema for Tradeflow.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models when loaded.

Usage:
    from tradeflow.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

PACKAGE_DIR = Path(__file__).parent
BUNDLED_SCHEMA_DIR = PACKAGE_DIR / "schemas" / "data"
BUNDLED_TEMPLATE_DIR = PACKAGE_DIR / "render" / "templates"


def _reject_traversal(v: str, what: str) -> str:
    if not v or not v.strip():
        raise ValueError(f"{what} cannot be empty")
    if ".." in Path(v).parts:
        raise ValueError(f"{what} cannot contain '..' (path traversal)")
    return v


class SchemaStoreConfig(BaseModel):
    """Schema fragment store configuration."""

    path: str = Field(
        default=str(BUNDLED_SCHEMA_DIR),
        description="Directory holding registry.yaml and per-category fragment folders",
    )
    cache_enabled: bool = Field(
        default=True,
        description="Cache loaded fragments by (category, version)",
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        return _reject_traversal(v, "Schema store path")


class TemplateConfig(BaseModel):
    """Deployment template configuration."""

    path: str = Field(
        default=str(BUNDLED_TEMPLATE_DIR),
        description="Directory holding deployment templates",
    )
    default: str = Field(
        default="deployment.json",
        description="Template file used when a request names none",
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        return _reject_traversal(v, "Template path")

    @field_validator("default")
    @classmethod
    def validate_default(cls, v: str) -> str:
        """Template names are plain file names inside the template directory."""
        v = _reject_traversal(v, "Default template")
        if "/" in v or "\\" in v:
            raise ValueError("Default template must be a file name, not a path")
        return v


class TeamConfig(BaseModel):
    """Team roster limits (slots per role for {{Manager1}} style variables)."""

    default_slot_limit: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum roster entries per role",
    )
    slot_limits: dict[str, int] = Field(
        default_factory=lambda: {"supplier": 10},
        description="Per-role overrides (role name, case-insensitive)",
    )

    @field_validator("slot_limits")
    @classmethod
    def validate_slot_limits(cls, v: dict[str, int]) -> dict[str, int]:
        normalized: dict[str, int] = {}
        for role, limit in v.items():
            if limit < 1 or limit > 20:
                raise ValueError(f"Slot limit for '{role}' must be between 1 and 20")
            normalized[role.strip().lower()] = limit
        return normalized

    def limit_for(self, role: str) -> int:
        return self.slot_limits.get(role.strip().lower(), self.default_slot_limit)


class ValidationConfig(BaseModel):
    """Consistency validation policy."""

    orphan_policy: Literal["fail", "warn"] = Field(
        default="fail",
        description="'fail' refuses deployment on orphan categories, 'warn' logs and continues",
    )
    check_resolved_labels: bool = Field(
        default=True,
        description="Re-check label names for duplicates after team slots are filled",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    json_output: bool = Field(
        default=True,
        description="JSON logs for servers; the CLI always uses console output",
    )


class AppConfig(BaseModel):
    """Root configuration schema for Tradeflow.

    Every section has defaults, so an empty config.yaml (or none at all)
    yields a working engine over the bundled fragments and templates.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )
    schemas: SchemaStoreConfig = Field(default_factory=SchemaStoreConfig)
    templates: TemplateConfig = Field(default_factory=TemplateConfig)
    team: TeamConfig = Field(default_factory=TeamConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
