"""Deployment engine: categories + runtime context -> DeployableConfig.

Runs the whole pipeline for one client:

    load -> merge -> validate -> resolve -> validate resolved labels
         -> sanitize -> inject

Every call gets a fresh deployment_id used as the log correlation id.
Deployment is all-or-nothing: any typed error refuses the whole request
and nothing partial is returned.

Usage:
    from tradeflow.engine.deployment import DeploymentEngine

    engine = DeploymentEngine(config)
    deployable = engine.build(["Electrician", "Plumber"], context)
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tradeflow.config import format_validation_errors
from tradeflow.config_schema import AppConfig
from tradeflow.core.errors import InvalidArgument, TradeflowError
from tradeflow.core.logging import get_logger, set_correlation_id
from tradeflow.merge.merged import MergedConfig, merge_schemas
from tradeflow.merge.validator import (
    ConsistencyReport,
    apply_duplicate_policy,
    apply_orphan_policy,
    check_consistency,
    find_duplicate_paths,
)
from tradeflow.render.context import RuntimeContext
from tradeflow.render.injector import DeployableConfig, Template, inject
from tradeflow.render.placeholders import (
    ResolvedPlaceholders,
    resolve_placeholders,
    sanitize_placeholders,
)
from tradeflow.schemas.loader import FileFragmentStore, SchemaLoader

logger = get_logger(__name__)


class DeploymentEngine:
    """Builds deployable configurations from category schemas.

    The engine holds no per-request state; one instance serves concurrent
    requests. The only shared state is the loader's fragment cache.

    Attributes:
        config: Application configuration
        loader: Schema loader (built from config.schemas when not given)
    """

    def __init__(self, config: AppConfig, loader: SchemaLoader | None = None):
        self.config = config
        self.loader = loader or SchemaLoader(
            FileFragmentStore(Path(config.schemas.path)),
            cache_enabled=config.schemas.cache_enabled,
        )

    def merge(self, categories: Sequence[str]) -> MergedConfig:
        """Load and merge the selected categories.

        Raises:
            InvalidArgument: If the selection is empty or unknown
            SchemaLoadFailure: If a fragment cannot be loaded
        """
        return merge_schemas(self.loader.load_many(categories))

    def check(self, categories: Sequence[str]) -> ConsistencyReport:
        """Merge the selected categories and report orphans without failing."""
        return check_consistency(self.merge(categories))

    def resolve(
        self,
        categories: Sequence[str],
        context: RuntimeContext | Mapping[str, Any],
    ) -> ResolvedPlaceholders:
        """Run the pipeline up to raw placeholder resolution, with both checks."""
        runtime = self.parse_context(context)
        merged = self.merge(categories)
        apply_orphan_policy(check_consistency(merged), self.config.validation.orphan_policy)

        resolved = resolve_placeholders(merged, runtime)
        if self.config.validation.check_resolved_labels:
            apply_duplicate_policy(
                find_duplicate_paths(resolved.resolved_paths()),
                self.config.validation.orphan_policy,
            )
        return resolved

    def build(
        self,
        categories: Sequence[str],
        context: RuntimeContext | Mapping[str, Any],
        template: Template | str | None = None,
    ) -> DeployableConfig:
        """Build one client's deployable configuration.

        Args:
            categories: Selected category ids, display names or aliases
            context: Runtime context (model or plain mapping)
            template: A Template, a template file name in the configured
                template directory, or None for the default template

        Returns:
            The deployable document

        Raises:
            InvalidArgument: Bad selection, context or template name
            SchemaLoadFailure: Fragment store unreachable or fragment malformed
            ConsistencyViolation: Orphan categories or colliding labels
            MissingTemplateToken: Template needs a token the engine lacks
            MalformedOutput: Substituted document is not valid JSON
        """
        deployment_id = str(uuid.uuid4())
        set_correlation_id(deployment_id)

        logger.info("deployment_start", categories=list(categories))

        try:
            resolved_template = self.load_template(template)
            resolved = self.resolve(categories, context)
            deployable = inject(resolved_template, sanitize_placeholders(resolved.values))
        except TradeflowError as e:
            logger.warning(
                "deployment_refused",
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        finally:
            set_correlation_id(None)

        return deployable

    def load_template(self, template: Template | str | None = None) -> Template:
        """Resolve a template argument to a tokenized Template.

        Raises:
            InvalidArgument: If the name is not a plain file name or the
                file cannot be read
        """
        if isinstance(template, Template):
            return template

        name = template or self.config.templates.default
        if "/" in name or "\\" in name or name in ("", ".", ".."):
            raise InvalidArgument(
                f"Template name '{name}' must be a file name inside {self.config.templates.path}"
            )
        return Template.from_file(Path(self.config.templates.path) / name)

    def parse_context(self, context: RuntimeContext | Mapping[str, Any]) -> RuntimeContext:
        """Validate a runtime context and enforce roster slot limits.

        Raises:
            InvalidArgument: If the context is malformed or over a slot limit
        """
        if not isinstance(context, RuntimeContext):
            try:
                context = RuntimeContext.model_validate(context)
            except ValidationError as e:
                raise InvalidArgument(
                    f"Invalid runtime context:\n{format_validation_errors(e)}"
                ) from e
        context.check_slot_limits(self.config.team)
        return context
