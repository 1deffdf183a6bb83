"""Deployment engine.

This package provides DeploymentEngine, the single entry point that turns
a category selection and a runtime context into a DeployableConfig.
"""

from tradeflow.engine.deployment import DeploymentEngine

__all__ = [
    "DeploymentEngine",
]
