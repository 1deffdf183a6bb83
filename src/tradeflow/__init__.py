"""Tradeflow: per-client automation config builder.

Merges per-category schema fragments (classification, reply behavior,
folder taxonomy) into one consistent configuration and injects it into a
deployable workflow template.
"""

__version__ = "0.1.0"
