"""Web surface for the deployment engine.

This package provides a small FastAPI application exposing the
deployment call, the category list and a health check.
"""
