"""Shared libraries for the embedding function.

Subpackages:
- ``libs.common``: configuration, logging, and metrics.

Notes:
- Avoid pipeline-specific logic; keep modules cohesive and broadly useful.
"""
