"""siteprov package bootstrap.

Exposes the package version used by the CLI and packaging metadata.
"""
from __future__ import annotations

__all__ = ["__version__"]

# NOTE: keep in sync with ``version`` in pyproject.toml.
__version__ = "0.1.0"
