# matchreport/__init__.py
"""
matchreport
Plain-text grammar-check results -> browsable HTML report, grouped by category and rule id.
"""

from __future__ import annotations

import logging as _logging
from importlib import metadata as _metadata

__all__ = ["__version__", "get_version"]


def get_version() -> str:
    """
    Resolve the installed distribution version if available,
    otherwise fall back to the in-tree default.
    """
    try:
        return _metadata.version("matchreport")
    except _metadata.PackageNotFoundError:
        # Running from a source checkout
        return "0.1.0"


__version__ = get_version()

# Prevent "No handler found" warnings if users import without configuring logging.
_logging.getLogger(__name__).addHandler(_logging.NullHandler())
