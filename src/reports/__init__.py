"""
Reports package initializer.
"""

from .catalog import build_catalog, load_extra_reports, select_reports

__all__ = [
    "build_catalog",
    "load_extra_reports",
    "select_reports",
]
