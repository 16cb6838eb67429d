"""
Pre-built workflow templates.
"""

from .catalog import BUILTIN_TEMPLATES

__all__ = [
    "BUILTIN_TEMPLATES",
]
