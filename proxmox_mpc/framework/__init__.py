"""Shared framework utilities (error taxonomy)."""

from . import errors

__all__ = ["errors"]
