"""Typed exceptions for trace decoding and catalog queries."""

from __future__ import annotations


class DecodeError(Exception):
    """Raised when a trace file is missing, unreadable, or not a recognized container."""


class InvalidQuery(Exception):
    """Raised when a query names a metric the catalog cannot be ranked by."""
