"""Exceptions raised by audit sinks."""

from __future__ import annotations


class AuditSinkError(Exception):
    """Base class for failures reported by an audit sink."""


class SinkClosedError(AuditSinkError):
    """Raised when a closed sink is asked to read or write."""
