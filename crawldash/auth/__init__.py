"""Credential renewal policy."""

from .lifecycle import PendingRequest, TokenLifecycleManager

__all__ = ["PendingRequest", "TokenLifecycleManager"]
