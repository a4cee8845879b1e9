"""Linkding integration adapter for bookmark synchronization."""

from bookmark_sync.adapters.linkding.client import LinkdingClient
from bookmark_sync.adapters.linkding.sync.service import LinkdingSyncService

__all__ = ["LinkdingClient", "LinkdingSyncService"]
