"""Adapters for external data sources.

This module provides adapters for integrating with external systems:
- NotionRosterAdapter: Load the student roster from the Notion CRM
"""

from name_resolution.adapters.notion_roster_adapter import (
    NotionRosterAdapter,
    RosterFetchError,
)

__all__ = [
    "NotionRosterAdapter",
    "RosterFetchError",
]
