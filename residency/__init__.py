"""Residency community core: membership verification, tenant-isolated boards
and consistent interaction counters"""

from residency.community import CommunityCore
from residency.config import Settings, get_settings
from residency.context import RequestContext
from residency.db_context import DatabaseManager, transactional
from residency.repository import Repository

__all__ = [
    "CommunityCore",
    "DatabaseManager",
    "Repository",
    "RequestContext",
    "Settings",
    "get_settings",
    "transactional",
]
