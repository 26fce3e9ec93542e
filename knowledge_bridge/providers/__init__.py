"""
Capability providers exposed as MCP tools.
"""

from typing import List

from knowledge_bridge.sdk.gateway import ApiGateway

from .base import CapabilityProvider, ToolDescriptor
from .cross_reference import CrossReferenceProvider
from .notes import NotesProvider
from .project import ProjectProvider
from .search import SearchProvider
from .stats import StatsProvider


def build_providers(gateway: ApiGateway) -> List[CapabilityProvider]:
    """Default providers in registration order."""
    return [
        NotesProvider(gateway),
        SearchProvider(gateway),
        ProjectProvider(gateway),
        StatsProvider(gateway),
        CrossReferenceProvider(gateway),
    ]


__all__ = [
    "CapabilityProvider",
    "ToolDescriptor",
    "NotesProvider",
    "SearchProvider",
    "ProjectProvider",
    "StatsProvider",
    "CrossReferenceProvider",
    "build_providers",
]
