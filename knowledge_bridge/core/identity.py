"""
Tenant/project identity resolution.

Credentials follow the ``{role}-{project-name}-{secret}`` convention: the
project is everything between the first and the last dash, so project names
may themselves contain dashes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from knowledge_bridge.sdk.errors import ConfigurationError

if TYPE_CHECKING:
    from knowledge_bridge.core.config import BridgeConfig

logger = logging.getLogger("KnowledgeBridge.identity")

_MIN_CREDENTIAL_SEGMENTS = 3


def project_from_credential(credential: Optional[str]) -> Optional[str]:
    """Extract the project identifier from a credential, or None if unparseable."""
    if not credential:
        return None

    parts = credential.split("-")
    if len(parts) < _MIN_CREDENTIAL_SEGMENTS:
        return None

    first = credential.index("-")
    last = credential.rindex("-")
    project = credential[first + 1:last]
    if not project:
        project = parts[1]
    return project or None


def resolve_project_id(project_id: Optional[str], credential: Optional[str]) -> str:
    """
    Resolve the active project.

    An explicit project always wins. Otherwise the credential is decomposed;
    failure to resolve either way is fatal.
    """
    if project_id is not None and project_id.strip():
        return project_id.strip()

    if not credential:
        raise ConfigurationError(
            "No project configured and no API key available. "
            "Set PROJECT_ID or API_KEY (format: role-project-secret)."
        )

    project = project_from_credential(credential)
    if project is None:
        raise ConfigurationError(
            "No valid project found. Set PROJECT_ID or use API key format: role-project-secret"
        )
    return project


@dataclass(frozen=True)
class SessionContext:
    """Read-only context handed to every provider invocation."""
    project_id: str
    api_url: str
    credential: Optional[str] = None

    @property
    def has_credential(self) -> bool:
        return bool(self.credential)

    @classmethod
    def from_config(cls, config: "BridgeConfig") -> "SessionContext":
        project = resolve_project_id(config.project_id, config.api_key)
        logger.info("Resolved active project '%s'", project)
        return cls(project_id=project, api_url=config.api_url, credential=config.api_key)
