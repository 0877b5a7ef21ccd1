"""
Database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase, TenantBase
from .conversation import Conversation, PromptConfigTemplate
from .history import CompletionPrompt, UserPrompt
from .usage import TenantTokenUsage
from .provider import AiProvider, Assistant
from .project import (
    CommunityProjectTemplate,
    Project,
    ProjectRequirement,
    ProjectTemplate,
)

__all__ = [
    "RecordBase", "TenantBase",
    "Conversation", "PromptConfigTemplate",
    "UserPrompt", "CompletionPrompt",
    "TenantTokenUsage",
    "AiProvider", "Assistant",
    "Project", "ProjectRequirement", "ProjectTemplate", "CommunityProjectTemplate",
]
