"""
Request-scoped chat context.

Built once per HTTP request from the authenticated identity and the
rgt/rgi/rt/ri query parameters, never persisted. Tools read it to scope
their queries to the tenant and resource group.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ResourceGroupType(str, Enum):
    PROJECT = "project"
    TEMPLATE = "template"
    COMMUNITY = "community"


class ResourceType(str, Enum):
    DOCUMENT = "document"
    DIAGRAM = "diagram"
    TCHART = "tchart"
    PROS_AND_CONS = "pros&cons"
    SWOT = "swot"
    DECISION_MATRIX = "decision_matrix"


@dataclass(frozen=True)
class ResourceIdentifier:
    resource_group_type: ResourceGroupType
    resource_group_id: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[str] = None


@dataclass
class ChatContext:
    user_id: str
    tenant_id: str
    resource_group_type: ResourceGroupType = ResourceGroupType.PROJECT
    resource_group_id: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_identifier(
        cls,
        user_id: str,
        tenant_id: str,
        identifier: ResourceIdentifier,
        conversation_id: Optional[str] = None,
    ) -> "ChatContext":
        return cls(
            user_id=user_id,
            tenant_id=tenant_id,
            resource_group_type=identifier.resource_group_type,
            resource_group_id=identifier.resource_group_id,
            resource_type=identifier.resource_type,
            resource_id=identifier.resource_id,
            conversation_id=conversation_id or None,
        )

    def current_resource(self, resource_type: ResourceType) -> Optional[str]:
        """The open resource id, if the open resource is of the given type."""
        if self.resource_type == resource_type and self.resource_id:
            return self.resource_id
        return None


def resolve_resource_identifier(
    rgt: Optional[str],
    rgi: Optional[str] = None,
    rt: Optional[str] = None,
    ri: Optional[str] = None,
) -> ResourceIdentifier:
    """
    Validate the resource query parameters.

    Raises ValueError when the group type is missing or unknown, or when a
    resource type is given but unknown. Empty strings count as absent.
    """
    try:
        group_type = ResourceGroupType(rgt or "")
    except ValueError:
        raise ValueError("invalid or missing resource group type (rgt)")

    resource_type = None
    if rt:
        try:
            resource_type = ResourceType(rt)
        except ValueError:
            raise ValueError("invalid resource type (rt)")

    return ResourceIdentifier(
        resource_group_type=group_type,
        resource_group_id=rgi or None,
        resource_type=resource_type,
        resource_id=ri or None,
    )


# ── Request bodies ───────────────────────────────────────────────────

class DocumentSelection(BaseModel):
    id: str = ""
    type: str = "doc-fragment"
    data: str = ""


class UserPromptParams(BaseModel):
    web_search: bool = False
    additional_instructions: str = ""
    selections: list[DocumentSelection] = Field(default_factory=list)


class PromptBody(BaseModel):
    prompt: str = Field(..., min_length=1)
    params: Optional[UserPromptParams] = None
    stream: bool = False
    chunked_stream: bool = False
