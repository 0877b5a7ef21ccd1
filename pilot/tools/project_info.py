"""
Project info tool: high-level facts about the current resource group.

Projects report their own status and requirements. Templates and community
templates have no requirements and a fixed status label.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import session_scope
from ..models.project import (
    CommunityProjectTemplate,
    Project,
    ProjectRequirement,
    ProjectTemplate,
)
from ..orchestrator.context import ChatContext, ResourceGroupType
from .registry import tool, ToolError, ToolRuntime


@dataclass
class RequirementData:
    title: str
    details: str = ""
    category: Optional[str] = None
    status: Optional[str] = None


@dataclass
class ProjectData:
    title: str
    status: str
    category: str
    description: Optional[str] = None
    complexity: Optional[str] = None
    requirements: list[RequirementData] = field(default_factory=list)


async def _load_project(db: AsyncSession, project_id: str, tenant_id: str) -> ProjectData:
    project = (await db.execute(
        select(Project).where(Project.id == project_id, Project.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if project is None:
        raise ToolError(f"error fetching project: {project_id} not found")

    rows = (await db.execute(
        select(ProjectRequirement)
        .where(
            ProjectRequirement.project_id == project_id,
            ProjectRequirement.tenant_id == tenant_id,
        )
        .order_by(ProjectRequirement.created_at)
    )).scalars().all()

    return ProjectData(
        title=project.title,
        status=project.status,
        category=project.category,
        description=project.description,
        complexity=project.complexity,
        requirements=[
            RequirementData(title=r.title, details=r.details or "", category=r.category, status=r.status)
            for r in rows
        ],
    )


async def _load_template(
    db: AsyncSession, model, status: str, template_id: str, tenant_id: str
) -> ProjectData:
    template = (await db.execute(
        select(model).where(model.id == template_id, model.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if template is None:
        raise ToolError(f"error fetching {status.lower()}: {template_id} not found")

    return ProjectData(
        title=template.title,
        status=status,
        category=template.category,
        description=template.description,
        complexity=template.complexity,
    )


def format_project_info(data: ProjectData) -> str:
    lines = [
        f"Project: {data.title}\n",
        f"Status: {data.status}\n",
        f"Category: {data.category}\n",
    ]
    if data.description and data.description.strip():
        lines.append(f"Description: {data.description}\n")
    if data.complexity and data.complexity.strip():
        lines.append(f"Complexity: {data.complexity}\n")

    if data.requirements:
        lines.append("\nRequirements:\n")
        for r in data.requirements:
            lines.append(f"- [{r.status or '-'}] {r.title} ({r.category or '-'})\n")
            if r.details.strip():
                lines.append(f"{r.details}\n")

    return "".join(lines)


async def get_project_info(db: AsyncSession, ctx: ChatContext) -> str:
    if not ctx.resource_group_id:
        raise ToolError("project/template does not exist or its ID is missing")

    group_id, tenant_id = ctx.resource_group_id, ctx.tenant_id
    if ctx.resource_group_type == ResourceGroupType.PROJECT:
        data = await _load_project(db, group_id, tenant_id)
    elif ctx.resource_group_type == ResourceGroupType.TEMPLATE:
        data = await _load_template(db, ProjectTemplate, "Template", group_id, tenant_id)
    elif ctx.resource_group_type == ResourceGroupType.COMMUNITY:
        data = await _load_template(
            db, CommunityProjectTemplate, "Community Template", group_id, tenant_id
        )
    else:
        raise ToolError(f"invalid resource group type: {ctx.resource_group_type}")

    return format_project_info(data)


@tool(
    name="project_info",
    description=(
        "Retrieves high-level information about the current project, including its "
        "title, status, category, complexity, description, and all associated requirements. "
        "This information can help you better understand the project context before "
        "generating ideas, giving suggestions, or answering questions."
    ),
    available=lambda ctx: ctx.resource_group_id is not None,
    failure_label="Project Info function call",
)
async def project_info(ctx: ChatContext, args: None, runtime: ToolRuntime) -> str:
    async with session_scope(runtime.session_factory) as session:
        return await get_project_info(session, ctx)
