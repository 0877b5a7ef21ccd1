"""Tests for the project_info tool."""

from datetime import datetime, timedelta, timezone

import pytest

from pilot.core.database import session_scope
from pilot.models.project import (
    CommunityProjectTemplate,
    Project,
    ProjectRequirement,
    ProjectTemplate,
)
from pilot.orchestrator.context import ChatContext, ResourceGroupType
from pilot.tools.project_info import (
    ProjectData,
    RequirementData,
    format_project_info,
    get_project_info,
)
from pilot.tools.registry import ToolError

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _ctx(group_type: ResourceGroupType, group_id) -> ChatContext:
    return ChatContext(
        user_id="user-1", tenant_id="tenant-1",
        resource_group_type=group_type, resource_group_id=group_id,
    )


class TestFormat:

    def test_minimal_project(self):
        text = format_project_info(ProjectData(title="Demo", status="draft", category="web"))
        assert text == "Project: Demo\nStatus: draft\nCategory: web\n"

    def test_blank_optional_fields_are_skipped(self):
        text = format_project_info(
            ProjectData(title="Demo", status="draft", category="", description="  ", complexity="")
        )
        assert "Description" not in text
        assert "Complexity" not in text

    def test_requirements_listed(self):
        data = ProjectData(
            title="Demo", status="active", category="data",
            description="ETL platform", complexity="high",
            requirements=[
                RequirementData(title="SSO", details="Use OIDC.", category="security", status="open"),
                RequirementData(title="Backups"),
            ],
        )
        text = format_project_info(data)
        assert "Description: ETL platform\n" in text
        assert "Complexity: high\n" in text
        assert "\nRequirements:\n- [open] SSO (security)\nUse OIDC.\n- [-] Backups (-)\n" in text


class TestGetProjectInfo:

    @pytest.mark.asyncio
    async def test_project_with_requirements(self, session_factory):
        async with session_scope(session_factory) as db:
            project = Project(
                tenant_id="tenant-1", title="Billing", category="finance",
                status="active", description="Invoices",
            )
            db.add(project)
            await db.flush()
            db.add_all([
                ProjectRequirement(
                    tenant_id="tenant-1", project_id=project.id, title="Second",
                    created_at=T0 + timedelta(minutes=5),
                ),
                ProjectRequirement(
                    tenant_id="tenant-1", project_id=project.id, title="First",
                    details="Comes first", status="done", created_at=T0,
                ),
            ])
            project_id = project.id

        async with session_scope(session_factory) as db:
            text = await get_project_info(db, _ctx(ResourceGroupType.PROJECT, project_id))

        assert text.startswith("Project: Billing\nStatus: active\nCategory: finance\n")
        assert text.index("First") < text.index("Second")

    @pytest.mark.asyncio
    async def test_template_status_label(self, session_factory):
        async with session_scope(session_factory) as db:
            template = ProjectTemplate(tenant_id="tenant-1", title="Starter")
            community = CommunityProjectTemplate(tenant_id="tenant-1", title="Shared")
            db.add_all([template, community])
            await db.flush()
            ids = (template.id, community.id)

        async with session_scope(session_factory) as db:
            private = await get_project_info(db, _ctx(ResourceGroupType.TEMPLATE, ids[0]))
            shared = await get_project_info(db, _ctx(ResourceGroupType.COMMUNITY, ids[1]))

        assert "Status: Template\n" in private
        assert "Status: Community Template\n" in shared
        assert "Requirements" not in private

    @pytest.mark.asyncio
    async def test_missing_id(self, session_factory):
        async with session_scope(session_factory) as db:
            with pytest.raises(ToolError, match="ID is missing"):
                await get_project_info(db, _ctx(ResourceGroupType.PROJECT, None))

    @pytest.mark.asyncio
    async def test_other_tenant_project_is_not_found(self, session_factory):
        async with session_scope(session_factory) as db:
            project = Project(tenant_id="tenant-2", title="Hidden")
            db.add(project)
            await db.flush()
            project_id = project.id

        async with session_scope(session_factory) as db:
            with pytest.raises(ToolError, match="not found"):
                await get_project_info(db, _ctx(ResourceGroupType.PROJECT, project_id))
