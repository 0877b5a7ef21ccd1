"""
Resource groups read by the project_info tool: projects (with requirements),
private project templates and community project templates.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class _ProjectFields:
    title: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    complexity: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Project(_ProjectFields, TenantBase):
    __tablename__ = "projects"

    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")


class ProjectRequirement(TenantBase):
    __tablename__ = "project_requirements"

    project_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class ProjectTemplate(_ProjectFields, TenantBase):
    __tablename__ = "project_templates"


class CommunityProjectTemplate(_ProjectFields, TenantBase):
    __tablename__ = "cm_project_templates"
