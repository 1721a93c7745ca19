"""Minimal models for sqla-joinedby examples."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import orm

from sqla_joinedby import joined_by


class Base(orm.DeclarativeBase):
    pass


class Employee(Base):
    __tablename__ = "employees"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))

    projects = joined_by("id = employee_id", "Project", collection=list)
    assignments = joined_by(
        "id = EmployeeProject.employee_id, EmployeeProject.project_id = id",
        "Project",
        collection=list,
    )


class Project(Base):
    __tablename__ = "projects"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    title: orm.Mapped[str] = orm.mapped_column(sa.String(200))
    employee_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("employees.id"))


class EmployeeProject(Base):
    __tablename__ = "employee_projects"

    employee_id: orm.Mapped[int] = orm.mapped_column(
        sa.ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True
    )
    project_id: orm.Mapped[int] = orm.mapped_column(
        sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
