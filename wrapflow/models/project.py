"""
wrapflow
Project instance models: the live side of a workflow template.

Models:
    - Project:        a customer project instantiated from a Workflow
    - ProjectPhase:   instantiated copy of a WorkflowPhase
    - ProjectTask:    instantiated copy of a WorkflowTask

Project CRUD is handled elsewhere; the template engine only reads these
tables to decide whether a template entity has *live references*.

A reference is live when the owning project is ACTIVE or ON_HOLD.
Template FKs use ON DELETE SET NULL so completed/cancelled projects keep
their history when a template is removed.
"""

import uuid
from datetime import datetime, timezone

from wrapflow.models import db


LIVE_PROJECT_STATUSES = ("ACTIVE", "ON_HOLD")


def _uuid():
    return str(uuid.uuid4())


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="PLANNING",
        comment="PLANNING | ACTIVE | ON_HOLD | COMPLETED | CANCELLED",
    )
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PLANNING','ACTIVE','ON_HOLD','COMPLETED','CANCELLED')",
            name="ck_project_status",
        ),
    )

    phases = db.relationship(
        "ProjectPhase", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "workflow_id": self.workflow_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name} [{self.status}]>"


class ProjectPhase(db.Model):
    __tablename__ = "project_phases"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    workflow_phase_id = db.Column(
        db.String(36), db.ForeignKey("workflow_phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="TODO")

    tasks = db.relationship(
        "ProjectTask", backref="project_phase", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ProjectPhase {self.id}: {self.name}>"


class ProjectTask(db.Model):
    __tablename__ = "project_tasks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_phase_id = db.Column(
        db.String(36), db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    workflow_task_id = db.Column(
        db.String(36), db.ForeignKey("workflow_tasks.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="TODO")

    def __repr__(self):
        return f"<ProjectTask {self.id}: {self.name}>"
