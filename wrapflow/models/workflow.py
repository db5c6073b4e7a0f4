"""
wrapflow
Workflow template domain models.

Models:
    - Workflow:         reusable project template (name unique platform-wide)
    - WorkflowPhase:    ordered stage within a workflow
    - WorkflowTask:     unit of work within a phase (priority, effort, skills)
    - TaskDependency:   typed source → target ordering edge between two tasks

Architecture:
    Workflow ──1:N──▶ WorkflowPhase ──1:N──▶ WorkflowTask
    WorkflowTask ──N:M──▶ WorkflowTask  (via TaskDependency)

Edge direction:
    source_task_id is the predecessor, target_task_id the dependent task.
    "A depends on B" is stored as B → A.
"""

import uuid
from datetime import datetime, timezone

from wrapflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

DEPENDENCY_TYPES = (
    "FINISH_TO_START",
    "START_TO_START",
    "FINISH_TO_FINISH",
    "START_TO_FINISH",
)

DEFAULT_PRIORITY = "MEDIUM"
DEFAULT_DEPENDENCY_TYPE = "FINISH_TO_START"

MAX_ESTIMATED_HOURS = 1000


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Workflow
# ═════════════════════════════════════════════════════════════════════════════


class Workflow(db.Model):
    """
    Reusable project template composed of ordered phases.
    The name is unique across all workflows; services pre-check it so the
    caller gets a friendly error, the constraint is the authoritative guard.
    """

    __tablename__ = "workflows"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    version = db.Column(db.String(50), nullable=False, default="1.0")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("name", name="uq_workflow_name"),
    )

    phases = db.relationship(
        "WorkflowPhase", backref="workflow", lazy="dynamic",
        cascade="all, delete-orphan", order_by="WorkflowPhase.order",
    )
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def dependency_edges(self):
        """All dependency edges whose source task lives in this workflow."""
        return (
            TaskDependency.query
            .join(WorkflowTask, TaskDependency.source_task_id == WorkflowTask.id)
            .join(WorkflowPhase, WorkflowTask.phase_id == WorkflowPhase.id)
            .filter(WorkflowPhase.workflow_id == self.id)
            .order_by(TaskDependency.created_at, TaskDependency.id)
            .all()
        )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "is_active": self.is_active,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "phase_count": self.phases.count(),
        }
        if include_children:
            result["phases"] = [p.to_dict(include_children=True) for p in self.phases]
            result["dependencies"] = [d.to_dict() for d in self.dependency_edges()]
        return result

    def __repr__(self):
        return f"<Workflow {self.id}: {self.name} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. WorkflowPhase
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowPhase(db.Model):
    """
    Named stage within a workflow. ``order`` is 1-based; it is kept unique per
    workflow by the service layer rather than a DB constraint so a reorder
    can swap two values inside one transaction.
    """

    __tablename__ = "workflow_phases"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    order = db.Column(db.Integer, nullable=False, default=1, comment="1-based position")
    estimated_duration = db.Column(
        db.Integer, nullable=True,
        comment="Estimated duration in days",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "name", name="uq_phase_workflow_name"),
        db.CheckConstraint('"order" >= 1', name="ck_phase_order_positive"),
    )

    tasks = db.relationship(
        "WorkflowTask", backref="phase", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="WorkflowTask.created_at",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "estimated_duration": self.estimated_duration,
            "task_count": self.tasks.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["tasks"] = [t.to_dict() for t in self.tasks]
        return result

    def __repr__(self):
        return f"<WorkflowPhase {self.id}: #{self.order} {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. WorkflowTask
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowTask(db.Model):
    """Unit of work within a phase."""

    __tablename__ = "workflow_tasks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    phase_id = db.Column(
        db.String(36), db.ForeignKey("workflow_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    estimated_hours = db.Column(db.Float, nullable=False, default=0)
    priority = db.Column(
        db.String(20), nullable=False, default=DEFAULT_PRIORITY,
        comment="LOW | MEDIUM | HIGH | CRITICAL",
    )
    required_skills = db.Column(db.JSON, nullable=False, default=list)
    form_template = db.Column(db.JSON, nullable=True, comment="Free-form form template payload")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("phase_id", "name", name="uq_task_phase_name"),
        db.CheckConstraint(
            "priority IN ('LOW','MEDIUM','HIGH','CRITICAL')",
            name="ck_task_priority",
        ),
        db.CheckConstraint(
            "estimated_hours >= 0 AND estimated_hours <= 1000",
            name="ck_task_estimated_hours",
        ),
    )

    incoming_dependencies = db.relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.target_task_id",
        backref="target_task",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    outgoing_dependencies = db.relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.source_task_id",
        backref="source_task",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_dependencies=False):
        result = {
            "id": self.id,
            "phase_id": self.phase_id,
            "name": self.name,
            "description": self.description,
            "estimated_hours": self.estimated_hours,
            "priority": self.priority,
            "required_skills": list(self.required_skills or []),
            "form_template": self.form_template,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_dependencies:
            result["depends_on"] = [d.to_dict() for d in self.incoming_dependencies]
            result["depended_on_by"] = [d.to_dict() for d in self.outgoing_dependencies]
        return result

    def __repr__(self):
        return f"<WorkflowTask {self.id}: {self.name[:40]} [{self.priority}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. TaskDependency
# ═════════════════════════════════════════════════════════════════════════════


class TaskDependency(db.Model):
    """
    Source → target dependency between two workflow tasks.
    Owned by neither endpoint; removed when either endpoint task goes away.
    """

    __tablename__ = "task_dependencies"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    source_task_id = db.Column(
        db.String(36), db.ForeignKey("workflow_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    target_task_id = db.Column(
        db.String(36), db.ForeignKey("workflow_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    dependency_type = db.Column(
        db.String(30), nullable=False, default=DEFAULT_DEPENDENCY_TYPE,
        comment="FINISH_TO_START | START_TO_START | FINISH_TO_FINISH | START_TO_FINISH",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "source_task_id", "target_task_id",
            name="uq_task_dependency_pair",
        ),
        db.CheckConstraint(
            "source_task_id != target_task_id",
            name="ck_dependency_no_self_loop",
        ),
        db.CheckConstraint(
            "dependency_type IN ('FINISH_TO_START','START_TO_START',"
            "'FINISH_TO_FINISH','START_TO_FINISH')",
            name="ck_dependency_type",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "source_task_id": self.source_task_id,
            "target_task_id": self.target_task_id,
            "dependency_type": self.dependency_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TaskDependency {self.source_task_id} → {self.target_task_id}>"
