"""workflow_template_tables

Create users, workflow template (workflows / phases / tasks / dependencies)
and live project instance tables.

Revision ID: 5e1f0a7b9c21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1f0a7b9c21"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="STAFF"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
            sa.CheckConstraint("role IN ('ADMINISTRATOR','MANAGER','STAFF')", name="ck_user_role"),
        )

    if "workflows" not in existing_tables:
        op.create_table(
            "workflows",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("version", sa.String(length=50), nullable=False, server_default="1.0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by_id", sa.String(length=36), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name", name="uq_workflow_name"),
        )
        op.create_index("ix_workflows_created_by_id", "workflows", ["created_by_id"])

    if "workflow_phases" not in existing_tables:
        op.create_table(
            "workflow_phases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("workflow_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("estimated_duration", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("workflow_id", "name", name="uq_phase_workflow_name"),
            sa.CheckConstraint('"order" >= 1', name="ck_phase_order_positive"),
        )
        op.create_index("ix_workflow_phases_workflow_id", "workflow_phases", ["workflow_id"])

    if "workflow_tasks" not in existing_tables:
        op.create_table(
            "workflow_tasks",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("phase_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("estimated_hours", sa.Float(), nullable=False, server_default="0"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="MEDIUM"),
            sa.Column("required_skills", sa.JSON(), nullable=False),
            sa.Column("form_template", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["phase_id"], ["workflow_phases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("phase_id", "name", name="uq_task_phase_name"),
            sa.CheckConstraint(
                "priority IN ('LOW','MEDIUM','HIGH','CRITICAL')", name="ck_task_priority",
            ),
            sa.CheckConstraint(
                "estimated_hours >= 0 AND estimated_hours <= 1000", name="ck_task_estimated_hours",
            ),
        )
        op.create_index("ix_workflow_tasks_phase_id", "workflow_tasks", ["phase_id"])

    if "task_dependencies" not in existing_tables:
        op.create_table(
            "task_dependencies",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("source_task_id", sa.String(length=36), nullable=False),
            sa.Column("target_task_id", sa.String(length=36), nullable=False),
            sa.Column("dependency_type", sa.String(length=30), nullable=False,
                      server_default="FINISH_TO_START"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["source_task_id"], ["workflow_tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_task_id"], ["workflow_tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("source_task_id", "target_task_id", name="uq_task_dependency_pair"),
            sa.CheckConstraint("source_task_id != target_task_id", name="ck_dependency_no_self_loop"),
            sa.CheckConstraint(
                "dependency_type IN ('FINISH_TO_START','START_TO_START',"
                "'FINISH_TO_FINISH','START_TO_FINISH')",
                name="ck_dependency_type",
            ),
        )
        op.create_index("ix_task_dependencies_source_task_id", "task_dependencies", ["source_task_id"])
        op.create_index("ix_task_dependencies_target_task_id", "task_dependencies", ["target_task_id"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PLANNING"),
            sa.Column("workflow_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('PLANNING','ACTIVE','ON_HOLD','COMPLETED','CANCELLED')",
                name="ck_project_status",
            ),
        )
        op.create_index("ix_projects_workflow_id", "projects", ["workflow_id"])

    if "project_phases" not in existing_tables:
        op.create_table(
            "project_phases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("workflow_phase_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="TODO"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["workflow_phase_id"], ["workflow_phases.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_phases_project_id", "project_phases", ["project_id"])
        op.create_index("ix_project_phases_workflow_phase_id", "project_phases", ["workflow_phase_id"])

    if "project_tasks" not in existing_tables:
        op.create_table(
            "project_tasks",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_phase_id", sa.String(length=36), nullable=False),
            sa.Column("workflow_task_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="TODO"),
            sa.ForeignKeyConstraint(["project_phase_id"], ["project_phases.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["workflow_task_id"], ["workflow_tasks.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_tasks_project_phase_id", "project_tasks", ["project_phase_id"])
        op.create_index("ix_project_tasks_workflow_task_id", "project_tasks", ["workflow_task_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    # Reverse ownership order
    for table in (
        "project_tasks",
        "project_phases",
        "projects",
        "task_dependencies",
        "workflow_tasks",
        "workflow_phases",
        "workflows",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
