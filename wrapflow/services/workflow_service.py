"""Workflow template CRUD: validated single-entity create/read/update/delete.

Transaction policy: every mutating function commits through ``atomic()``;
reads never write.

Provides:
- Workflow list/get/create/update/delete
- Phase list/get/create/update/delete (orders kept within 1..phase count)
- Task list/get/create/update/delete
"""

import logging

from sqlalchemy import func, or_, select

from wrapflow.core.exceptions import DuplicateOrderError, HasLiveReferencesError, OrderOutOfRangeError
from wrapflow.models import db
from wrapflow.models.workflow import Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services import constraint_validator as cv
from wrapflow.services import input_validation as iv
from wrapflow.services.batch_service import compact_phase_orders
from wrapflow.services.helpers.transaction import atomic
from wrapflow.services.permission_gate import READ_ROLES, authorize

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════


def list_workflows(principal, *, search=None, is_active=None, limit=100, offset=0):
    """Return ``(workflows, total)`` ordered by name."""
    authorize(principal, READ_ROLES)
    stmt = select(Workflow)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Workflow.name.ilike(pattern), Workflow.description.ilike(pattern)))
    if is_active is not None:
        stmt = stmt.where(Workflow.is_active.is_(bool(is_active)))

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    items = db.session.execute(
        stmt.order_by(Workflow.name).limit(limit).offset(offset)
    ).scalars().all()
    return items, total


def get_workflow(principal, workflow_id):
    authorize(principal, READ_ROLES)
    return cv.get_or_404(Workflow, workflow_id, "Workflow")


def create_workflow(principal, data):
    authorize(principal)
    fields = iv.workflow_fields(data)
    cv.name_unique("workflow", fields["name"])

    with atomic("create_workflow"):
        wf = Workflow(created_by_id=principal.user_id, **fields)
        db.session.add(wf)

    logger.info("Workflow created id=%s name=%s by=%s", wf.id, fields["name"], principal.user_id)
    return wf


def update_workflow(principal, workflow_id, data):
    """Edit the workflow record itself; allowed while the workflow is inactive."""
    authorize(principal)
    fields = iv.workflow_fields(data, partial=True)
    wf = cv.get_or_404(Workflow, workflow_id, "Workflow")
    if "name" in fields:
        cv.name_unique("workflow", fields["name"], exclude_id=wf.id)

    with atomic("update_workflow"):
        for key, value in fields.items():
            setattr(wf, key, value)

    logger.info("Workflow updated id=%s fields=%s by=%s", wf.id, sorted(fields), principal.user_id)
    return wf


def delete_workflow(principal, workflow_id):
    """Delete a workflow with its whole subtree; blocked by live projects."""
    authorize(principal)
    wf = cv.workflow_deletable(workflow_id)

    with atomic("delete_workflow"):
        db.session.delete(wf)

    logger.info("Workflow deleted id=%s by=%s", workflow_id, principal.user_id)


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


def list_phases(principal, workflow_id):
    authorize(principal, READ_ROLES)
    wf = cv.get_or_404(Workflow, workflow_id, "Workflow")
    return wf.phases.all()


def get_phase(principal, phase_id):
    authorize(principal, READ_ROLES)
    return cv.get_or_404(WorkflowPhase, phase_id, "Phase")


def create_phase(principal, workflow_id, data):
    """Append a phase; ``order`` defaults to count + 1 and may not leave a gap."""
    authorize(principal)
    fields = iv.phase_fields(data, require_order_field=False)
    wf = cv.workflow_mutable(workflow_id)
    cv.name_unique("phase", fields["name"], parent_id=wf.id)

    existing_orders = [p.order for p in wf.phases]
    next_order = len(existing_orders) + 1
    order = fields.setdefault("order", next_order)
    if order > next_order:
        raise OrderOutOfRangeError([order], next_order)
    if order in existing_orders:
        raise DuplicateOrderError([order])

    with atomic("create_phase"):
        phase = WorkflowPhase(workflow_id=wf.id, **fields)
        db.session.add(phase)

    logger.info("Phase created id=%s workflow=%s order=%d by=%s",
                phase.id, wf.id, order, principal.user_id)
    return phase


def update_phase(principal, phase_id, data):
    authorize(principal)
    fields = iv.phase_fields(data, partial=True)
    phase = cv.get_or_404(WorkflowPhase, phase_id, "Phase")
    cv.workflow_mutable(phase.workflow_id)
    if cv.live_phase_ids([phase.id]):
        raise HasLiveReferencesError("Phase", phase.id, "active project phases")
    if "name" in fields:
        cv.name_unique("phase", fields["name"], parent_id=phase.workflow_id, exclude_id=phase.id)
    if "order" in fields:
        siblings = phase.workflow.phases.all()
        final_orders = [fields["order"] if p.id == phase.id else p.order for p in siblings]
        cv.order_within_bounds(phase.workflow_id, final_orders, phase_count=len(siblings))

    with atomic("update_phase"):
        for key, value in fields.items():
            setattr(phase, key, value)

    logger.info("Phase updated id=%s fields=%s by=%s", phase.id, sorted(fields), principal.user_id)
    return phase


def delete_phase(principal, phase_id):
    """Delete a phase and its tasks; remaining phases are renumbered 1..n."""
    authorize(principal)
    phase = cv.get_or_404(WorkflowPhase, phase_id, "Phase")
    workflow_id = phase.workflow_id
    cv.workflow_mutable(workflow_id)
    cv.phase_deletable(phase.id)

    with atomic("delete_phase"):
        db.session.delete(phase)
        db.session.flush()
        compact_phase_orders([workflow_id])

    logger.info("Phase deleted id=%s workflow=%s by=%s", phase_id, workflow_id, principal.user_id)


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def list_tasks(principal, phase_id):
    authorize(principal, READ_ROLES)
    phase = cv.get_or_404(WorkflowPhase, phase_id, "Phase")
    return phase.tasks.all()


def get_task(principal, task_id):
    authorize(principal, READ_ROLES)
    return cv.get_or_404(WorkflowTask, task_id, "Task")


def create_task(principal, phase_id, data):
    authorize(principal)
    fields = iv.task_fields(data)
    phase = cv.get_or_404(WorkflowPhase, phase_id, "Phase")
    cv.workflow_mutable(phase.workflow_id)
    cv.workflow_unreferenced(phase.workflow_id)
    cv.name_unique("task", fields["name"], parent_id=phase.id)

    with atomic("create_task"):
        task = WorkflowTask(phase_id=phase.id, **fields)
        db.session.add(task)

    logger.info("Task created id=%s phase=%s by=%s", task.id, phase.id, principal.user_id)
    return task


def update_task(principal, task_id, data):
    authorize(principal)
    fields = iv.task_fields(data, partial=True)
    task = cv.get_or_404(WorkflowTask, task_id, "Task")
    workflow_id = task.phase.workflow_id
    cv.workflow_mutable(workflow_id)
    cv.workflow_unreferenced(workflow_id)
    if cv.live_task_ids([task.id]):
        raise HasLiveReferencesError("Task", task.id, "active project tasks")
    if "name" in fields:
        cv.name_unique("task", fields["name"], parent_id=task.phase_id, exclude_id=task.id)

    with atomic("update_task"):
        for key, value in fields.items():
            setattr(task, key, value)

    logger.info("Task updated id=%s fields=%s by=%s", task.id, sorted(fields), principal.user_id)
    return task


def delete_task(principal, task_id):
    """Delete a single task; refused while it has live project tasks or any edge."""
    authorize(principal)
    task = cv.get_or_404(WorkflowTask, task_id, "Task")
    cv.workflow_mutable(task.phase.workflow_id)
    cv.workflow_unreferenced(task.phase.workflow_id)
    cv.task_deletable(task.id)

    with atomic("delete_task"):
        db.session.delete(task)

    logger.info("Task deleted id=%s by=%s", task_id, principal.user_id)
