"""
Constraint Validator: structural checks that gate every template mutation.

Each check loads what it needs, returns the loaded entity (or None) when the
invariant holds and raises a specific ``WorkflowEngineError`` otherwise.
Nothing here writes to the session.

Single-entity checks:
    name_unique, workflow_mutable, workflow_unreferenced,
    workflow_deletable, phase_deletable, task_deletable, order_within_bounds

Bulk helpers (one query per id set, used by the batch coordinator):
    live_project_ids, live_phase_ids, live_task_ids, tasks_with_edges,
    names_unique_in_batch, workflows_mutable
"""

import logging
from collections import Counter

from sqlalchemy import func, or_, select

from wrapflow.core.exceptions import (
    DuplicateNameError,
    DuplicateOrderError,
    HasLiveReferencesError,
    InactiveWorkflowError,
    NotFoundError,
    OrderOutOfRangeError,
)
from wrapflow.models import db
from wrapflow.models.project import (
    LIVE_PROJECT_STATUSES,
    Project,
    ProjectPhase,
    ProjectTask,
)
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask

logger = logging.getLogger(__name__)

# scope → (model, parent column or None)
_SCOPES = {
    "workflow": (Workflow, None),
    "phase": (WorkflowPhase, WorkflowPhase.workflow_id),
    "task": (WorkflowTask, WorkflowTask.phase_id),
}


def _scope(scope):
    try:
        return _SCOPES[scope]
    except KeyError:
        raise ValueError(f"Unknown name scope: {scope!r}") from None


# ═════════════════════════════════════════════════════════════════════════════
# Loaders
# ═════════════════════════════════════════════════════════════════════════════


def get_or_404(model, entity_id, resource):
    obj = db.session.get(model, entity_id) if entity_id else None
    if obj is None:
        raise NotFoundError(resource=resource, resource_id=entity_id)
    return obj


def load_many(model, ids, resource):
    """Load every id or raise NotFoundError listing the ones that do not resolve."""
    ids = list(ids)
    rows = db.session.execute(select(model).where(model.id.in_(ids))).scalars().all()
    by_id = {row.id: row for row in rows}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise NotFoundError(resource=resource, missing_ids=missing)
    return [by_id[i] for i in ids]


# ═════════════════════════════════════════════════════════════════════════════
# Names
# ═════════════════════════════════════════════════════════════════════════════


def name_unique(scope, candidate_name, *, parent_id=None, exclude_id=None):
    """Raise DuplicateNameError if a sibling in ``scope`` already has the name.

    Comparison is exact (case-sensitive). ``parent_id`` is the workflow id for
    phases and the phase id for tasks; ``exclude_id`` is the record being updated.
    """
    model, parent_col = _scope(scope)
    stmt = select(model.id).where(model.name == candidate_name)
    if parent_col is not None:
        if parent_id is None:
            raise ValueError(f"parent_id is required for scope {scope!r}")
        stmt = stmt.where(parent_col == parent_id)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if db.session.execute(stmt.limit(1)).first() is not None:
        raise DuplicateNameError(scope, candidate_name, parent_id=parent_id)
    return None


def names_unique_in_batch(scope, proposals):
    """Check a whole batch of names at once.

    ``proposals`` is a list of ``(entity_id, parent_id, name)``; entity_id is
    None for records that do not exist yet. Names collide when two proposals
    share a parent and a name, or when a proposal matches a sibling that is
    not itself part of the batch.
    """
    model, parent_col = _scope(scope)

    counts = Counter((parent_id, name) for _, parent_id, name in proposals)
    clashes = sorted({name for (_, name), n in counts.items() if n > 1})
    if clashes:
        raise DuplicateNameError(scope, clashes)

    batch_ids = [eid for eid, _, _ in proposals if eid is not None]
    names = {name for _, _, name in proposals}
    if parent_col is None:
        stmt = select(model.id, model.name).where(model.name.in_(names))
    else:
        parents = {parent_id for _, parent_id, _ in proposals}
        stmt = select(model.id, model.name, parent_col).where(
            model.name.in_(names), parent_col.in_(parents),
        )
    if batch_ids:
        stmt = stmt.where(model.id.not_in(batch_ids))

    taken = set()
    for row in db.session.execute(stmt):
        parent = row[2] if parent_col is not None else None
        taken.add((parent, row[1]))

    collisions = sorted({name for _, parent_id, name in proposals if (parent_id, name) in taken})
    if collisions:
        raise DuplicateNameError(scope, collisions)
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Workflow state
# ═════════════════════════════════════════════════════════════════════════════


def workflow_mutable(workflow_id):
    """Workflow must exist and be active for phase/task/dependency edits."""
    wf = get_or_404(Workflow, workflow_id, "Workflow")
    if not wf.is_active:
        raise InactiveWorkflowError(wf.id)
    return wf


def workflows_mutable(workflow_ids):
    ids = sorted(set(workflow_ids))
    inactive = db.session.execute(
        select(Workflow.id).where(Workflow.id.in_(ids), Workflow.is_active.is_(False))
    ).scalars().all()
    if inactive:
        raise InactiveWorkflowError(sorted(inactive))
    return None


def workflow_unreferenced(workflow_id):
    live = live_project_ids([workflow_id])
    if live:
        raise HasLiveReferencesError("Workflow", sorted(live), "active projects")
    return None


def workflow_deletable(workflow_id):
    wf = get_or_404(Workflow, workflow_id, "Workflow")
    workflow_unreferenced(wf.id)
    return wf


# ═════════════════════════════════════════════════════════════════════════════
# Phase / task deletion
# ═════════════════════════════════════════════════════════════════════════════


def phase_deletable(phase_id):
    phase = get_or_404(WorkflowPhase, phase_id, "Phase")
    if live_phase_ids([phase.id]):
        raise HasLiveReferencesError("Phase", phase.id, "active project phases")
    task_ids = [t.id for t in phase.tasks]
    if task_ids and live_task_ids(task_ids):
        raise HasLiveReferencesError("Phase", phase.id, "active project tasks")
    return phase


def task_deletable(task_id, *, allow_edges=False):
    task = get_or_404(WorkflowTask, task_id, "Task")
    if live_task_ids([task.id]):
        raise HasLiveReferencesError("Task", task.id, "active project tasks")
    if not allow_edges and tasks_with_edges([task.id]):
        raise HasLiveReferencesError("Task", task.id, "dependencies")
    return task


# ═════════════════════════════════════════════════════════════════════════════
# Phase order
# ═════════════════════════════════════════════════════════════════════════════


def order_within_bounds(workflow_id, proposed_orders, *, phase_count=None):
    """Orders must be unique and between 1 and the workflow's phase count."""
    orders = list(proposed_orders)
    if phase_count is None:
        phase_count = db.session.execute(
            select(func.count(WorkflowPhase.id)).where(WorkflowPhase.workflow_id == workflow_id)
        ).scalar_one()

    dupes = [o for o, n in Counter(orders).items() if n > 1]
    if dupes:
        raise DuplicateOrderError(dupes)

    out_of_range = [o for o in orders if o < 1 or o > phase_count]
    if out_of_range:
        raise OrderOutOfRangeError(out_of_range, phase_count)
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Bulk live-reference helpers
# ═════════════════════════════════════════════════════════════════════════════


def live_project_ids(workflow_ids):
    """Workflow ids (from ``workflow_ids``) referenced by an ACTIVE/ON_HOLD project."""
    ids = list(set(workflow_ids))
    if not ids:
        return set()
    return set(db.session.execute(
        select(Project.workflow_id).where(
            Project.workflow_id.in_(ids),
            Project.status.in_(LIVE_PROJECT_STATUSES),
        ).distinct()
    ).scalars())


def live_phase_ids(phase_ids):
    """Workflow phase ids with a project phase whose project is live."""
    ids = list(set(phase_ids))
    if not ids:
        return set()
    return set(db.session.execute(
        select(ProjectPhase.workflow_phase_id)
        .join(Project, ProjectPhase.project_id == Project.id)
        .where(
            ProjectPhase.workflow_phase_id.in_(ids),
            Project.status.in_(LIVE_PROJECT_STATUSES),
        ).distinct()
    ).scalars())


def live_task_ids(task_ids):
    """Workflow task ids with a project task whose project is live."""
    ids = list(set(task_ids))
    if not ids:
        return set()
    return set(db.session.execute(
        select(ProjectTask.workflow_task_id)
        .join(ProjectPhase, ProjectTask.project_phase_id == ProjectPhase.id)
        .join(Project, ProjectPhase.project_id == Project.id)
        .where(
            ProjectTask.workflow_task_id.in_(ids),
            Project.status.in_(LIVE_PROJECT_STATUSES),
        ).distinct()
    ).scalars())


def tasks_with_edges(task_ids):
    """Task ids that are the source or target of any dependency edge."""
    ids = list(set(task_ids))
    if not ids:
        return set()
    rows = db.session.execute(
        select(TaskDependency.source_task_id, TaskDependency.target_task_id).where(
            or_(
                TaskDependency.source_task_id.in_(ids),
                TaskDependency.target_task_id.in_(ids),
            )
        )
    ).all()
    wanted = set(ids)
    found = set()
    for source_id, target_id in rows:
        found.update({source_id, target_id} & wanted)
    return found


def workflow_ids_for_tasks(tasks):
    """Map task id → owning workflow id for already-loaded tasks."""
    phase_ids = {t.phase_id for t in tasks}
    rows = db.session.execute(
        select(WorkflowPhase.id, WorkflowPhase.workflow_id).where(WorkflowPhase.id.in_(phase_ids))
    ).all()
    phase_to_wf = dict(rows)
    return {t.id: phase_to_wf[t.phase_id] for t in tasks}

